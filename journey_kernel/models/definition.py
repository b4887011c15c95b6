"""
Module: journey_kernel.models.definition
Responsibility: ORM persistence for published journey definitions.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - UNIQUE(tenant_id, code, version): a version is published once.
    - Partial unique index on (tenant_id, code) WHERE is_active: at most one
      active version per journey code, even under concurrent activation.
    - Content columns are immutable after insert (db/immutability.py);
      only is_active and updated_at may change.

Failure modes:
    - IntegrityError on a duplicate version or a second active row.
    - ImmutabilityViolationError on content UPDATE.
    - DefinitionInUseError on DELETE while instances pin the version.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from journey_kernel.db.base import TrackedBase
from journey_kernel.domain.journey import CommandDef, JourneyDefinition, TransitionDef

# Columns frozen at publish.  is_active and updated_at are the only
# mutable attributes of a published definition.
DEFINITION_CONTENT_COLUMNS: tuple[str, ...] = (
    "tenant_id",
    "code",
    "version",
    "name",
    "description",
    "states",
    "initial_state",
    "transitions",
    "commands",
    "events",
    "creation_events",
    "content_hash",
    "published_by",
    "created_at",
)


class JourneyDefinitionModel(TrackedBase):
    """Persistent journey definition version.

    Graph content is stored as JSON documents; ``to_dto`` rebuilds the
    frozen domain definition from them.
    """

    __tablename__ = "journey_definitions"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "code", "version",
            name="uq_journey_definitions_version",
        ),
        Index(
            "ix_journey_definitions_one_active",
            "tenant_id", "code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_journey_definitions_lookup", "tenant_id", "code", "created_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    states: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    initial_state: Mapped[str] = mapped_column(String(100), nullable=False)
    transitions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    commands: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    creation_events: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<JourneyDefinition {self.tenant_id}/{self.code}@{self.version} "
            f"active={self.is_active}>"
        )

    def to_dto(self) -> JourneyDefinition:
        """Convert ORM model to frozen domain definition."""
        return JourneyDefinition(
            id=self.id,
            tenant_id=self.tenant_id,
            code=self.code,
            version=self.version,
            name=self.name,
            description=self.description,
            initial_state=self.initial_state,
            states=tuple(self.states),
            transitions=tuple(TransitionDef.from_dict(t) for t in self.transitions),
            commands=tuple(CommandDef.from_dict(c) for c in self.commands),
            events=tuple(self.events),
            creation_events=tuple(self.creation_events),
            is_active=self.is_active,
            content_hash=self.content_hash,
            published_by=self.published_by,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(
        cls,
        dto: JourneyDefinition,
        content_hash: str,
        created_at: datetime,
        published_by: str | None = None,
    ) -> JourneyDefinitionModel:
        """Create ORM model from a validated domain definition."""
        content = dto.content()
        return cls(
            tenant_id=dto.tenant_id,
            code=dto.code,
            version=dto.version,
            name=dto.name,
            description=dto.description,
            states=content["states"],
            initial_state=dto.initial_state,
            transitions=content["transitions"],
            commands=content["commands"],
            events=content["events"],
            creation_events=content["creation_events"],
            content_hash=content_hash,
            is_active=False,
            published_by=published_by,
            created_at=created_at,
            updated_at=created_at,
        )
