"""
Module: journey_kernel.models.instance
Responsibility: ORM persistence for journey instances.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - UNIQUE(tenant_id, member_id, journey_code): one instance per member
      per journey, enforced at storage as well as pre-flight.
    - ``version`` is the mapper's version_id_col.  Every UPDATE carries
      ``WHERE version = <loaded version>``, so a writer that lost a race
      gets StaleDataError instead of overwriting the winner.
    - current_state is written only by the transition engine.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from journey_kernel.db.base import TrackedBase
from journey_kernel.domain.dtos import JourneyInstance


class JourneyInstanceModel(TrackedBase):
    """Persistent journey instance."""

    __tablename__ = "journey_instances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "member_id", "journey_code",
            name="uq_journey_instances_member_journey",
        ),
        Index(
            "ix_journey_instances_search",
            "tenant_id", "journey_code", "current_state",
        ),
        Index(
            "ix_journey_instances_pinned_version",
            "tenant_id", "journey_code", "journey_version",
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    member_id: Mapped[str] = mapped_column(String(100), nullable=False)
    journey_code: Mapped[str] = mapped_column(String(100), nullable=False)
    journey_version: Mapped[str] = mapped_column(String(50), nullable=False)
    current_state: Mapped[str] = mapped_column(String(100), nullable=False)
    instance_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    # Version bumps are explicit so the log sequence can reuse the value.
    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<JourneyInstance {self.id} {self.journey_code}@{self.journey_version} "
            f"member={self.member_id} state={self.current_state} v{self.version}>"
        )

    def to_dto(self) -> JourneyInstance:
        """Convert ORM model to frozen domain DTO."""
        return JourneyInstance(
            id=self.id,
            tenant_id=self.tenant_id,
            member_id=self.member_id,
            journey_code=self.journey_code,
            journey_version=self.journey_version,
            current_state=self.current_state,
            version=self.version,
            metadata=dict(self.instance_metadata or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
