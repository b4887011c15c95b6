"""
Module: journey_kernel.models.transition_log
Responsibility: ORM persistence for the append-only transition log.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError.
    - UNIQUE(journey_instance_id, sequence): ``sequence`` is the instance
      version the entry produced, so two writers can never claim the same
      position in an instance's chain.
    - from_state is NULL only for the creation entry (sequence 1).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from journey_kernel.db.base import Base, UUIDString
from journey_kernel.domain.dtos import TransitionLogEntry
from journey_kernel.domain.journey import TransitionOrigin
from journey_kernel.exceptions import ImmutabilityViolationError


class TransitionLogModel(Base):
    """Persistent transition log entry. Append-only."""

    __tablename__ = "journey_transition_logs"

    __table_args__ = (
        UniqueConstraint(
            "journey_instance_id", "sequence",
            name="uq_journey_transition_logs_sequence",
        ),
        CheckConstraint(
            "origin IN ('DIRECT', 'APPROVAL_ENGINE')",
            name="ck_journey_transition_logs_origin",
        ),
        CheckConstraint(
            "from_state IS NOT NULL OR sequence = 1",
            name="ck_journey_transition_logs_creation_only_null_from",
        ),
        Index("ix_journey_transition_logs_member", "tenant_id", "member_id", "created_at"),
        Index("ix_journey_transition_logs_trigger", "tenant_id", "trigger"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    member_id: Mapped[str] = mapped_column(String(100), nullable=False)
    journey_instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journey_instances.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    to_state: Mapped[str] = mapped_column(String(100), nullable=False)
    trigger: Mapped[str] = mapped_column(String(100), nullable=False)
    origin: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approval_request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journey_approval_requests.id"),
        nullable=True,
    )
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<TransitionLog {self.journey_instance_id}#{self.sequence} "
            f"{self.from_state}->{self.to_state} ({self.trigger})>"
        )

    def to_dto(self) -> TransitionLogEntry:
        """Convert ORM model to frozen domain DTO."""
        return TransitionLogEntry(
            id=self.id,
            tenant_id=self.tenant_id,
            member_id=self.member_id,
            journey_instance_id=self.journey_instance_id,
            sequence=self.sequence,
            from_state=self.from_state,
            to_state=self.to_state,
            trigger=self.trigger,
            origin=TransitionOrigin(self.origin),
            actor_id=self.actor_id,
            approval_request_id=self.approval_request_id,
            metadata=dict(self.entry_metadata or {}),
            created_at=self.created_at,
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(TransitionLogModel, "before_update")
def prevent_transition_log_update(mapper, connection, target):
    """Prevent updates to transition log entries."""
    raise ImmutabilityViolationError(
        entity_type="TransitionLogEntry",
        entity_id=str(target.id),
        reason="Transition log entries are append-only -- cannot modify",
    )


@event.listens_for(TransitionLogModel, "before_delete")
def prevent_transition_log_delete(mapper, connection, target):
    """Prevent deletion of transition log entries."""
    raise ImmutabilityViolationError(
        entity_type="TransitionLogEntry",
        entity_id=str(target.id),
        reason="Transition log entries are append-only -- cannot delete",
    )
