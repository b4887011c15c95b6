"""
Module: journey_kernel.models.approval
Responsibility: ORM persistence for journey approval requests.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Valid status values (check constraint): PENDING, APPROVED, REJECTED.
    - At most one PENDING request per (journey_instance_id, journey_trigger)
      (partial unique index).
    - Resolution is a conditional UPDATE on status = 'PENDING'; see
      services/approval_gate.py.

Failure modes:
    - IntegrityError on a second pending request for the same trigger.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from journey_kernel.db.base import TrackedBase, UUIDString
from journey_kernel.domain.approval import ApprovalRequest, ApprovalStatus


class ApprovalRequestModel(TrackedBase):
    """Persistent journey approval request.

    Contract:
        Status moves PENDING -> APPROVED | REJECTED exactly once.
        resolved_by/resolved_at are set together with the terminal status.
    """

    __tablename__ = "journey_approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_journey_approval_requests_status",
        ),
        Index(
            "ix_journey_approval_requests_pending_unique",
            "journey_instance_id", "journey_trigger",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index(
            "ix_journey_approval_requests_member_status",
            "tenant_id", "member_id", "status", "created_at",
        ),
        Index("ix_journey_approval_requests_card", "tenant_id", "external_card_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    member_id: Mapped[str] = mapped_column(String(100), nullable=False)
    journey_instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journey_instances.id"),
        nullable=False,
    )
    journey_trigger: Mapped[str] = mapped_column(String(100), nullable=False)
    policy_code: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value,
    )
    external_card_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    pipeline_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    target_state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transition_key: Mapped[str | None] = mapped_column(String(250), nullable=True)
    requested_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    request_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<JourneyApprovalRequest {self.id} "
            f"{self.journey_trigger} status={self.status}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalRequest(
            id=self.id,
            tenant_id=self.tenant_id,
            member_id=self.member_id,
            journey_instance_id=self.journey_instance_id,
            journey_trigger=self.journey_trigger,
            policy_code=self.policy_code,
            status=ApprovalStatus(self.status),
            external_card_id=self.external_card_id,
            pipeline_id=self.pipeline_id,
            target_state=self.target_state,
            transition_key=self.transition_key,
            requested_by=self.requested_by,
            metadata=dict(self.request_metadata or {}),
            created_at=self.created_at,
            resolved_by=self.resolved_by,
            resolved_at=self.resolved_at,
        )
