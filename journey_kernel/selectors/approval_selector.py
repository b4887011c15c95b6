"""Read-side queries over journey approval requests."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from journey_kernel.domain.approval import ApprovalRequest, ApprovalStatus
from journey_kernel.domain.dtos import PagedResult
from journey_kernel.models.approval import ApprovalRequestModel
from journey_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[ApprovalRequestModel]):
    """Lookups by id, board card and member, plus paginated search."""

    def get(self, tenant_id: str, request_id: UUID) -> ApprovalRequest | None:
        model = self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.id == request_id,
                ApprovalRequestModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_by_external_card_id(self, tenant_id: str, card_id: str) -> ApprovalRequest | None:
        model = self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.tenant_id == tenant_id,
                ApprovalRequestModel.external_card_id == card_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_pending_by_member(self, tenant_id: str, member_id: str) -> list[ApprovalRequest]:
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.tenant_id == tenant_id,
                ApprovalRequestModel.member_id == member_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def search(
        self,
        tenant_id: str,
        member_id: str | None = None,
        journey_instance_id: UUID | None = None,
        status: ApprovalStatus | str | None = None,
        policy_code: str | None = None,
        page: int = 1,
        size: int = 20,
    ) -> PagedResult[ApprovalRequest]:
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.tenant_id == tenant_id,
        )
        if member_id is not None:
            stmt = stmt.where(ApprovalRequestModel.member_id == member_id)
        if journey_instance_id is not None:
            stmt = stmt.where(ApprovalRequestModel.journey_instance_id == journey_instance_id)
        if status is not None:
            stmt = stmt.where(ApprovalRequestModel.status == ApprovalStatus(status).value)
        if policy_code is not None:
            stmt = stmt.where(ApprovalRequestModel.policy_code == policy_code)
        stmt = stmt.order_by(
            ApprovalRequestModel.created_at.desc(), ApprovalRequestModel.id,
        )
        return self._paginate(stmt, page, size)
