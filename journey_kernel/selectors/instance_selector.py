"""Read-side queries over journey instances."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from journey_kernel.domain.dtos import JourneyInstance, PagedResult
from journey_kernel.models.instance import JourneyInstanceModel
from journey_kernel.selectors.base import BaseSelector


class InstanceSelector(BaseSelector[JourneyInstanceModel]):
    """Lookups and paginated search by tenant/member/code/state."""

    def get(self, tenant_id: str, instance_id: UUID) -> JourneyInstance | None:
        model = self.session.execute(
            select(JourneyInstanceModel).where(
                JourneyInstanceModel.id == instance_id,
                JourneyInstanceModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_by_member(
        self,
        tenant_id: str,
        member_id: str,
        journey_code: str,
    ) -> JourneyInstance | None:
        model = self.session.execute(
            select(JourneyInstanceModel).where(
                JourneyInstanceModel.tenant_id == tenant_id,
                JourneyInstanceModel.member_id == member_id,
                JourneyInstanceModel.journey_code == journey_code,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def search(
        self,
        tenant_id: str,
        member_id: str | None = None,
        journey_code: str | None = None,
        current_state: str | None = None,
        page: int = 1,
        size: int = 20,
    ) -> PagedResult[JourneyInstance]:
        stmt = select(JourneyInstanceModel).where(
            JourneyInstanceModel.tenant_id == tenant_id,
        )
        if member_id is not None:
            stmt = stmt.where(JourneyInstanceModel.member_id == member_id)
        if journey_code is not None:
            stmt = stmt.where(JourneyInstanceModel.journey_code == journey_code)
        if current_state is not None:
            stmt = stmt.where(JourneyInstanceModel.current_state == current_state)
        stmt = stmt.order_by(
            JourneyInstanceModel.created_at.desc(), JourneyInstanceModel.id,
        )
        return self._paginate(stmt, page, size)
