"""
Module: journey_kernel.selectors.transition_log_selector
Responsibility: Read access to the append-only transition log, including
    ordered history and state replay.
Architecture position: Kernel > Selectors.  Read-only.

Invariants verified:
    - Ordered by sequence, entry[n].from_state == entry[n-1].to_state and
      the first entry is the creation entry.  replay_state() folds to_state
      over the history and raises TransitionChainBrokenError on a gap.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from journey_kernel.domain.dtos import PagedResult, TransitionLogEntry
from journey_kernel.domain.journey import TransitionOrigin
from journey_kernel.exceptions import TransitionChainBrokenError
from journey_kernel.models.transition_log import TransitionLogModel
from journey_kernel.selectors.base import BaseSelector


class TransitionLogSelector(BaseSelector[TransitionLogModel]):
    """Queries over transition log entries."""

    def get(self, tenant_id: str, entry_id: UUID) -> TransitionLogEntry | None:
        model = self.session.execute(
            select(TransitionLogModel).where(
                TransitionLogModel.id == entry_id,
                TransitionLogModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def search(
        self,
        tenant_id: str,
        member_id: str | None = None,
        journey_instance_id: UUID | None = None,
        trigger: str | None = None,
        origin: TransitionOrigin | str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        page: int = 1,
        size: int = 20,
    ) -> PagedResult[TransitionLogEntry]:
        """Search entries; ``created_from`` is inclusive, ``created_to`` exclusive."""
        stmt = select(TransitionLogModel).where(
            TransitionLogModel.tenant_id == tenant_id,
        )
        if member_id is not None:
            stmt = stmt.where(TransitionLogModel.member_id == member_id)
        if journey_instance_id is not None:
            stmt = stmt.where(TransitionLogModel.journey_instance_id == journey_instance_id)
        if trigger is not None:
            stmt = stmt.where(TransitionLogModel.trigger == trigger)
        if origin is not None:
            stmt = stmt.where(TransitionLogModel.origin == TransitionOrigin(origin).value)
        if created_from is not None:
            stmt = stmt.where(TransitionLogModel.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(TransitionLogModel.created_at < created_to)
        stmt = stmt.order_by(
            TransitionLogModel.created_at.desc(),
            TransitionLogModel.sequence.desc(),
        )
        return self._paginate(stmt, page, size)

    def get_latest_by_instance(
        self, tenant_id: str, journey_instance_id: UUID,
    ) -> TransitionLogEntry | None:
        model = self.session.execute(
            select(TransitionLogModel)
            .where(
                TransitionLogModel.tenant_id == tenant_id,
                TransitionLogModel.journey_instance_id == journey_instance_id,
            )
            .order_by(TransitionLogModel.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def history(self, tenant_id: str, journey_instance_id: UUID) -> list[TransitionLogEntry]:
        """All entries of one instance in chain order."""
        rows = self.session.execute(
            select(TransitionLogModel)
            .where(
                TransitionLogModel.tenant_id == tenant_id,
                TransitionLogModel.journey_instance_id == journey_instance_id,
            )
            .order_by(TransitionLogModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]

    def replay_state(self, tenant_id: str, journey_instance_id: UUID) -> str | None:
        """Rebuild the current state from the log; None if there is no history."""
        state: str | None = None
        for position, entry in enumerate(self.history(tenant_id, journey_instance_id)):
            if position == 0:
                if not entry.is_creation:
                    raise TransitionChainBrokenError(
                        str(journey_instance_id), entry.sequence, None, entry.from_state,
                    )
            elif entry.from_state != state:
                raise TransitionChainBrokenError(
                    str(journey_instance_id), entry.sequence, state, entry.from_state,
                )
            state = entry.to_state
        return state
