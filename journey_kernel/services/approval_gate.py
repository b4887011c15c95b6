"""
journey_kernel.services.approval_gate -- Approval-gated transitions.

Responsibility:
    Opens approval requests for gated journey transitions, mirrors them
    onto an external board when one is configured, and resolves them
    exactly once.  An APPROVED resolution with a target state re-enters
    the transition engine as an engine-trusted forced transition.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the
    transition engine.

Invariants enforced:
    - Status moves PENDING -> APPROVED | REJECTED exactly once.  The
      resolution is a conditional UPDATE on status = 'PENDING'; a losing
      resolver sees zero rows and gets ApprovalAlreadyResolvedError.
    - At most one PENDING request per (instance, trigger).
    - The approval request is authoritative; the board card is a mirror.
      Projection failures are logged and returned, never raised.
    - A forced transition runs inside a SAVEPOINT after the decision is
      flushed.  If it fails, only the SAVEPOINT rolls back: the decision
      stays and the failure is returned as ``transition_error``.

Failure modes:
    - InstanceNotFoundError: opening a gate for an unknown instance.
    - DuplicateApprovalRequestError: a pending request already exists.
    - ApprovalNotFoundError, ApprovalAlreadyResolvedError on resolve.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from journey_kernel.domain.approval import (
    NOT_ATTEMPTED,
    PLM_SYSTEM_ACTOR,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalOpened,
    ApprovalResolution,
    ApprovalStatus,
    CardOutcome,
    CardOutcomeReason,
    CardOutcomeResult,
    ProjectionOutcome,
)
from journey_kernel.domain.clock import Clock
from journey_kernel.domain.ports import BoardProjectionPort, CardRequest
from journey_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalNotFoundError,
    DuplicateApprovalRequestError,
    ExternalProjectionFailedError,
    InstanceNotFoundError,
    JourneyKernelError,
)
from journey_kernel.logging_config import LogContext, get_logger
from journey_kernel.models.approval import ApprovalRequestModel
from journey_kernel.models.instance import JourneyInstanceModel
from journey_kernel.services.base import BaseService
from journey_kernel.services.transition_engine import TransitionEngine

logger = get_logger("services.approval_gate")


class ApprovalGate(BaseService[ApprovalRequestModel]):
    """Opens, projects and resolves journey approval requests."""

    def __init__(
        self,
        session: Session,
        engine: TransitionEngine,
        board: BoardProjectionPort | None = None,
        clock: Clock | None = None,
        board_priority: str = "MEDIUM",
        projection_timeout: float | None = None,
    ):
        super().__init__(session, clock)
        self._engine = engine
        self._board = board
        self._board_priority = board_priority
        self._projection_timeout = projection_timeout

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    def open(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        journey_trigger: str,
        policy_code: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        pipeline_id: str | None = None,
        target_state: str | None = None,
        transition_key: str | None = None,
    ) -> ApprovalOpened:
        """Create a PENDING request and, if possible, project it as a card."""
        instance = self.session.execute(
            select(JourneyInstanceModel).where(
                JourneyInstanceModel.id == journey_instance_id,
                JourneyInstanceModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if instance is None:
            raise InstanceNotFoundError(instance_id=str(journey_instance_id))

        existing = self.session.execute(
            select(ApprovalRequestModel.id).where(
                ApprovalRequestModel.journey_instance_id == journey_instance_id,
                ApprovalRequestModel.journey_trigger == journey_trigger,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateApprovalRequestError(
                str(journey_instance_id), journey_trigger, str(existing),
            )

        now = self.clock.now()
        model = ApprovalRequestModel(
            id=uuid4(),
            tenant_id=tenant_id,
            member_id=instance.member_id,
            journey_instance_id=instance.id,
            journey_trigger=journey_trigger,
            policy_code=policy_code,
            status=ApprovalStatus.PENDING.value,
            pipeline_id=pipeline_id,
            target_state=target_state,
            transition_key=transition_key,
            requested_by=actor_id,
            request_metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            raise DuplicateApprovalRequestError(
                str(journey_instance_id), journey_trigger,
            ) from None

        with LogContext.bind(journey_instance_id=instance.id, approval_request_id=model.id):
            logger.info(
                "approval_request_opened",
                extra={
                    "member_id": instance.member_id,
                    "journey_trigger": journey_trigger,
                    "policy_code": policy_code,
                    "pipeline_id": pipeline_id,
                    "target_state": target_state,
                },
            )
            projection = self._project(model)

        return ApprovalOpened(request=model.to_dto(), projection=projection)

    def _project(self, model: ApprovalRequestModel) -> ProjectionOutcome:
        if self._board is None or not model.pipeline_id:
            logger.debug(
                "board_projection_skipped",
                extra={
                    "board_configured": self._board is not None,
                    "pipeline_id": model.pipeline_id,
                },
            )
            return NOT_ATTEMPTED

        card = CardRequest(
            tenant_id=model.tenant_id,
            pipeline_id=model.pipeline_id,
            title=f"[{model.journey_trigger}] Member {model.member_id}",
            description=(
                f"Approval required for journey trigger {model.journey_trigger} "
                f"under policy {model.policy_code}."
            ),
            priority=self._board_priority,
            metadata={
                "approval_request_id": str(model.id),
                "journey_instance_id": str(model.journey_instance_id),
                "member_id": model.member_id,
                "journey_trigger": model.journey_trigger,
                "policy_code": model.policy_code,
                "target_state": model.target_state,
            },
        )

        try:
            card_id = self._create_card(card)
            if not card_id:
                raise ValueError("board returned an empty card id")
        except Exception as exc:  # noqa: BLE001
            failure = ExternalProjectionFailedError(
                str(model.id), model.pipeline_id, f"{type(exc).__name__}: {exc}",
            )
            logger.warning(
                "board_projection_failed",
                extra={
                    "error_code": failure.code,
                    "pipeline_id": model.pipeline_id,
                    "reason": failure.reason,
                },
            )
            return ProjectionOutcome(attempted=True, error=str(failure))

        model.external_card_id = str(card_id)
        model.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "board_card_created",
            extra={"pipeline_id": model.pipeline_id, "external_card_id": model.external_card_id},
        )
        return ProjectionOutcome(attempted=True, card_id=model.external_card_id)

    def _create_card(self, card: CardRequest) -> str:
        if self._projection_timeout is None:
            return self._board.create_card(card)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="board-projection")
        try:
            future = executor.submit(self._board.create_card, card)
            return future.result(timeout=self._projection_timeout)
        finally:
            # A hung board call is abandoned, not awaited.
            executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def resolve(
        self,
        tenant_id: str,
        approval_request_id: UUID,
        decision: ApprovalStatus | str,
        resolved_by: str,
        target_state: str | None = None,
    ) -> ApprovalResolution:
        """Record the decision once; on APPROVED with a target, move the instance."""
        decision = ApprovalStatus(decision)
        if decision not in TERMINAL_APPROVAL_STATUSES:
            raise ValueError(f"Approval decision must be APPROVED or REJECTED, got {decision.value}")

        model = self._load(tenant_id, approval_request_id)
        if model.status != ApprovalStatus.PENDING.value:
            raise ApprovalAlreadyResolvedError(str(model.id), model.status)

        now = self.clock.now()
        result = self.session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.id == model.id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
            .values(
                status=decision.value,
                resolved_by=resolved_by,
                resolved_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(model)
        if result.rowcount == 0:
            raise ApprovalAlreadyResolvedError(str(model.id), model.status)

        request = model.to_dto()
        with LogContext.bind(
            journey_instance_id=model.journey_instance_id,
            approval_request_id=model.id,
            actor_id=resolved_by,
        ):
            logger.info(
                "approval_resolved",
                extra={
                    "decision": decision.value,
                    "journey_trigger": model.journey_trigger,
                    "target_state": target_state,
                },
            )

            if decision != ApprovalStatus.APPROVED or not target_state:
                return ApprovalResolution(request=request)

            try:
                with self.session.begin_nested():
                    transition = self._engine.force_transition(
                        tenant_id,
                        model.journey_instance_id,
                        target_state=target_state,
                        trigger=model.journey_trigger,
                        actor_id=resolved_by,
                        approval_request_id=model.id,
                        metadata={"decision": decision.value},
                    )
            except JourneyKernelError as exc:
                logger.error(
                    "approval_transition_failed",
                    exc_info=True,
                    extra={"target_state": target_state, "error_code": exc.code},
                )
                return ApprovalResolution(request=request, transition_error=exc)

        return ApprovalResolution(request=request, transition=transition)

    def resolve_from_card(
        self,
        tenant_id: str,
        card_id: str,
        outcome: CardOutcome | str | None,
        moved_by: str | None = None,
        target_state: str | None = None,
    ) -> CardOutcomeResult:
        """Apply the outcome of a board card that reached a final column.

        APPROVE falls back to the target state recorded when the gate was
        opened.  REJECT and CANCEL both resolve as REJECTED.
        """
        model = self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.tenant_id == tenant_id,
                ApprovalRequestModel.external_card_id == card_id,
            )
        ).scalar_one_or_none()

        reason: CardOutcomeReason | None = None
        if model is None:
            reason = CardOutcomeReason.NO_LINKED_APPROVAL
        elif model.status != ApprovalStatus.PENDING.value:
            reason = CardOutcomeReason.ALREADY_RESOLVED
        elif outcome is None:
            reason = CardOutcomeReason.NO_APPROVAL_OUTCOME
        if reason is not None:
            logger.info(
                "card_outcome_ignored",
                extra={"external_card_id": card_id, "reason": reason.value},
            )
            return CardOutcomeResult(processed=False, reason=reason)

        decision = CardOutcome(outcome).to_status()
        target = None
        if decision == ApprovalStatus.APPROVED:
            target = target_state or model.target_state

        try:
            resolution = self.resolve(
                tenant_id,
                model.id,
                decision,
                resolved_by=moved_by or PLM_SYSTEM_ACTOR,
                target_state=target,
            )
        except ApprovalAlreadyResolvedError:
            return CardOutcomeResult(
                processed=False, reason=CardOutcomeReason.ALREADY_RESOLVED,
            )
        return CardOutcomeResult(processed=True, resolution=resolution)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, tenant_id: str, approval_request_id: UUID) -> ApprovalRequestModel:
        model = self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.id == approval_request_id,
                ApprovalRequestModel.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_request_id))
        return model
