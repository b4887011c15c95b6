"""
journey_services.journey_orchestrator -- DI container for the journey engine.

Responsibility:
    Creates every journey service exactly once on one SQLAlchemy session
    and wires them together.  No service creates other services
    internally.  The orchestrator is also the inbound surface: commands,
    raw triggers, approval opening/resolution and board card outcomes all
    enter here, with the tenant and actor bound onto the log context.

Architecture position:
    Services -- top of the service layer.  Imports journey_kernel and
    journey_config; nothing in journey_kernel imports this module.

Invariants enforced:
    - Single-instance lifecycle: one definition service, engine, gate and
      executor per orchestrator, all sharing the same Session and Clock.
    - DI transparency: all service wiring is visible in ``__init__``.

Non-goals:
    - Does NOT manage transaction boundaries (caller's responsibility).
    - Does NOT own the Session lifecycle (no commit/rollback).

Usage:
    from journey_kernel.db.engine import session_scope
    from journey_services.journey_orchestrator import JourneyOrchestrator

    with session_scope() as session:
        journeys = JourneyOrchestrator(session, policies=policies, board=board)
        result = journeys.execute_command("tenant-1", "member-42", "ENROLL")

    # Read side:
    journeys.instances
    journeys.transition_log
    journeys.approvals
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from journey_config import get_engine_settings
from journey_config.settings import EngineSettings
from journey_kernel.domain.approval import (
    ApprovalOpened,
    ApprovalResolution,
    ApprovalStatus,
    CardOutcome,
    CardOutcomeResult,
)
from journey_kernel.domain.clock import Clock, SystemClock
from journey_kernel.domain.dtos import CommandResult
from journey_kernel.domain.ports import BoardProjectionPort, PolicyLookup
from journey_kernel.logging_config import LogContext
from journey_kernel.selectors.approval_selector import ApprovalSelector
from journey_kernel.selectors.instance_selector import InstanceSelector
from journey_kernel.selectors.transition_log_selector import TransitionLogSelector
from journey_kernel.services.approval_gate import ApprovalGate
from journey_kernel.services.definition_service import (
    JourneyDefinitionService,
    JourneyGraphCache,
)
from journey_kernel.services.transition_engine import TransitionEngine
from journey_services.command_resolver import CommandResolver
from journey_services.trigger_executor import TriggerExecutor


class JourneyOrchestrator:
    """Central factory and entry point for journey services.

    Contract:
        Receives a SQLAlchemy Session and optional Clock, PolicyLookup,
        BoardProjectionPort, EngineSettings and graph cache.  Constructs
        every service exactly once, in dependency order, and exposes them
        as public attributes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policies: PolicyLookup | None = None,
        board: BoardProjectionPort | None = None,
        settings: EngineSettings | None = None,
        graph_cache: JourneyGraphCache | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_engine_settings()

        # Kernel services
        self.definitions = JourneyDefinitionService(
            session, self.clock, graph_cache=graph_cache,
        )
        self.engine = TransitionEngine(session, self.definitions, self.clock)
        self.gate = ApprovalGate(
            session,
            self.engine,
            board=board,
            clock=self.clock,
            board_priority=self.settings.board_priority,
            projection_timeout=self.settings.board_timeout_seconds,
        )

        # Read side
        self.instances = InstanceSelector(session)
        self.transition_log = TransitionLogSelector(session)
        self.approvals = ApprovalSelector(session)

        # Coordinators
        self.trigger_executor = TriggerExecutor(self.engine, self.gate, policies)
        self.command_resolver = CommandResolver(
            self.definitions,
            self.engine,
            self.trigger_executor,
            self.instances,
            default_journey_code=self.settings.default_journey_code,
        )

    def execute_command(
        self,
        tenant_id: str,
        member_id: str,
        command: str,
        journey_code: str | None = None,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommandResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            return self.command_resolver.execute(
                tenant_id,
                member_id,
                command,
                journey_code=journey_code,
                actor_id=actor_id,
                metadata=metadata,
            )

    def execute_trigger(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        trigger: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommandResult:
        with LogContext.bind(
            tenant_id=tenant_id,
            actor_id=actor_id,
            journey_instance_id=journey_instance_id,
        ):
            return self.trigger_executor.execute(
                tenant_id, journey_instance_id, trigger, actor_id=actor_id, metadata=metadata,
            )

    def open_approval(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        journey_trigger: str,
        policy_code: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        pipeline_id: str | None = None,
        target_state: str | None = None,
    ) -> ApprovalOpened:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            return self.gate.open(
                tenant_id,
                journey_instance_id,
                journey_trigger,
                policy_code,
                actor_id=actor_id,
                metadata=metadata,
                pipeline_id=pipeline_id,
                target_state=target_state,
            )

    def resolve_approval(
        self,
        tenant_id: str,
        approval_request_id: UUID,
        decision: ApprovalStatus | str,
        resolved_by: str,
        target_state: str | None = None,
    ) -> ApprovalResolution:
        with LogContext.bind(tenant_id=tenant_id, actor_id=resolved_by):
            return self.gate.resolve(
                tenant_id,
                approval_request_id,
                decision,
                resolved_by=resolved_by,
                target_state=target_state,
            )

    def handle_card_outcome(
        self,
        tenant_id: str,
        card_id: str,
        outcome: CardOutcome | str | None,
        moved_by: str | None = None,
        target_state: str | None = None,
    ) -> CardOutcomeResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=moved_by):
            return self.gate.resolve_from_card(
                tenant_id, card_id, outcome, moved_by=moved_by, target_state=target_state,
            )
