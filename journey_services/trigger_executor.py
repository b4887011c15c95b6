"""
journey_services.trigger_executor -- Fire a trigger against a journey instance.

Responsibility:
    Decides whether a trigger moves the instance directly or opens an
    approval gate, and emits one structured trace record per attempt.
    Thin coordinator: graph lookup and state changes belong to the
    TransitionEngine, gate persistence to the ApprovalGate, policy
    resolution to the PolicyLookup port.

Architecture position:
    Services layer.  May import from journey_kernel/ (domain, services).

Invariants enforced:
    - A transition declaring ``requires_approval`` never applies directly
      unless its policy is known and non-blocking.
    - The decision is made against the instance version that was read;
      the apply step passes it as ``expected_version`` so a concurrent
      change between decision and apply fails instead of slipping through.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from journey_kernel.domain.dtos import CommandOutcome, CommandResult
from journey_kernel.domain.journey import TransitionDef, TransitionOrigin
from journey_kernel.domain.ports import PolicyInfo, PolicyLookup
from journey_kernel.exceptions import IllegalTransitionError, JourneyKernelError
from journey_kernel.logging_config import LogContext, get_logger
from journey_kernel.services.approval_gate import ApprovalGate
from journey_kernel.services.transition_engine import TransitionEngine

logger = get_logger("services.trigger_executor")

# Trace message and outcome codes for structured logging
TRACE_TYPE_JOURNEY_TRIGGER = "JOURNEY_TRIGGER"
OUTCOME_TRANSITIONED = "transitioned"
OUTCOME_APPROVAL_REQUESTED = "approval_requested"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_FAILED = "failed"


def _emit_trigger_trace(
    journey_instance_id: UUID,
    trigger: str,
    from_state: str | None,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
    approval_request_id: UUID | None = None,
) -> None:
    """Emit a structured trigger record for traceability."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_JOURNEY_TRIGGER,
        "ts": datetime.now(UTC).isoformat(),
        "journey_instance_id": str(journey_instance_id),
        "trigger": trigger,
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    if approval_request_id is not None:
        record["approval_request_id"] = str(approval_request_id)
    record.update(LogContext.get_all())
    logger.info("journey_trigger", extra=record)


class TriggerExecutor:
    """Applies a trigger directly or routes it through the approval gate."""

    def __init__(
        self,
        engine: TransitionEngine,
        gate: ApprovalGate,
        policies: PolicyLookup | None = None,
    ) -> None:
        self._engine = engine
        self._gate = gate
        self._policies = policies

    def execute(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        trigger: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommandResult:
        start = time.monotonic()

        def elapsed() -> float:
            return (time.monotonic() - start) * 1000

        try:
            instance, transition = self._engine.match_transition(
                tenant_id, journey_instance_id, trigger,
            )
        except IllegalTransitionError as exc:
            _emit_trigger_trace(
                journey_instance_id, trigger, exc.current_state,
                OUTCOME_NO_TRANSITION, exc.code, elapsed(),
            )
            raise

        reason = "direct"
        if transition.requires_approval:
            policy = self._resolve_policy(transition)
            if policy is None or policy.blocking:
                try:
                    opened = self._gate.open(
                        tenant_id,
                        instance.id,
                        trigger,
                        transition.approval_policy_code,
                        actor_id=actor_id,
                        metadata=metadata,
                        pipeline_id=policy.pipeline_id if policy is not None else None,
                        target_state=transition.to_state,
                        transition_key=transition.key,
                    )
                except JourneyKernelError as exc:
                    _emit_trigger_trace(
                        instance.id, trigger, instance.current_state,
                        OUTCOME_FAILED, exc.code, elapsed(),
                        to_state=transition.to_state,
                    )
                    raise
                _emit_trigger_trace(
                    instance.id, trigger, instance.current_state,
                    OUTCOME_APPROVAL_REQUESTED,
                    "blocking_policy" if policy is not None else "unknown_policy",
                    elapsed(),
                    to_state=transition.to_state,
                    approval_request_id=opened.request.id,
                )
                return CommandResult(
                    outcome=CommandOutcome.APPROVAL_REQUESTED,
                    instance=instance,
                    approval_request_id=opened.request.id,
                )
            reason = "advisory_policy"

        try:
            applied = self._engine.apply_transition(
                tenant_id,
                instance.id,
                trigger,
                actor_id=actor_id,
                origin=TransitionOrigin.DIRECT,
                metadata=metadata,
                expected_version=instance.version,
            )
        except JourneyKernelError as exc:
            _emit_trigger_trace(
                instance.id, trigger, instance.current_state,
                OUTCOME_FAILED, exc.code, elapsed(),
            )
            raise

        _emit_trigger_trace(
            instance.id, trigger, instance.current_state,
            OUTCOME_TRANSITIONED, reason, elapsed(),
            to_state=applied.instance.current_state,
        )
        return CommandResult(
            outcome=CommandOutcome.TRANSITIONED,
            instance=applied.instance,
            transition_log_id=applied.log_entry.id,
            events_emitted=applied.events_emitted,
        )

    def _resolve_policy(self, transition: TransitionDef) -> PolicyInfo | None:
        if self._policies is None:
            return None
        policy = self._policies.find_by_code(transition.approval_policy_code)
        if policy is None:
            logger.warning(
                "approval_policy_unknown",
                extra={
                    "policy_code": transition.approval_policy_code,
                    "transition_key": transition.key,
                },
            )
        return policy
