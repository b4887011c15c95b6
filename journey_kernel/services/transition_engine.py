"""
journey_kernel.services.transition_engine -- Instance creation and state changes.

Responsibility:
    Creates journey instances and moves them between states, writing
    exactly one transition log entry per state change.  This is the only
    code that writes ``JourneyInstanceModel.current_state``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the
    definition service (for pinned graphs).

Invariants enforced:
    - One instance per (tenant, member, journey code): pre-flight check
      plus the storage unique key, both reported as InstanceAlreadyExistsError.
    - Instances run against the definition version pinned at creation,
      never the currently active one.
    - State change and log entry share the caller's transaction; the log
      entry's ``sequence`` is the instance version it produced, so the
      ordered log always satisfies entry[n].from_state == entry[n-1].to_state.
    - Per-instance serialization: the instance row is read FOR UPDATE and
      every UPDATE is conditional on the version that was read.  A lost
      race raises ConcurrentTransitionError; nothing is overwritten.

Failure modes:
    - InstanceAlreadyExistsError, InstanceNotFoundError.
    - IllegalTransitionError: no edge for (current_state, trigger).  State
      and log are untouched.
    - UndeclaredStateError: forced target not declared by the pinned version.
    - ConcurrentTransitionError: stale expected_version or a concurrent
      writer won the conditional UPDATE.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from journey_kernel.domain.clock import Clock
from journey_kernel.domain.dtos import (
    InstanceCreation,
    JourneyInstance,
    TransitionApplied,
)
from journey_kernel.domain.journey import (
    CREATED_TRIGGER,
    JourneyDefinition,
    TransitionDef,
    TransitionOrigin,
)
from journey_kernel.exceptions import (
    ConcurrentTransitionError,
    IllegalTransitionError,
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    UndeclaredStateError,
)
from journey_kernel.logging_config import LogContext, get_logger
from journey_kernel.models.instance import JourneyInstanceModel
from journey_kernel.models.transition_log import TransitionLogModel
from journey_kernel.services.base import BaseService
from journey_kernel.services.definition_service import JourneyDefinitionService

logger = get_logger("services.transition_engine")


class TransitionEngine(BaseService[JourneyInstanceModel]):
    """Validates and applies state transitions against journey instances."""

    def __init__(
        self,
        session: Session,
        definitions: JourneyDefinitionService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._definitions = definitions

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_instance(
        self,
        tenant_id: str,
        member_id: str,
        definition: JourneyDefinition,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InstanceCreation:
        """Create an instance pinned to ``definition.version`` at its initial state."""
        existing = self.session.execute(
            select(JourneyInstanceModel).where(
                JourneyInstanceModel.tenant_id == tenant_id,
                JourneyInstanceModel.member_id == member_id,
                JourneyInstanceModel.journey_code == definition.code,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise InstanceAlreadyExistsError(
                member_id, definition.code, str(existing.id), existing.current_state,
            )

        now = self.clock.now()
        model = JourneyInstanceModel(
            id=uuid4(),
            tenant_id=tenant_id,
            member_id=member_id,
            journey_code=definition.code,
            journey_version=definition.version,
            current_state=definition.initial_state,
            instance_metadata=dict(metadata or {}),
            version=1,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            # Lost the race to a concurrent creation of the same key.
            raise InstanceAlreadyExistsError(member_id, definition.code) from None

        entry = self._append_log(
            model,
            sequence=1,
            from_state=None,
            trigger=CREATED_TRIGGER,
            origin=TransitionOrigin.DIRECT,
            actor_id=actor_id,
            approval_request_id=None,
            metadata=metadata,
        )

        logger.info(
            "journey_instance_created",
            extra={
                "tenant_id": tenant_id,
                "member_id": member_id,
                "journey_instance_id": str(model.id),
                "journey_code": definition.code,
                "journey_version": definition.version,
                "initial_state": definition.initial_state,
            },
        )
        return InstanceCreation(
            instance=model.to_dto(),
            transition_log_id=entry.id,
            events_emitted=tuple(definition.creation_events),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def match_transition(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        trigger: str,
    ) -> tuple[JourneyInstance, TransitionDef]:
        """Find the edge ``trigger`` would follow, without applying it."""
        model = self._load(tenant_id, journey_instance_id, for_update=False)
        transition = self._find_transition(model, trigger)
        return model.to_dto(), transition

    def apply_transition(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        trigger: str,
        actor_id: str | None = None,
        origin: TransitionOrigin = TransitionOrigin.DIRECT,
        metadata: dict[str, Any] | None = None,
        approval_request_id: UUID | None = None,
        expected_version: int | None = None,
    ) -> TransitionApplied:
        """Follow the edge (current_state, trigger) of the pinned graph."""
        model = self._load(tenant_id, journey_instance_id, for_update=True)
        self._check_expected_version(model, expected_version)
        transition = self._find_transition(model, trigger)

        with LogContext.bind(journey_instance_id=model.id, actor_id=actor_id):
            entry = self._move(
                model,
                to_state=transition.to_state,
                trigger=trigger,
                origin=origin,
                actor_id=actor_id,
                approval_request_id=approval_request_id,
                metadata=metadata,
            )

        return TransitionApplied(
            instance=model.to_dto(),
            log_entry=entry.to_dto(),
            transition=transition,
            events_emitted=transition.emit_events,
        )

    def force_transition(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        target_state: str,
        trigger: str,
        actor_id: str | None,
        approval_request_id: UUID | None,
        metadata: dict[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> TransitionApplied:
        """Move the instance straight to ``target_state`` on an approval decision.

        Bypasses the trigger lookup; ``target_state`` must still be declared
        by the pinned definition.  When the graph does declare the edge
        (current_state, trigger) -> target_state, its events are emitted.
        """
        model = self._load(tenant_id, journey_instance_id, for_update=True)
        self._check_expected_version(model, expected_version)
        graph = self._definitions.get_graph(
            model.tenant_id, model.journey_code, model.journey_version,
        )
        if not graph.has_state(target_state):
            raise UndeclaredStateError(
                str(model.id),
                model.current_state,
                target_state,
                model.journey_code,
                model.journey_version,
            )

        declared = graph.find_transition(model.current_state, trigger)
        if declared is not None and declared.to_state != target_state:
            declared = None

        with LogContext.bind(
            journey_instance_id=model.id,
            actor_id=actor_id,
            approval_request_id=approval_request_id,
        ):
            entry = self._move(
                model,
                to_state=target_state,
                trigger=trigger,
                origin=TransitionOrigin.APPROVAL_ENGINE,
                actor_id=actor_id,
                approval_request_id=approval_request_id,
                metadata=metadata,
            )

        return TransitionApplied(
            instance=model.to_dto(),
            log_entry=entry.to_dto(),
            transition=declared,
            events_emitted=declared.emit_events if declared is not None else (),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(
        self,
        tenant_id: str,
        journey_instance_id: UUID,
        for_update: bool,
    ) -> JourneyInstanceModel:
        stmt = select(JourneyInstanceModel).where(
            JourneyInstanceModel.id == journey_instance_id,
            JourneyInstanceModel.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise InstanceNotFoundError(instance_id=str(journey_instance_id))
        return model

    def _find_transition(self, model: JourneyInstanceModel, trigger: str) -> TransitionDef:
        graph = self._definitions.get_graph(
            model.tenant_id, model.journey_code, model.journey_version,
        )
        transition = graph.find_transition(model.current_state, trigger)
        if transition is None:
            logger.warning(
                "journey_transition_rejected",
                extra={
                    "journey_instance_id": str(model.id),
                    "current_state": model.current_state,
                    "trigger": trigger,
                    "journey_code": model.journey_code,
                    "journey_version": model.journey_version,
                    "available_triggers": list(graph.triggers_from(model.current_state)),
                },
            )
            raise IllegalTransitionError(
                str(model.id), model.current_state, trigger, model.journey_code,
            )
        return transition

    @staticmethod
    def _check_expected_version(model: JourneyInstanceModel, expected_version: int | None) -> None:
        if expected_version is not None and model.version != expected_version:
            raise ConcurrentTransitionError(str(model.id), expected_version, model.version)

    def _move(
        self,
        model: JourneyInstanceModel,
        to_state: str,
        trigger: str,
        origin: TransitionOrigin,
        actor_id: str | None,
        approval_request_id: UUID | None,
        metadata: dict[str, Any] | None,
    ) -> TransitionLogModel:
        # A failed flush expires the model; only these values are safe to read afterwards.
        instance_id = str(model.id)
        from_state = model.current_state
        read_version = model.version

        model.current_state = to_state
        model.version = read_version + 1
        model.updated_at = self.clock.now()
        try:
            self.session.flush()
        except StaleDataError:
            logger.warning(
                "journey_transition_conflict",
                extra={
                    "journey_instance_id": instance_id,
                    "read_version": read_version,
                    "trigger": trigger,
                },
            )
            raise ConcurrentTransitionError(instance_id, read_version) from None

        entry = self._append_log(
            model,
            sequence=model.version,
            from_state=from_state,
            trigger=trigger,
            origin=origin,
            actor_id=actor_id,
            approval_request_id=approval_request_id,
            metadata=metadata,
        )

        logger.info(
            "journey_transition_applied",
            extra={
                "journey_instance_id": str(model.id),
                "from_state": from_state,
                "to_state": to_state,
                "trigger": trigger,
                "origin": origin.value,
                "sequence": model.version,
            },
        )
        return entry

    def _append_log(
        self,
        model: JourneyInstanceModel,
        sequence: int,
        from_state: str | None,
        trigger: str,
        origin: TransitionOrigin,
        actor_id: str | None,
        approval_request_id: UUID | None,
        metadata: dict[str, Any] | None,
    ) -> TransitionLogModel:
        instance_id = model.id
        entry = TransitionLogModel(
            id=uuid4(),
            tenant_id=model.tenant_id,
            member_id=model.member_id,
            journey_instance_id=instance_id,
            sequence=sequence,
            from_state=from_state,
            to_state=model.current_state,
            trigger=trigger,
            origin=origin.value,
            actor_id=actor_id,
            approval_request_id=approval_request_id,
            entry_metadata=dict(metadata or {}),
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError:
            # Another writer already holds this position of the chain.
            raise ConcurrentTransitionError(str(instance_id), sequence - 1) from None
        return entry
