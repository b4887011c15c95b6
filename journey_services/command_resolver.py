"""
journey_services.command_resolver -- Map inbound command names to actions.

Responsibility:
    Resolves a user-facing command against the active journey definition
    and dispatches it: instance creation, trigger execution, or rejection
    of approval resolution (which has its own entry point).

Architecture position:
    Services layer.  May import from journey_kernel/ and sibling services.

Failure modes:
    - DefinitionNotFoundError: no active definition for the journey code.
    - UnknownCommandError: the command is not declared.
    - UnsupportedCommandActionError: the declared action is not one we run.
    - MissingTriggerError: FIRE_TRIGGER command without a trigger.
    - InstanceNotFoundError: FIRE_TRIGGER for a member with no instance.
    - UnsupportedHereError: RESOLVE_APPROVAL commands.
    - Anything raised by instance creation or the trigger executor.
"""

from __future__ import annotations

from typing import Any

from journey_kernel.domain.dtos import CommandOutcome, CommandResult
from journey_kernel.domain.journey import DEFAULT_JOURNEY_CODE, CommandAction
from journey_kernel.exceptions import (
    DefinitionNotFoundError,
    InstanceNotFoundError,
    MissingTriggerError,
    UnknownCommandError,
    UnsupportedCommandActionError,
    UnsupportedHereError,
)
from journey_kernel.logging_config import get_logger
from journey_kernel.selectors.instance_selector import InstanceSelector
from journey_kernel.services.definition_service import JourneyDefinitionService
from journey_kernel.services.transition_engine import TransitionEngine
from journey_services.trigger_executor import TriggerExecutor

logger = get_logger("services.command_resolver")


class CommandResolver:
    """Dispatches declared commands to creation or trigger execution."""

    def __init__(
        self,
        definitions: JourneyDefinitionService,
        engine: TransitionEngine,
        triggers: TriggerExecutor,
        instances: InstanceSelector,
        default_journey_code: str = DEFAULT_JOURNEY_CODE,
    ) -> None:
        self._definitions = definitions
        self._engine = engine
        self._triggers = triggers
        self._instances = instances
        self._default_journey_code = default_journey_code

    def execute(
        self,
        tenant_id: str,
        member_id: str,
        command: str,
        journey_code: str | None = None,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommandResult:
        code = journey_code or self._default_journey_code

        definition = self._definitions.find_active(tenant_id, code)
        if definition is None:
            raise DefinitionNotFoundError(tenant_id, code)

        graph = self._definitions.get_graph(tenant_id, code, definition.version)
        command_def = graph.find_command(command)
        if command_def is None:
            raise UnknownCommandError(command, code)

        try:
            action = CommandAction(command_def.action)
        except ValueError:
            raise UnsupportedCommandActionError(command, command_def.action) from None

        logger.debug(
            "journey_command_resolved",
            extra={
                "member_id": member_id,
                "journey_code": code,
                "journey_version": definition.version,
                "command": command,
                "action": action.value,
            },
        )

        if action is CommandAction.CREATE_INSTANCE:
            created = self._engine.create_instance(
                tenant_id, member_id, definition, actor_id=actor_id, metadata=metadata,
            )
            return CommandResult(
                outcome=CommandOutcome.INSTANCE_CREATED,
                instance=created.instance,
                transition_log_id=created.transition_log_id,
                events_emitted=created.events_emitted,
            )

        if action is CommandAction.FIRE_TRIGGER:
            if not command_def.trigger:
                raise MissingTriggerError(command)
            instance = self._instances.find_by_member(tenant_id, member_id, code)
            if instance is None:
                raise InstanceNotFoundError(member_id=member_id, journey_code=code)
            return self._triggers.execute(
                tenant_id,
                instance.id,
                command_def.trigger,
                actor_id=actor_id,
                metadata=metadata,
            )

        raise UnsupportedHereError(command, action.value)
