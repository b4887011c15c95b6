"""
Journey definition loader (``journey_config.loader``).

Responsibility
--------------
Loads YAML journey files and parses them into validated
``JourneyDefinition`` value objects, plus the approval policies a file
declares.  Publishing is left to ``JourneyDefinitionService``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Graph violations  -> ``DefinitionValidationError`` listing all of them.

YAML shape
----------
::

    code: MEMBER_LIFECYCLE
    version: "1.0.0"
    name: Member lifecycle
    initial_state: PROSPECT
    states: [PROSPECT, REVIEW, ...]
    events: [MEMBER_ENROLLED, ...]
    creation_events: [MEMBER_ENROLLED]
    transitions:
      - from: PROSPECT
        trigger: SUBMIT_APPLICATION
        to: REVIEW
        emit_events: [APPLICATION_SUBMITTED]
      - from: REVIEW
        trigger: APPROVE_ONBOARDING
        to: ONBOARDED
        requires_approval: true
        approval_policy: MEMBER_ONBOARDING
    commands:
      - command: ENROLL
        action: CREATE_INSTANCE
      - command: SUBMIT_APPLICATION
        trigger: SUBMIT_APPLICATION
    policies:
      - code: MEMBER_ONBOARDING
        pipeline_id: onboarding-review
        blocking: true
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from journey_kernel.domain.journey import (
    CommandAction,
    CommandDef,
    JourneyDefinition,
    TransitionDef,
    validate_definition,
)
from journey_kernel.domain.ports import PolicyInfo
from journey_kernel.exceptions import DefinitionValidationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    raise KeyError(keys[0])


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    """Parse one transition; ``from``/``to`` may also be spelled ``from_state``/``to_state``."""
    return TransitionDef(
        from_state=_first(data, "from", "from_state"),
        trigger=data["trigger"],
        to_state=_first(data, "to", "to_state"),
        key=data.get("key"),
        requires_approval=bool(data.get("requires_approval", False)),
        approval_policy_code=data.get("approval_policy") or data.get("approval_policy_code"),
        emit_events=tuple(data.get("emit_events") or ()),
    )


def parse_command(data: dict[str, Any]) -> CommandDef:
    return CommandDef(
        command=data["command"],
        action=str(data.get("action") or CommandAction.FIRE_TRIGGER.value).upper(),
        trigger=data.get("trigger"),
        description=data.get("description"),
    )


def parse_policy(data: dict[str, Any]) -> PolicyInfo:
    return PolicyInfo(
        code=data["code"],
        pipeline_id=data.get("pipeline_id"),
        blocking=bool(data.get("blocking", True)),
    )


def parse_definition(data: dict[str, Any], tenant_id: str) -> JourneyDefinition:
    """
    Parse and validate a ``JourneyDefinition`` for ``tenant_id``.

    Raises:
        KeyError: if ``code``, ``version``, ``initial_state`` or ``states``
            is missing.
        DefinitionValidationError: if the parsed graph is not publishable.
    """
    definition = JourneyDefinition(
        tenant_id=tenant_id,
        code=data["code"],
        version=str(data["version"]),
        name=data.get("name") or data["code"],
        description=data.get("description"),
        initial_state=data["initial_state"],
        states=tuple(data["states"]),
        transitions=tuple(parse_transition(t) for t in data.get("transitions") or ()),
        commands=tuple(parse_command(c) for c in data.get("commands") or ()),
        events=tuple(data.get("events") or ()),
        creation_events=tuple(data.get("creation_events") or ()),
    )
    violations = validate_definition(definition)
    if violations:
        raise DefinitionValidationError(definition.code, definition.version, violations)
    return definition


def _yaml_files(directory: Path) -> list[Path]:
    return sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")])


def load_definitions(directory: Path, tenant_id: str) -> list[JourneyDefinition]:
    """Parse every ``*.yaml``/``*.yml`` file in ``directory``, in name order."""
    return [
        parse_definition(load_yaml_file(path), tenant_id)
        for path in _yaml_files(Path(directory))
    ]


def load_policies(directory: Path) -> list[PolicyInfo]:
    """Collect the ``policies`` blocks of every YAML file in ``directory``."""
    policies: list[PolicyInfo] = []
    for path in _yaml_files(Path(directory)):
        data = load_yaml_file(path)
        policies.extend(parse_policy(p) for p in data.get("policies") or ())
    return policies
