"""
Journey definition types (``journey_kernel.domain.journey``).

Responsibility
--------------
Pure value objects for data-declared member journeys: the definition
(states, transitions, commands, events), its publish-time validation, and
the indexed ``JourneyGraph`` the runtime consults on every trigger.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``initial_state`` is a member of ``states``; states are unique.
* Transitions reference only declared states.
* ``(from_state, trigger)`` pairs are unique, so a lookup never has to
  choose between two edges.
* Every FIRE_TRIGGER command names a trigger used by some transition.
* ``requires_approval`` transitions carry an approval policy code.
* Emitted events are drawn from the declared ``events``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from journey_kernel.utils.hashing import hash_payload

CREATED_TRIGGER = "<created>"
DEFAULT_JOURNEY_CODE = "MEMBER_LIFECYCLE"


class CommandAction(str, Enum):
    """What a declared command does when invoked."""

    CREATE_INSTANCE = "CREATE_INSTANCE"
    FIRE_TRIGGER = "FIRE_TRIGGER"
    RESOLVE_APPROVAL = "RESOLVE_APPROVAL"


class TransitionOrigin(str, Enum):
    """Who moved the instance: a direct trigger or an approval resolution."""

    DIRECT = "DIRECT"
    APPROVAL_ENGINE = "APPROVAL_ENGINE"


@dataclass(frozen=True)
class TransitionDef:
    """One edge of the journey graph.

    ``key`` defaults to ``"{from_state}:{trigger}"``.  When
    ``requires_approval`` is set, firing the trigger opens an approval
    request under ``approval_policy_code`` instead of moving the instance.
    """

    from_state: str
    trigger: str
    to_state: str
    key: str | None = None
    requires_approval: bool = False
    approval_policy_code: str | None = None
    emit_events: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.key is None:
            object.__setattr__(self, "key", f"{self.from_state}:{self.trigger}")
        object.__setattr__(self, "emit_events", tuple(self.emit_events))

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "from_state": self.from_state,
            "trigger": self.trigger,
            "to_state": self.to_state,
            "requires_approval": self.requires_approval,
            "approval_policy_code": self.approval_policy_code,
            "emit_events": list(self.emit_events),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransitionDef:
        return cls(
            from_state=data["from_state"],
            trigger=data["trigger"],
            to_state=data["to_state"],
            key=data.get("key"),
            requires_approval=bool(data.get("requires_approval", False)),
            approval_policy_code=data.get("approval_policy_code"),
            emit_events=tuple(data.get("emit_events") or ()),
        )


@dataclass(frozen=True)
class CommandDef:
    """A user-facing verb declared by a journey.

    ``action`` is kept as the raw declared string so that stored
    definitions with an unknown action still load; the command resolver
    rejects them when invoked.
    """

    command: str
    action: str = CommandAction.FIRE_TRIGGER.value
    trigger: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.action, CommandAction):
            object.__setattr__(self, "action", self.action.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "action": self.action,
            "trigger": self.trigger,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandDef:
        return cls(
            command=data["command"],
            action=data.get("action") or CommandAction.FIRE_TRIGGER.value,
            trigger=data.get("trigger"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class JourneyDefinition:
    """A tenant-scoped, versioned journey template.

    Contract: frozen.  Identity is ``(tenant_id, code, version)``.
    Persisted definitions carry ``id``, ``content_hash`` and timestamps;
    definitions built in code or parsed from YAML leave them unset until
    they are published.
    """

    tenant_id: str
    code: str
    version: str
    name: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[TransitionDef, ...] = ()
    commands: tuple[CommandDef, ...] = ()
    events: tuple[str, ...] = ()
    creation_events: tuple[str, ...] = ()
    description: str | None = None
    is_active: bool = False
    id: UUID | None = None
    content_hash: str | None = None
    published_by: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        for name in ("states", "transitions", "commands", "events", "creation_events"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def content(self) -> dict[str, Any]:
        """The graph content that is frozen at publish and hashed."""
        return {
            "code": self.code,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "initial_state": self.initial_state,
            "states": list(self.states),
            "transitions": [t.to_dict() for t in self.transitions],
            "commands": [c.to_dict() for c in self.commands],
            "events": list(self.events),
            "creation_events": list(self.creation_events),
        }

    def compute_content_hash(self) -> str:
        return hash_payload(self.content())


def validate_definition(definition: JourneyDefinition) -> list[str]:
    """Return every publish-time violation of ``definition``.

    An empty list means the definition may be published.
    """
    violations: list[str] = []
    states = set(definition.states)
    events = set(definition.events)

    if not definition.states:
        violations.append("states must not be empty")
    duplicates = sorted(s for s, n in Counter(definition.states).items() if n > 1)
    if duplicates:
        violations.append(f"duplicate states: {', '.join(duplicates)}")

    if definition.initial_state not in states:
        violations.append(
            f"initial_state {definition.initial_state!r} is not a declared state"
        )

    keys: Counter[str] = Counter()
    edges: Counter[tuple[str, str]] = Counter()
    for t in definition.transitions:
        keys[t.key] += 1
        edges[(t.from_state, t.trigger)] += 1
        if t.from_state not in states:
            violations.append(
                f"transition {t.key}: from_state {t.from_state!r} is not a declared state"
            )
        if t.to_state not in states:
            violations.append(
                f"transition {t.key}: to_state {t.to_state!r} is not a declared state"
            )
        if not t.trigger:
            violations.append(f"transition {t.key}: trigger must not be empty")
        if t.requires_approval and not t.approval_policy_code:
            violations.append(
                f"transition {t.key}: requires_approval without approval_policy_code"
            )
        undeclared = [e for e in t.emit_events if e not in events]
        if undeclared:
            violations.append(
                f"transition {t.key}: emits undeclared events {', '.join(undeclared)}"
            )

    for key, count in sorted(keys.items()):
        if count > 1:
            violations.append(f"duplicate transition key {key!r}")
    for (from_state, trigger), count in sorted(edges.items()):
        if count > 1:
            violations.append(
                f"ambiguous transitions: {count} edges for ({from_state!r}, {trigger!r})"
            )

    triggers = {t.trigger for t in definition.transitions}
    names: Counter[str] = Counter()
    known_actions = {a.value for a in CommandAction}
    for c in definition.commands:
        names[c.command] += 1
        if c.action not in known_actions:
            violations.append(f"command {c.command}: unsupported action {c.action!r}")
        elif c.action == CommandAction.FIRE_TRIGGER.value:
            if not c.trigger:
                violations.append(f"command {c.command}: FIRE_TRIGGER without trigger")
            elif c.trigger not in triggers:
                violations.append(
                    f"command {c.command}: trigger {c.trigger!r} matches no transition"
                )
    for name, count in sorted(names.items()):
        if count > 1:
            violations.append(f"duplicate command {name!r}")

    undeclared_creation = [e for e in definition.creation_events if e not in events]
    if undeclared_creation:
        violations.append(
            f"creation_events not declared: {', '.join(undeclared_creation)}"
        )

    return violations


@dataclass(frozen=True)
class JourneyGraph:
    """Indexed, immutable view of one published definition version.

    Built once per ``(tenant, code, version)`` and shared process-wide.
    Lookups are dictionary hits; when stored data is ambiguous the first
    declared edge wins.
    """

    definition: JourneyDefinition
    states: frozenset[str] = field(default_factory=frozenset)
    _edges: dict[tuple[str, str], TransitionDef] = field(default_factory=dict, repr=False)
    _commands: dict[str, CommandDef] = field(default_factory=dict, repr=False)

    @classmethod
    def build(cls, definition: JourneyDefinition) -> JourneyGraph:
        edges: dict[tuple[str, str], TransitionDef] = {}
        for t in definition.transitions:
            edges.setdefault((t.from_state, t.trigger), t)
        commands: dict[str, CommandDef] = {}
        for c in definition.commands:
            commands.setdefault(c.command, c)
        return cls(
            definition=definition,
            states=frozenset(definition.states),
            _edges=edges,
            _commands=commands,
        )

    @property
    def key(self) -> tuple[str, str, str]:
        d = self.definition
        return (d.tenant_id, d.code, d.version)

    def find_transition(self, from_state: str, trigger: str) -> TransitionDef | None:
        return self._edges.get((from_state, trigger))

    def find_command(self, command: str) -> CommandDef | None:
        return self._commands.get(command)

    def has_state(self, state: str) -> bool:
        return state in self.states

    def triggers_from(self, state: str) -> tuple[str, ...]:
        """Triggers that are applicable in ``state``, in declaration order."""
        return tuple(
            t.trigger for t in self.definition.transitions if t.from_state == state
        )
