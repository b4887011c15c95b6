"""
Journey runtime DTOs (``journey_kernel.domain.dtos``).

Frozen snapshots returned by services and selectors.  ORM models never
cross the service boundary; callers receive these instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from journey_kernel.domain.journey import TransitionDef, TransitionOrigin

T = TypeVar("T")

MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class JourneyInstance:
    """A running journey bound to one member.

    ``journey_version`` is pinned at creation; ``version`` is the
    optimistic-concurrency token, incremented on every state change.
    """

    id: UUID
    tenant_id: str
    member_id: str
    journey_code: str
    journey_version: str
    current_state: str
    version: int
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TransitionLogEntry:
    """One immutable row of an instance's state history."""

    id: UUID
    tenant_id: str
    member_id: str
    journey_instance_id: UUID
    sequence: int
    from_state: str | None
    to_state: str
    trigger: str
    origin: TransitionOrigin
    actor_id: str | None = None
    approval_request_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def is_creation(self) -> bool:
        return self.from_state is None


@dataclass(frozen=True)
class InstanceCreation:
    """Result of creating an instance."""

    instance: JourneyInstance
    transition_log_id: UUID
    events_emitted: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransitionApplied:
    """Result of a successful state change.

    ``transition`` is None for forced transitions, which bypass the graph.
    """

    instance: JourneyInstance
    log_entry: TransitionLogEntry
    transition: TransitionDef | None = None
    events_emitted: tuple[str, ...] = ()


class CommandOutcome(str, Enum):
    INSTANCE_CREATED = "INSTANCE_CREATED"
    TRANSITIONED = "TRANSITIONED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"


@dataclass(frozen=True)
class CommandResult:
    """Uniform result of a command or trigger invocation."""

    outcome: CommandOutcome
    instance: JourneyInstance
    transition_log_id: UUID | None = None
    approval_request_id: UUID | None = None
    events_emitted: tuple[str, ...] = ()


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    """One page of a search; ``page`` is 1-based."""

    items: tuple[T, ...]
    total: int
    page: int
    size: int

    @property
    def pages(self) -> int:
        return (self.total + self.size - 1) // self.size if self.total else 0


def clamp_page(page: int, size: int) -> tuple[int, int]:
    """Normalize pagination input: page >= 1, size within [1, MAX_PAGE_SIZE]."""
    return max(1, page), min(max(1, size), MAX_PAGE_SIZE)
