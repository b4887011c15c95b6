"""
Approval gate domain types (``journey_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the journey approval gate: the request lifecycle
state machine, the request snapshot, board-card outcomes, and the result
types returned by opening and resolving a gate.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid status transitions:
  ``PENDING -> APPROVED | REJECTED``.  Both outcomes are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from journey_kernel.domain.dtos import TransitionApplied
    from journey_kernel.exceptions import JourneyKernelError

PLM_SYSTEM_ACTOR = "PLM_SYSTEM"


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class CardOutcome(str, Enum):
    """Decision carried by a board card that reached a final column."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"

    def to_status(self) -> ApprovalStatus:
        if self is CardOutcome.APPROVE:
            return ApprovalStatus.APPROVED
        return ApprovalStatus.REJECTED


class CardOutcomeReason(str, Enum):
    """Why a board-card outcome was not processed."""

    NO_LINKED_APPROVAL = "NO_LINKED_APPROVAL"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    NO_APPROVAL_OUTCOME = "NO_APPROVAL_OUTCOME"


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of a journey approval request.

    ``target_state`` and ``transition_key`` are recorded when the gate was
    opened by a gated transition, so a board approval can complete the
    transition without the caller naming the state again.
    """

    id: UUID
    tenant_id: str
    member_id: str
    journey_instance_id: UUID
    journey_trigger: str
    policy_code: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    external_card_id: str | None = None
    pipeline_id: str | None = None
    target_state: str | None = None
    transition_key: str | None = None
    requested_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING


@dataclass(frozen=True)
class ProjectionOutcome:
    """Result of the best-effort board projection.

    Inspected for logging only; the approval request exists regardless.
    """

    attempted: bool
    card_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.attempted and self.card_id is not None and self.error is None


NOT_ATTEMPTED = ProjectionOutcome(attempted=False)


@dataclass(frozen=True)
class ApprovalOpened:
    """Result of opening an approval gate."""

    request: ApprovalRequest
    projection: ProjectionOutcome = NOT_ATTEMPTED


@dataclass(frozen=True)
class ApprovalResolution:
    """Result of resolving an approval request.

    The decision and the follow-up transition are separate outcomes: a
    persisted APPROVED decision with ``transition_error`` set means the
    human decision stands but the instance did not move.
    """

    request: ApprovalRequest
    transition: TransitionApplied | None = None
    transition_error: JourneyKernelError | None = None

    @property
    def transitioned(self) -> bool:
        return self.transition is not None


@dataclass(frozen=True)
class CardOutcomeResult:
    """Result of applying a board-card outcome to its approval request."""

    processed: bool
    reason: CardOutcomeReason | None = None
    resolution: ApprovalResolution | None = None
