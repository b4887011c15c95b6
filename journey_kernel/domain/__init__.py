"""Pure domain types for the journey kernel. No I/O."""

from journey_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    PLM_SYSTEM_ACTOR,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalOpened,
    ApprovalRequest,
    ApprovalResolution,
    ApprovalStatus,
    CardOutcome,
    CardOutcomeReason,
    CardOutcomeResult,
    ProjectionOutcome,
)
from journey_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from journey_kernel.domain.dtos import (
    CommandOutcome,
    CommandResult,
    InstanceCreation,
    JourneyInstance,
    PagedResult,
    TransitionApplied,
    TransitionLogEntry,
)
from journey_kernel.domain.journey import (
    CREATED_TRIGGER,
    DEFAULT_JOURNEY_CODE,
    CommandAction,
    CommandDef,
    JourneyDefinition,
    JourneyGraph,
    TransitionDef,
    TransitionOrigin,
    validate_definition,
)
from journey_kernel.domain.ports import (
    BoardProjectionPort,
    CardRequest,
    PolicyInfo,
    PolicyLookup,
)

__all__ = [
    "APPROVAL_TRANSITIONS",
    "PLM_SYSTEM_ACTOR",
    "TERMINAL_APPROVAL_STATUSES",
    "ApprovalOpened",
    "ApprovalRequest",
    "ApprovalResolution",
    "ApprovalStatus",
    "CardOutcome",
    "CardOutcomeReason",
    "CardOutcomeResult",
    "ProjectionOutcome",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CommandOutcome",
    "CommandResult",
    "InstanceCreation",
    "JourneyInstance",
    "PagedResult",
    "TransitionApplied",
    "TransitionLogEntry",
    "CREATED_TRIGGER",
    "DEFAULT_JOURNEY_CODE",
    "CommandAction",
    "CommandDef",
    "JourneyDefinition",
    "JourneyGraph",
    "TransitionDef",
    "TransitionOrigin",
    "validate_definition",
    "BoardProjectionPort",
    "CardRequest",
    "PolicyInfo",
    "PolicyLookup",
]
