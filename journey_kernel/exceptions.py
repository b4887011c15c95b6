"""
Typed Exception Hierarchy for the Journey Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the journey engine (HTTP handlers, webhooks, internal use cases)
must map failures to responses without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        resolver.execute(tenant_id, member_id, "ACTIVATE_CMD")
    except IllegalTransitionError as e:
        api_response(code=e.code, state=e.current_state, trigger=e.trigger)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from JourneyKernelError:

    JourneyKernelError (base)
    |
    +-- DefinitionError
    |   +-- DefinitionNotFoundError
    |   +-- DefinitionValidationError
    |   +-- DefinitionVersionExistsError
    |   +-- DefinitionInUseError
    |
    +-- CommandError
    |   +-- UnknownCommandError
    |   +-- MissingTriggerError
    |   +-- UnsupportedHereError
    |   +-- UnsupportedCommandActionError
    |
    +-- InstanceError
    |   +-- InstanceAlreadyExistsError
    |   +-- InstanceNotFoundError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |   |   +-- UndeclaredStateError
    |   +-- TransitionChainBrokenError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalAlreadyResolvedError
    |   +-- DuplicateApprovalRequestError
    |   +-- ExternalProjectionFailedError   (reported, never raised to callers)
    |
    +-- ConcurrencyError
    |   +-- ConcurrentTransitionError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|---------------------------------------
Definition   | DEFINITION_NOT_FOUND        | No active/pinned definition for code
             | DEFINITION_INVALID          | Graph fails publish-time validation
             | DEFINITION_VERSION_EXISTS   | (tenant, code, version) already stored
             | DEFINITION_IN_USE           | Deleting a version pinned by instances
-------------|-----------------------------|---------------------------------------
Command      | UNKNOWN_COMMAND             | Command not declared by definition
             | MISSING_TRIGGER             | FIRE_TRIGGER command without trigger
             | UNSUPPORTED_HERE            | RESOLVE_APPROVAL via command dispatch
             | UNSUPPORTED_COMMAND_ACTION  | Action value the resolver cannot run
-------------|-----------------------------|---------------------------------------
Instance     | INSTANCE_ALREADY_EXISTS     | Duplicate (tenant, member, code)
             | INSTANCE_NOT_FOUND          | No instance for id / member
-------------|-----------------------------|---------------------------------------
Transition   | ILLEGAL_TRANSITION          | No edge for (current_state, trigger)
             | UNDECLARED_STATE            | Forced target not in pinned states
             | TRANSITION_CHAIN_BROKEN     | Log replay found a broken link
-------------|-----------------------------|---------------------------------------
Approval     | APPROVAL_NOT_FOUND          | Approval request id unknown
             | APPROVAL_ALREADY_RESOLVED   | Second resolution attempt
             | DUPLICATE_APPROVAL_REQUEST  | Pending request already open
             | EXTERNAL_PROJECTION_FAILED  | Board card creation failed (logged)
-------------|-----------------------------|---------------------------------------
Concurrency  | CONCURRENT_TRANSITION       | Instance changed under the writer
-------------|-----------------------------|---------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | Modifying log rows / published graphs

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Codes are class attributes so they can be listed without instantiation.
2. All context is stored as attributes; the structured log formatter
   copies public attributes into ``exc_*`` fields.
3. Categories let transports map groups: DefinitionError and CommandError
   are configuration/client errors, ConcurrencyError is retryable.
"""


class JourneyKernelError(Exception):
    """
    Base exception for all journey kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "JOURNEY_KERNEL_ERROR"


# Definition-related exceptions


class DefinitionError(JourneyKernelError):
    """Base exception for journey definition errors."""

    code: str = "DEFINITION_ERROR"


class DefinitionNotFoundError(DefinitionError):
    """No journey definition for the requested tenant/code/version."""

    code: str = "DEFINITION_NOT_FOUND"

    def __init__(self, tenant_id: str, journey_code: str, version: str | None = None):
        self.tenant_id = tenant_id
        self.journey_code = journey_code
        self.version = version
        if version is None:
            message = f"No active journey definition for code {journey_code}"
        else:
            message = f"Journey definition {journey_code}@{version} not found"
        super().__init__(f"{message} (tenant {tenant_id})")


class DefinitionValidationError(DefinitionError):
    """
    Journey definition failed publish-time validation.

    All violations are collected so authors can fix a definition in one pass.
    """

    code: str = "DEFINITION_INVALID"

    def __init__(self, journey_code: str, version: str, violations: list[str]):
        self.journey_code = journey_code
        self.version = version
        self.violations = list(violations)
        super().__init__(
            f"Journey definition {journey_code}@{version} is invalid: "
            + "; ".join(self.violations)
        )


class DefinitionVersionExistsError(DefinitionError):
    """A definition with the same (tenant, code, version) is already published."""

    code: str = "DEFINITION_VERSION_EXISTS"

    def __init__(self, tenant_id: str, journey_code: str, version: str):
        self.tenant_id = tenant_id
        self.journey_code = journey_code
        self.version = version
        super().__init__(
            f"Journey definition {journey_code}@{version} already exists "
            f"for tenant {tenant_id}"
        )


class DefinitionInUseError(DefinitionError):
    """Definition version is pinned by running instances and cannot be deleted."""

    code: str = "DEFINITION_IN_USE"

    def __init__(self, journey_code: str, version: str, instance_count: int):
        self.journey_code = journey_code
        self.version = version
        self.instance_count = instance_count
        super().__init__(
            f"Journey definition {journey_code}@{version} is referenced by "
            f"{instance_count} instance(s)"
        )


# Command-related exceptions


class CommandError(JourneyKernelError):
    """Base exception for command resolution errors."""

    code: str = "COMMAND_ERROR"


class UnknownCommandError(CommandError):
    """Command name is not declared by the active definition."""

    code: str = "UNKNOWN_COMMAND"

    def __init__(self, command: str, journey_code: str):
        self.command = command
        self.journey_code = journey_code
        super().__init__(
            f'Unknown command "{command}" for journey "{journey_code}"'
        )


class MissingTriggerError(CommandError):
    """A FIRE_TRIGGER command declares no trigger."""

    code: str = "MISSING_TRIGGER"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f'Command "{command}" has no trigger defined')


class UnsupportedHereError(CommandError):
    """Action cannot be executed through generic command dispatch."""

    code: str = "UNSUPPORTED_HERE"

    def __init__(self, command: str, action: str):
        self.command = command
        self.action = action
        super().__init__(
            f'Command "{command}" ({action}) must go through approval '
            "resolution, not command dispatch"
        )


class UnsupportedCommandActionError(CommandError):
    """Command declares an action value the resolver does not know."""

    code: str = "UNSUPPORTED_COMMAND_ACTION"

    def __init__(self, command: str, action: str):
        self.command = command
        self.action = action
        super().__init__(f'Command "{command}" declares unsupported action {action!r}')


# Instance-related exceptions


class InstanceError(JourneyKernelError):
    """Base exception for journey instance errors."""

    code: str = "INSTANCE_ERROR"


class InstanceAlreadyExistsError(InstanceError):
    """Member already has an instance of this journey."""

    code: str = "INSTANCE_ALREADY_EXISTS"

    def __init__(
        self,
        member_id: str,
        journey_code: str,
        instance_id: str | None = None,
        current_state: str | None = None,
    ):
        self.member_id = member_id
        self.journey_code = journey_code
        self.instance_id = instance_id
        self.current_state = current_state
        super().__init__(
            f'Member {member_id} already has journey "{journey_code}"'
            + (f" (instance: {instance_id}, state: {current_state})" if instance_id else "")
        )


class InstanceNotFoundError(InstanceError):
    """Journey instance was not found."""

    code: str = "INSTANCE_NOT_FOUND"

    def __init__(
        self,
        instance_id: str | None = None,
        member_id: str | None = None,
        journey_code: str | None = None,
    ):
        self.instance_id = instance_id
        self.member_id = member_id
        self.journey_code = journey_code
        if instance_id is not None:
            message = f"Journey instance {instance_id} not found"
        else:
            message = (
                f"No journey instance found for member {member_id} "
                f"with journey code {journey_code}"
            )
        super().__init__(message)


# Transition-related exceptions


class TransitionError(JourneyKernelError):
    """Base exception for state transition errors."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """No transition is declared for (current_state, trigger)."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, instance_id: str, current_state: str, trigger: str, journey_code: str):
        self.instance_id = instance_id
        self.current_state = current_state
        self.trigger = trigger
        self.journey_code = journey_code
        super().__init__(
            f'No valid transition for trigger "{trigger}" from state '
            f'"{current_state}" in journey "{journey_code}" (instance {instance_id})'
        )


class UndeclaredStateError(IllegalTransitionError):
    """Forced target state is not declared by the pinned definition."""

    code: str = "UNDECLARED_STATE"

    def __init__(self, instance_id: str, current_state: str, target_state: str, journey_code: str, version: str):
        self.target_state = target_state
        self.version = version
        TransitionError.__init__(
            self,
            f'State "{target_state}" is not declared by journey '
            f'"{journey_code}"@{version} (instance {instance_id})',
        )
        self.instance_id = instance_id
        self.current_state = current_state
        self.trigger = None
        self.journey_code = journey_code


class TransitionChainBrokenError(TransitionError):
    """Transition log replay found entry[n].from_state != entry[n-1].to_state."""

    code: str = "TRANSITION_CHAIN_BROKEN"

    def __init__(self, instance_id: str, sequence: int, expected_from: str | None, actual_from: str | None):
        self.instance_id = instance_id
        self.sequence = sequence
        self.expected_from = expected_from
        self.actual_from = actual_from
        super().__init__(
            f"Transition chain broken for instance {instance_id} at sequence "
            f"{sequence}: expected from_state {expected_from!r}, got {actual_from!r}"
        )


# Approval-related exceptions


class ApprovalError(JourneyKernelError):
    """Base exception for approval gate errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval request was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request {request_id} not found")


class ApprovalAlreadyResolvedError(ApprovalError):
    """Approval request has already reached a terminal status."""

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Approval request {request_id} is already {status}")


class DuplicateApprovalRequestError(ApprovalError):
    """A pending approval request already exists for this instance and trigger."""

    code: str = "DUPLICATE_APPROVAL_REQUEST"

    def __init__(self, instance_id: str, trigger: str, existing_request_id: str | None = None):
        self.instance_id = instance_id
        self.trigger = trigger
        self.existing_request_id = existing_request_id
        super().__init__(
            f'Pending approval already open for trigger "{trigger}" '
            f"on instance {instance_id}"
        )


class ExternalProjectionFailedError(ApprovalError):
    """
    Board card creation failed.

    Never raised to callers: the approval request is authoritative and the
    board is a mirror.  Instances of this error are attached to
    ``ProjectionOutcome.error`` and logged.
    """

    code: str = "EXTERNAL_PROJECTION_FAILED"

    def __init__(self, request_id: str, pipeline_id: str, reason: str):
        self.request_id = request_id
        self.pipeline_id = pipeline_id
        self.reason = reason
        super().__init__(
            f"Board projection for approval {request_id} on pipeline "
            f"{pipeline_id} failed: {reason}"
        )


# Concurrency-related exceptions


class ConcurrencyError(JourneyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentTransitionError(ConcurrencyError):
    """Instance was modified by another writer between read and write."""

    code: str = "CONCURRENT_TRANSITION"

    def __init__(self, instance_id: str, expected_version: int | None = None, actual_version: int | None = None):
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification of journey instance {instance_id}{detail}"
        )


# Immutability-related exceptions


class ImmutabilityError(JourneyKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Transition log entries are immutable from creation; published journey
    definitions are immutable except for their activation flag.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
