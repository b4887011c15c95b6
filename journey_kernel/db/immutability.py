"""
ORM-Level Immutability Enforcement for journey definitions.

===============================================================================
WHY THIS EXISTS
===============================================================================

Running instances are pinned to the definition version they were created
under.  If a published graph could change underneath them, an instance
could end up in a state its own definition no longer declares, and the
process-wide graph cache would serve stale content.

Two rules are enforced here:

  1. Published definition content is frozen.  Only ``is_active`` (and the
     ``updated_at`` audit timestamp) may change after insert.
  2. A definition version cannot be deleted while any instance pins it.

Transition log rows are append-only from creation; their listeners live
next to the model in models/transition_log.py because they never need to
be switched off.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush]  --> _check_definition_deletion_before_flush() --> DefinitionInUseError
         |
         v
    [before_update] --> _check_definition_immutability() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Deletion is checked in before_flush because mapper-level before_delete
fires after the flush plan is fixed.

===============================================================================
USAGE
===============================================================================

Registered automatically by ``build_engine``.  Registration is idempotent.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session

from journey_kernel.exceptions import DefinitionInUseError, ImmutabilityViolationError
from journey_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_MUTABLE_DEFINITION_FIELDS = frozenset({"is_active", "updated_at"})


def _check_definition_deletion_before_flush(session, flush_context, instances):
    """Refuse to delete a definition version that instances are pinned to."""
    from journey_kernel.models.definition import JourneyDefinitionModel
    from journey_kernel.models.instance import JourneyInstanceModel

    for obj in list(session.deleted):
        if not isinstance(obj, JourneyDefinitionModel):
            continue

        with session.no_autoflush:
            pinned = session.execute(
                select(func.count(JourneyInstanceModel.id)).where(
                    JourneyInstanceModel.tenant_id == obj.tenant_id,
                    JourneyInstanceModel.journey_code == obj.code,
                    JourneyInstanceModel.journey_version == obj.version,
                )
            ).scalar_one()

        if pinned:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "JourneyDefinition",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "definition_version_in_use",
                    "instance_count": pinned,
                },
            )
            raise DefinitionInUseError(obj.code, obj.version, pinned)


def _check_definition_immutability(mapper, connection, target):
    """Block changes to published definition content."""
    from journey_kernel.models.definition import JourneyDefinitionModel

    if not isinstance(target, JourneyDefinitionModel):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _MUTABLE_DEFINITION_FIELDS:
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "JourneyDefinition",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="JourneyDefinition",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a published definition",
            )


def register_immutability_listeners():
    """Register the definition immutability listeners (idempotent)."""
    from journey_kernel.models.definition import JourneyDefinitionModel

    if not event.contains(Session, "before_flush", _check_definition_deletion_before_flush):
        event.listen(Session, "before_flush", _check_definition_deletion_before_flush)
    if not event.contains(JourneyDefinitionModel, "before_update", _check_definition_immutability):
        event.listen(JourneyDefinitionModel, "before_update", _check_definition_immutability)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the definition immutability listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    from journey_kernel.models.definition import JourneyDefinitionModel

    _safe_remove_listener(Session, "before_flush", _check_definition_deletion_before_flush)
    _safe_remove_listener(JourneyDefinitionModel, "before_update", _check_definition_immutability)
