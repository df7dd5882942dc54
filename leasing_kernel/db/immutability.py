"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent
and a session event before the flush plan is built.  The listeners here
refuse changes that would rewrite leasing history:

    session.flush()
         |
         v
    [before_flush]   --> unit still referenced by reservations? --> raise
         |
         v
    [before_update]  --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete]  --> _check_*_delete()       --> ImmutabilityViolationError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
TicketHistory   | Append-only: never updated, never deleted
Installment     | reservation_id, amount, due_date, sequence frozen after insert
Reservation     | Never deleted (soft lifecycle via status)
Unit            | Not deleted while any reservation references it

``updated_at``/``updated_by_id`` are audit metadata and may always change.

Usage:

    from leasing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # init_engine_from_url() calls this

Tests that need to bypass the rules call ``unregister_immutability_listeners()``
and re-register afterwards.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session

from leasing_kernel.exceptions import ImmutabilityViolationError
from leasing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

INSTALLMENT_FROZEN_FIELDS = frozenset({"reservation_id", "amount", "due_date", "sequence"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_ticket_history_immutability(mapper, connection, target):
    raise _blocked(
        "TicketHistory", target.id, "UPDATE", "Ticket history entries cannot be modified"
    )


def _check_ticket_history_delete(mapper, connection, target):
    raise _blocked(
        "TicketHistory", target.id, "DELETE", "Ticket history entries cannot be deleted"
    )


def _check_installment_immutability(mapper, connection, target):
    """Only status, paid_date and notes may change on a generated installment."""
    insp = inspect(target)
    for key in INSTALLMENT_FROZEN_FIELDS:
        if insp.attrs[key].history.has_changes():
            raise _blocked(
                "Installment",
                target.id,
                "UPDATE",
                f"Cannot modify field '{key}' on a generated installment",
                field=key,
            )


def _check_reservation_delete(mapper, connection, target):
    raise _blocked(
        "Reservation",
        target.id,
        "DELETE",
        "Reservations are never deleted; cancel or expire them instead",
    )


def _check_unit_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete a unit that any reservation references.

    Runs in SessionEvents.before_flush so the check happens before the
    flush plan is fixed.
    """
    from leasing_modules.reservation.orm import ReservationModel
    from leasing_modules.unit.orm import UnitModel

    for obj in list(session.deleted):
        if not isinstance(obj, UnitModel):
            continue
        with session.no_autoflush:
            referenced = session.scalar(
                select(func.count(ReservationModel.id)).where(
                    ReservationModel.unit_id == obj.id
                )
            )
        if referenced:
            raise _blocked(
                "Unit",
                obj.id,
                "DELETE",
                f"Unit is referenced by {referenced} reservation(s)",
            )


def _listeners():
    from leasing_modules.installment.orm import InstallmentModel
    from leasing_modules.reservation.orm import ReservationModel
    from leasing_modules.ticket.orm import TicketHistoryModel

    return (
        (Session, "before_flush", _check_unit_deletion_before_flush),
        (TicketHistoryModel, "before_update", _check_ticket_history_immutability),
        (TicketHistoryModel, "before_delete", _check_ticket_history_delete),
        (InstallmentModel, "before_update", _check_installment_immutability),
        (ReservationModel, "before_delete", _check_reservation_delete),
    )


def register_immutability_listeners():
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
