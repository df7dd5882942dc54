"""
Typed exception hierarchy for the leasing engine.

Every error raised by the lifecycle code is a ``LeasingError`` subclass
with a machine-readable ``code`` class attribute and structured attributes
(set before the message is built), so callers catch by type and report by
field rather than by parsing messages.

    LeasingError
    |
    +-- ValidationError                  malformed input, never retried
    |   +-- InvalidDateRangeError
    |   +-- UnknownEnumValueError
    |   +-- InvalidDepositError
    |   +-- InvalidAmountError
    |
    +-- ConflictError                    business-rule violation
    |   +-- UnitNotAvailableError
    |   +-- OverlappingReservationError
    |   +-- DepositNotIncludedError
    |   +-- ExpenseAttributionError
    |   +-- InvalidTransitionError
    |   |   +-- OccupancyTransitionError
    |   |   +-- ReservationTransitionError
    |   |   +-- TicketTransitionError
    |   |   +-- DepositTransitionError
    |   |   +-- InstallmentTransitionError
    |   +-- ConcurrencyError
    |       +-- OptimisticLockError
    |
    +-- NotFoundError
    |   +-- BuildingNotFoundError, UnitNotFoundError,
    |       ReservationNotFoundError, TicketNotFoundError,
    |       InstallmentNotFoundError
    |
    +-- PermissionDeniedError
    +-- SideEffectFailure
    |   +-- MaintenanceTicketCreationError
    +-- ImmutabilityViolationError
    +-- ConfigurationError
    +-- BatchError
        +-- TaskNotRegisteredError

Services raise; only the engine facade and the batch executor roll back.
``SideEffectFailure`` is logged, never surfaced from a unit transition.
"""

from __future__ import annotations

from datetime import date
from typing import Any


class LeasingError(Exception):
    """Base exception for all leasing engine errors."""

    code: str = "LEASING_ERROR"


# Validation


class ValidationError(LeasingError):
    """Input is malformed; rejected synchronously."""

    code: str = "VALIDATION_ERROR"


class InvalidDateRangeError(ValidationError):
    """Start date is not strictly before end date."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Invalid date range: start {start_date} must be before end {end_date}"
        )


class UnknownEnumValueError(ValidationError):
    """A status/type string is not one of the closed set of values."""

    code: str = "UNKNOWN_ENUM_VALUE"

    def __init__(self, field: str, value: Any, allowed: tuple[str, ...]):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Unknown value {value!r} for {field}; expected one of {', '.join(allowed)}"
        )


class InvalidDepositError(ValidationError):
    """Deposit information is incomplete or inconsistent."""

    code: str = "INVALID_DEPOSIT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid deposit: {reason}")


class InvalidAmountError(ValidationError):
    """A monetary amount is missing, zero or negative where it must be positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Any):
        self.field = field
        self.amount = amount
        super().__init__(f"Invalid amount for {field}: {amount}")


# Conflicts


class ConflictError(LeasingError):
    """A business rule forbids the requested change."""

    code: str = "CONFLICT"


class UnitNotAvailableError(ConflictError):
    code: str = "UNIT_NOT_AVAILABLE"

    def __init__(self, unit_id: str, occupancy_status: str):
        self.unit_id = unit_id
        self.occupancy_status = occupancy_status
        super().__init__(
            f"Unit {unit_id} is not available (status: {occupancy_status})"
        )


class OverlappingReservationError(ConflictError):
    """Requested interval overlaps an active reservation on the same unit."""

    code: str = "OVERLAPPING_RESERVATION"

    def __init__(
        self,
        unit_id: str,
        existing_reservation_id: str,
        start_date: date,
        end_date: date,
    ):
        self.unit_id = unit_id
        self.existing_reservation_id = existing_reservation_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Unit {unit_id} already has active reservation "
            f"{existing_reservation_id} overlapping {start_date}..{end_date}"
        )


class DepositNotIncludedError(ConflictError):
    code: str = "DEPOSIT_NOT_INCLUDED"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} does not include a deposit")


class ExpenseAttributionError(ConflictError):
    """Unit/ticket references on an expense do not belong together."""

    code: str = "EXPENSE_ATTRIBUTION_MISMATCH"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Expense attribution mismatch: {reason}")


class InvalidTransitionError(ConflictError):
    """A state machine refused a transition."""

    code: str = "INVALID_TRANSITION"
    entity_type: str = "entity"

    def __init__(self, entity_id: str, from_state: str, to_state: str, reason: str = ""):
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = (
            f"Cannot transition {self.entity_type} {entity_id} "
            f"from {from_state} to {to_state}"
        )
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class OccupancyTransitionError(InvalidTransitionError):
    entity_type = "unit"


class ReservationTransitionError(InvalidTransitionError):
    entity_type = "reservation"


class TicketTransitionError(InvalidTransitionError):
    entity_type = "ticket"


class DepositTransitionError(InvalidTransitionError):
    entity_type = "deposit"


class InstallmentTransitionError(InvalidTransitionError):
    entity_type = "installment"


class ConcurrencyError(ConflictError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Lookups


class NotFoundError(LeasingError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.capitalize()} not found: {entity_id}")


class BuildingNotFoundError(NotFoundError):
    entity_type = "building"


class UnitNotFoundError(NotFoundError):
    entity_type = "unit"


class ReservationNotFoundError(NotFoundError):
    entity_type = "reservation"


class TicketNotFoundError(NotFoundError):
    entity_type = "ticket"


class InstallmentNotFoundError(NotFoundError):
    entity_type = "installment"


# Authorization


class PermissionDeniedError(LeasingError):
    """The acting role may not perform the operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, role: str, action: str):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        super().__init__(f"Actor {actor_id} ({role}) may not {action}")


# Side effects


class SideEffectFailure(LeasingError):
    """A best-effort follow-up failed after the primary change succeeded."""

    code: str = "SIDE_EFFECT_FAILURE"


class MaintenanceTicketCreationError(SideEffectFailure):
    code: str = "MAINTENANCE_TICKET_CREATION_FAILED"

    def __init__(self, unit_id: str, reservation_id: str, cause: str):
        self.unit_id = unit_id
        self.reservation_id = reservation_id
        self.cause = cause
        super().__init__(
            f"Could not open maintenance ticket for unit {unit_id} "
            f"(reservation {reservation_id}): {cause}"
        )


# Persistence


class ImmutabilityViolationError(LeasingError):
    """Attempted to modify or delete a protected record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class ConfigurationError(LeasingError):
    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting {setting}: {reason}")


# Batch


class BatchError(LeasingError):
    code: str = "BATCH_ERROR"


class TaskNotRegisteredError(BatchError):
    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No batch task registered for type: {task_type}")
