"""
Unit Occupancy Controller -- transition table and pure ``transition``.

    from         to            guard
    available    rented        caller has ruled out conflicting reservations
    available    maintenance   -
    rented       maintenance   -
    maintenance  rented        -
    maintenance  available     no active reservation ending today or later
    rented       available     no active reservation at all (manual release)

A request for the current status is a no-op and returns the unit as is.
"""

from dataclasses import replace

from leasing_kernel.domain.workflow import Guard, Transition, Workflow
from leasing_kernel.exceptions import OccupancyTransitionError
from leasing_kernel.logging_config import get_logger
from leasing_modules.unit.models import OccupancyStatus, Unit

logger = get_logger("modules.unit.workflows")


NO_CURRENT_RESERVATION = Guard(
    "no_current_reservation",
    "No active reservation on the unit ends today or later",
)
NO_ACTIVE_RESERVATION = Guard(
    "no_active_reservation",
    "Every reservation on the unit has been cancelled or expired",
)

UNIT_OCCUPANCY_WORKFLOW = Workflow(
    name="unit_occupancy",
    description="Physical usability state of a unit",
    initial_state="available",
    states=("available", "rented", "maintenance"),
    transitions=(
        Transition("available", "rented", action="rent"),
        Transition("available", "maintenance", action="start_maintenance"),
        Transition("rented", "maintenance", action="start_maintenance"),
        Transition("maintenance", "rented", action="finish_maintenance"),
        Transition("maintenance", "available", action="finish_maintenance", guard=NO_CURRENT_RESERVATION),
        Transition("rented", "available", action="release", guard=NO_ACTIVE_RESERVATION),
    ),
)

logger.info(
    "unit_occupancy_workflow_registered",
    extra={
        "workflow_name": UNIT_OCCUPANCY_WORKFLOW.name,
        "state_count": len(UNIT_OCCUPANCY_WORKFLOW.states),
        "transition_count": len(UNIT_OCCUPANCY_WORKFLOW.transitions),
    },
)


def transition(
    unit: Unit,
    target: OccupancyStatus,
    has_active_reservation: bool,
    has_any_active_reservation: bool | None = None,
) -> Unit:
    """
    Apply an occupancy transition to ``unit``.

    Args:
        has_active_reservation: an ``active`` reservation on the unit ends
            today or later.
        has_any_active_reservation: any ``active`` reservation exists,
            including one whose end date has passed but which the sweep has
            not expired yet.  Defaults to ``has_active_reservation``.

    Raises:
        OccupancyTransitionError: the pair is not declared or its guard fails.
    """
    if has_any_active_reservation is None:
        has_any_active_reservation = has_active_reservation

    current = unit.occupancy_status
    if current == target:
        return unit

    declared = UNIT_OCCUPANCY_WORKFLOW.find(current.value, target.value)
    if declared is None:
        raise OccupancyTransitionError(str(unit.id), current.value, target.value)

    if declared.guard is NO_CURRENT_RESERVATION and has_active_reservation:
        raise OccupancyTransitionError(
            str(unit.id),
            current.value,
            target.value,
            "an active reservation has not ended",
        )
    if declared.guard is NO_ACTIVE_RESERVATION and has_any_active_reservation:
        raise OccupancyTransitionError(
            str(unit.id),
            current.value,
            target.value,
            "cancel or expire the reservation before releasing the unit",
        )

    return replace(unit, occupancy_status=target)
