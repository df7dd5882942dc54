"""Reservation lifecycle workflow."""

from leasing_kernel.domain.workflow import Transition, Workflow
from leasing_kernel.logging_config import get_logger

logger = get_logger("modules.reservation.workflows")


RESERVATION_WORKFLOW = Workflow(
    name="reservation_lifecycle",
    description="Soft lifecycle of a unit reservation",
    initial_state="active",
    states=("active", "expired", "cancelled"),
    transitions=(
        Transition("active", "expired", action="expire"),
        Transition("active", "cancelled", action="cancel"),
    ),
    terminal_states=("expired", "cancelled"),
)

logger.info(
    "reservation_workflow_registered",
    extra={
        "workflow_name": RESERVATION_WORKFLOW.name,
        "state_count": len(RESERVATION_WORKFLOW.states),
        "transition_count": len(RESERVATION_WORKFLOW.transitions),
    },
)
