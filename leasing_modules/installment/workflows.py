"""Installment status workflow."""

from leasing_kernel.domain.workflow import Transition, Workflow
from leasing_kernel.logging_config import get_logger

logger = get_logger("modules.installment.workflows")


INSTALLMENT_WORKFLOW = Workflow(
    name="installment_status",
    description="Payment status of a single scheduled installment",
    initial_state="pending",
    states=("pending", "paid", "delayed", "cancelled"),
    transitions=(
        Transition("pending", "paid", action="mark_paid"),
        Transition("pending", "delayed", action="mark_delayed"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("delayed", "paid", action="mark_paid"),
        Transition("delayed", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)

logger.info(
    "installment_workflow_registered",
    extra={
        "workflow_name": INSTALLMENT_WORKFLOW.name,
        "state_count": len(INSTALLMENT_WORKFLOW.states),
        "transition_count": len(INSTALLMENT_WORKFLOW.transitions),
    },
)
