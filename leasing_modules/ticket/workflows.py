"""
Service-Ticket State Machine.

    pending --start--> in-progress --complete--> completed
       |                   |
       +-----reject--------+--------reject-----> rejected

Each status carries a priority; a transition may never lower it, and
``completed``/``rejected`` are terminal.  All three rules are checked in
``validate_transition`` so no other code compares status strings.
"""

from leasing_kernel.domain.values import Actor
from leasing_kernel.domain.workflow import Transition, Workflow
from leasing_kernel.exceptions import TicketTransitionError
from leasing_kernel.logging_config import get_logger
from leasing_modules.ticket.models import EditPermission, TicketStatus

logger = get_logger("modules.ticket.workflows")


TICKET_PRIORITY: dict[TicketStatus, int] = {
    TicketStatus.PENDING: 1,
    TicketStatus.IN_PROGRESS: 2,
    TicketStatus.COMPLETED: 3,
    TicketStatus.REJECTED: 3,
}

TICKET_WORKFLOW = Workflow(
    name="service_ticket",
    description="Maintenance, financial and administrative ticket handling",
    initial_state="pending",
    states=tuple(s.value for s in TicketStatus),
    transitions=(
        Transition("pending", "in-progress", action="start"),
        Transition("pending", "rejected", action="reject"),
        Transition("in-progress", "completed", action="complete"),
        Transition("in-progress", "rejected", action="reject"),
    ),
    terminal_states=("completed", "rejected"),
)

logger.info(
    "ticket_workflow_registered",
    extra={
        "workflow_name": TICKET_WORKFLOW.name,
        "state_count": len(TICKET_WORKFLOW.states),
        "transition_count": len(TICKET_WORKFLOW.transitions),
    },
)


def is_terminal(status: TicketStatus) -> bool:
    return TICKET_WORKFLOW.is_terminal(status.value)


def validate_transition(
    ticket_id: str,
    current: TicketStatus,
    new: TicketStatus,
) -> Transition:
    """
    Return the declared transition or raise.

    Raises:
        TicketTransitionError: current status is terminal, the new status
            has a lower priority, or the pair is not declared.
    """
    if is_terminal(current):
        raise TicketTransitionError(ticket_id, current.value, new.value, "ticket is closed")
    if TICKET_PRIORITY[new] < TICKET_PRIORITY[current]:
        raise TicketTransitionError(
            ticket_id, current.value, new.value, "status cannot move backward"
        )
    transition = TICKET_WORKFLOW.find(current.value, new.value)
    if transition is None:
        raise TicketTransitionError(
            ticket_id, current.value, new.value, "transition not allowed"
        )
    return transition


def allowed_next_statuses(current: TicketStatus) -> tuple[TicketStatus, ...]:
    return tuple(TicketStatus(s) for s in TICKET_WORKFLOW.targets(current.value))


def edit_permission(current: TicketStatus, actor: Actor) -> EditPermission:
    """Tenants may edit only pending tickets and never move their status."""
    if actor.is_tenant:
        return EditPermission(
            can_edit=current == TicketStatus.PENDING,
            can_change_status=False,
        )
    closed = is_terminal(current)
    return EditPermission(can_edit=not closed, can_change_status=not closed)
