"""
Service Ticket Module (``leasing_modules.ticket``).

Service-Ticket State Machine with an append-only status history.
"""

from leasing_modules.ticket.models import (
    EditPermission,
    ServiceTicket,
    TicketHistoryEntry,
    TicketStatus,
    TicketType,
)

__all__ = [
    "EditPermission",
    "ServiceTicket",
    "TicketHistoryEntry",
    "TicketStatus",
    "TicketType",
]
