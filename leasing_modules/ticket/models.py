"""
Service Ticket Domain Models (``leasing_modules.ticket.models``).

Frozen value objects for maintenance, financial and administrative
tickets and their append-only status history.  ZERO I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class TicketType(Enum):
    FINANCIAL = "financial"
    MAINTENANCE = "maintenance"
    ADMINISTRATIVE = "administrative"


class TicketStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


OPEN_TICKET_STATUSES = (TicketStatus.PENDING, TicketStatus.IN_PROGRESS)


@dataclass(frozen=True)
class TicketHistoryEntry:
    """One appended status record."""
    sequence: int
    status: TicketStatus
    timestamp: datetime
    actor_id: UUID
    actor_role: str


@dataclass(frozen=True)
class ServiceTicket:
    id: UUID
    reservation_id: UUID
    ticket_type: TicketType
    status: TicketStatus
    description: str
    unit_id: UUID | None = None
    subtype: str | None = None
    is_expense_created: bool = False
    opened_by_id: UUID | None = None
    history: tuple[TicketHistoryEntry, ...] = field(default_factory=tuple)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TICKET_STATUSES


@dataclass(frozen=True)
class EditPermission:
    """What an actor may do to a ticket in its current status."""
    can_edit: bool
    can_change_status: bool
