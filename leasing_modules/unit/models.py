"""
Unit Domain Models (``leasing_modules.unit.models``).

Buildings, units and the result of an occupancy transition.  ZERO I/O.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class OccupancyStatus(Enum):
    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"


@dataclass(frozen=True)
class Building:
    id: UUID
    name: str
    company_id: UUID | None = None
    address: str | None = None


@dataclass(frozen=True)
class Unit:
    id: UUID
    building_id: UUID
    unit_number: str
    monthly_rate: Decimal
    occupancy_status: OccupancyStatus = OccupancyStatus.AVAILABLE
    version: int = 1


@dataclass(frozen=True)
class UnitTransitionResult:
    """Outcome of ``UnitOccupancyService.transition``: the unit plus any ticket the hook produced."""
    unit: Unit
    previous_status: OccupancyStatus
    ticket_id: UUID | None = None
    ticket_created: bool = False

    @property
    def changed(self) -> bool:
        return self.previous_status != self.unit.occupancy_status
