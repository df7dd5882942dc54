"""
Unit Module (``leasing_modules.unit``).

Unit Occupancy Controller: transition table, provisioning, occupancy
service and post-transition hooks.
"""

from leasing_modules.unit.models import (
    Building,
    OccupancyStatus,
    Unit,
    UnitTransitionResult,
)

__all__ = [
    "Building",
    "OccupancyStatus",
    "Unit",
    "UnitTransitionResult",
]
