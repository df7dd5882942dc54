"""
leasing_config -- settings for the leasing engine.

``load_settings()`` is the single way to obtain settings: an optional YAML
file plus ``LEASING_*`` environment overrides, validated into frozen
dataclasses.  The kernel and modules never import this package.
"""

from leasing_config.loader import load_settings
from leasing_config.schema import (
    DatabaseSettings,
    LeasingSettings,
    LogSettings,
    ReservationSettings,
    SweepSettings,
)

__all__ = [
    "DatabaseSettings",
    "LeasingSettings",
    "LogSettings",
    "ReservationSettings",
    "SweepSettings",
    "load_settings",
]
