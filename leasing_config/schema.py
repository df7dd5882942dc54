"""
Settings schema.

Frozen dataclasses, validated on construction.  The loader builds them
from YAML and environment overrides; everything else receives a
``LeasingSettings`` instance and never reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from leasing_kernel.exceptions import ConfigurationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///leasing.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("database.url", "must not be empty")
        if self.pool_size < 1:
            raise ConfigurationError("database.pool_size", "must be at least 1")
        if self.max_overflow < 0:
            raise ConfigurationError("database.max_overflow", "must not be negative")


@dataclass(frozen=True)
class SweepSettings:
    cron_expression: str = "0 2 * * *"
    max_workers: int = 4
    item_timeout_ms: int = 5000
    reconcile_tickets: bool = True
    run_on_start: bool = False

    def __post_init__(self) -> None:
        from leasing_batch.domain.schedule import parse_cron

        try:
            parse_cron(self.cron_expression)
        except ValueError as exc:
            raise ConfigurationError("sweep.cron_expression", str(exc)) from exc
        if self.max_workers < 1:
            raise ConfigurationError("sweep.max_workers", "must be at least 1")
        if self.item_timeout_ms <= 0:
            raise ConfigurationError("sweep.item_timeout_ms", "must be positive")


@dataclass(frozen=True)
class ReservationSettings:
    expiring_soon_days: int = 30

    def __post_init__(self) -> None:
        if self.expiring_soon_days < 0:
            raise ConfigurationError("reservations.expiring_soon_days", "must not be negative")


@dataclass(frozen=True)
class LogSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ConfigurationError("logging.level", f"must be one of {', '.join(_LOG_LEVELS)}")


@dataclass(frozen=True)
class LeasingSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    sweep: SweepSettings = field(default_factory=SweepSettings)
    reservations: ReservationSettings = field(default_factory=ReservationSettings)
    logging: LogSettings = field(default_factory=LogSettings)
