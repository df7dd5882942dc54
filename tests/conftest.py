"""
Pytest fixtures for the leasing engine test suite.

Provides:
- A fresh database per test (file-backed SQLite under tmp_path, or the
  PostgreSQL database named by DATABASE_URL)
- A DeterministicClock pinned to 2024-01-01
- Actors, a LeasingEngine facade, a provisioned building and unit
- captured_logs: structured log lines as parsed JSON dicts

Environment Variables:
- DATABASE_URL: postgresql://... to run against PostgreSQL instead of SQLite.
  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from leasing_config.schema import LeasingSettings, SweepSettings
from leasing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from leasing_kernel.domain.clock import DeterministicClock
from leasing_kernel.domain.values import Actor, ActorRole
from leasing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from leasing_services.lifecycle_engine import LeasingEngine


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture leasing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, leasing):
            leasing.create_reservation(...)
            assert any(r["message"] == "reservation_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("leasing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


def get_database_url(tmp_path) -> str:
    url = os.environ.get("DATABASE_URL")
    if url and url.startswith("postgresql"):
        return url
    return f"sqlite:///{tmp_path / 'leasing.db'}"


def is_postgres_run() -> bool:
    return os.environ.get("DATABASE_URL", "").startswith("postgresql")


@pytest.fixture
def database(tmp_path):
    """Initialize the engine and a clean schema; dispose afterwards."""
    init_engine_from_url(get_database_url(tmp_path), pool_size=10, max_overflow=10)
    if is_postgres_run():
        drop_tables()
    create_tables()
    yield
    reset_engine()


@pytest.fixture
def session_factory(database):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A plain session for direct reads; rolled back and closed afterwards."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock.on(date(2024, 1, 1))


@pytest.fixture
def manager():
    return Actor(id=uuid4(), role=ActorRole.MANAGER)


@pytest.fixture
def admin():
    return Actor(id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def tenant():
    return Actor(id=uuid4(), role=ActorRole.TENANT)


@pytest.fixture
def settings():
    return LeasingSettings(sweep=SweepSettings(max_workers=2, item_timeout_ms=2000))


@pytest.fixture
def leasing(session_factory, clock, settings):
    return LeasingEngine(session_factory, clock=clock, settings=settings)


@pytest.fixture
def building(leasing, manager):
    return leasing.create_building("Harbor View", manager, address="1 Quay St")


@pytest.fixture
def unit(leasing, building, manager):
    return leasing.create_unit(building.id, "101", Decimal("1000.00"), manager)


@pytest.fixture
def make_unit(leasing, building, manager):
    """Factory for extra units in the same building."""
    counter = iter(range(200, 10_000))

    def _make(monthly_rate: Decimal = Decimal("1000.00")):
        return leasing.create_unit(building.id, str(next(counter)), monthly_rate, manager)

    return _make


@pytest.fixture
def reserve(leasing, unit, tenant, manager):
    """Create a reservation on ``unit`` (defaults: tenant, H1 2024, monthly)."""

    def _reserve(
        start: date = date(2024, 1, 1),
        end: date = date(2024, 6, 30),
        frequency: str = "monthly",
        unit_id=None,
        tenant_id=None,
        deposit=None,
    ):
        return leasing.create_reservation(
            unit_id or unit.id,
            tenant_id or tenant.id,
            start,
            end,
            frequency,
            manager,
            deposit=deposit,
        )

    return _reserve
