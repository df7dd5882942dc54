"""
Module: leasing_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and per-transaction statement timeouts.  Single point of database connection
    configuration for the leasing engine.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py; engine init and create_tables() import the module
    ORM registry and arm the immutability listeners.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with QueuePool and pre-ping; stronger
      per-unit serialization comes from SELECT ... FOR UPDATE on the unit row.
    - SQLite (tests, local runs) opens every transaction with BEGIN IMMEDIATE,
      so concurrent writers queue on the database lock instead of both
      passing a check-then-insert.  SQLAlchemy drops FOR UPDATE on SQLite.

Failure modes:
    - RuntimeError if get_engine/get_session_factory called before
      init_engine_from_url().
    - OperationalError ("database is locked") on SQLite if a writer waits
      longer than the busy timeout.
"""

import atexit

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from leasing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_locking(engine: Engine) -> None:
    """Take pysqlite's transaction handling over so BEGIN IMMEDIATE is emitted."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _arm_immutability_listeners() -> None:
    from leasing_kernel.db.immutability import register_immutability_listeners
    from leasing_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    register_immutability_listeners()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": pool_timeout},
        )
        _install_sqlite_locking(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    _arm_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    The engine facade and the batch executor open one session per call or
    per item from this factory.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def apply_statement_timeout(session: Session, timeout_ms: int) -> None:
    """Bound every statement in the current transaction (PostgreSQL only)."""
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def create_tables() -> None:
    """
    Create all leasing tables and make sure the immutability listeners are armed.

    Raises:
        RuntimeError: If engine is not initialized.
    """
    from leasing_kernel.db.base import Base

    engine = get_engine()
    engine.dispose()

    _arm_immutability_listeners()
    Base.metadata.create_all(engine)

    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.tables)},
    )


def drop_tables() -> None:
    """Drop all tables. Primarily for testing."""
    from leasing_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose and forget the engine and session factory (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
