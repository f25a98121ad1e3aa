from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import SQLModel, create_engine

from ..models import db as _db_models  # noqa: F401 - ensure models register with metadata
from .config import Settings, get_settings
from .errors import ConflictError, LedgerError, StorageError, TransferTimeoutError

# serialization_failure, deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}
# query_canceled (statement_timeout), lock_not_available (lock_timeout)
_TIMEOUT_SQLSTATES = {"57014", "55P03"}
_SQLITE_CONFLICT_MESSAGES = ("database is locked", "database table is locked")


# Execution option carrying the lock wait, in milliseconds, for one SQLite transaction.
SQLITE_BUSY_TIMEOUT_OPTION = "ledger_sqlite_busy_timeout_ms"


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/") == "sqlite:"
    )


def _enable_immediate_transactions(engine: Engine, default_busy_timeout_ms: int) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock at BEGIN
    # instead so a read-check-write sequence cannot interleave with another one.
    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn) -> None:
        busy_timeout_ms = conn.get_execution_options().get(
            SQLITE_BUSY_TIMEOUT_OPTION, default_busy_timeout_ms
        )
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for_url(database_url: str, settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    if _is_memory_sqlite(database_url):
        # Each pooled connection would open its own empty database.
        raise ValueError("In-memory SQLite is not supported; use a file-backed database")

    connect_args: dict[str, Any] = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": settings.sqlite_busy_timeout}

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=not is_sqlite,
    )
    if is_sqlite:
        _enable_immediate_transactions(engine, int(settings.sqlite_busy_timeout * 1000))
    return engine


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def sqlstate_of(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: SQLAlchemyError) -> bool:
    if sqlstate_of(exc) in _CONFLICT_SQLSTATES:
        return True
    if isinstance(exc, DBAPIError):
        message = str(exc.orig).lower()
        return any(marker in message for marker in _SQLITE_CONFLICT_MESSAGES)
    return False


def is_timeout(exc: SQLAlchemyError) -> bool:
    return isinstance(exc, PoolTimeoutError) or sqlstate_of(exc) in _TIMEOUT_SQLSTATES


def translate_db_error(exc: SQLAlchemyError, operation: str) -> LedgerError:
    """Map a SQLAlchemy failure onto the ledger error taxonomy."""
    if is_timeout(exc):
        return TransferTimeoutError(f"{operation} timed out waiting on the store")
    if is_conflict(exc):
        return ConflictError(f"{operation} conflicted with a concurrent transaction")
    return StorageError("Internal storage failure", operation=operation)
