from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..core.db import SQLITE_BUSY_TIMEOUT_OPTION, is_conflict, translate_db_error
from ..core.errors import LedgerError, StorageError, TransferTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Deadline:
    expires_at: Optional[float]
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def after(cls, timeout: Optional[float], clock: Callable[[], float] = time.monotonic) -> "Deadline":
        if timeout is None:
            return cls(None, clock)
        return cls(clock() + timeout, clock)

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self.clock() >= self.expires_at


class UnitOfWork:
    """Handle passed to code running inside a transaction scope."""

    def __init__(self, session: Session, deadline: Deadline) -> None:
        self.session = session
        self.deadline = deadline
        self.lock_wait_bounded = False

    def check_deadline(self) -> None:
        if self.deadline.expired():
            raise TransferTimeoutError("Deadline exceeded before the transaction completed")


class TransactionManager:
    """Opens one unit of work per call and guarantees it is released.

    Success commits; any exception rolls back and propagates the original
    error. A failing commit is reported as ConflictError when the store
    detected a serialization conflict or deadlock, StorageError otherwise.
    """

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.monotonic) -> None:
        self.engine = engine
        self.clock = clock

    def _bound_lock_waits(self, uow: UnitOfWork) -> None:
        """Cap store-side waiting at the time left before the deadline."""
        remaining = uow.deadline.remaining()
        if remaining is None:
            return
        remaining_ms = max(1, int(remaining * 1000))
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            # Applied before BEGIN IMMEDIATE, which is where SQLite waits for the lock.
            uow.lock_wait_bounded = True
            uow.session.connection(execution_options={SQLITE_BUSY_TIMEOUT_OPTION: remaining_ms})
        elif dialect == "postgresql":
            uow.session.exec(
                text("SELECT set_config('statement_timeout', :ms, true)").bindparams(
                    ms=str(remaining_ms)
                )
            )

    def _translate_in_scope(self, uow: UnitOfWork, exc: SQLAlchemyError, operation: str) -> LedgerError:
        # A lock wait cut short by the deadline is a timeout, not a conflict.
        if uow.deadline.expired() or (uow.lock_wait_bounded and is_conflict(exc)):
            logger.warning("transaction.TimeoutError", extra={"operation": operation})
            return TransferTimeoutError(f"{operation} exceeded its deadline")
        return self._translate(exc, operation)

    def _rollback(self, session: Session, operation: str) -> None:
        # The original error is the one the caller needs to see.
        try:
            session.rollback()
        except SQLAlchemyError:
            logger.exception("transaction.rollback_failed", extra={"operation": operation})

    def _translate(self, exc: SQLAlchemyError, operation: str) -> LedgerError:
        error = translate_db_error(exc, operation)
        if isinstance(error, StorageError):
            logger.exception("storage.error", extra={"operation": operation})
        else:
            logger.warning("transaction.%s", error.kind, extra={"operation": operation})
        return error

    @contextmanager
    def unit_of_work(
        self,
        timeout: Optional[float] = None,
        operation: str = "transaction",
    ) -> Iterator[UnitOfWork]:
        deadline = Deadline.after(timeout, self.clock)
        session = Session(self.engine, expire_on_commit=False)
        uow = UnitOfWork(session, deadline)
        try:
            try:
                uow.check_deadline()
                self._bound_lock_waits(uow)
                uow.check_deadline()
                yield uow
                uow.check_deadline()
            except SQLAlchemyError as exc:
                self._rollback(session, operation)
                raise self._translate_in_scope(uow, exc, operation) from exc
            except BaseException:
                self._rollback(session, operation)
                raise

            try:
                session.commit()
            except SQLAlchemyError as exc:
                self._rollback(session, operation)
                raise self._translate(exc, f"{operation}.commit") from exc
        finally:
            session.close()

    def with_transaction(
        self,
        fn: Callable[[UnitOfWork], T],
        timeout: Optional[float] = None,
        operation: str = "transaction",
    ) -> T:
        with self.unit_of_work(timeout=timeout, operation=operation) as uow:
            return fn(uow)
