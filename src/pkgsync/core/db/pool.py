"""
Bounded async transaction pool over SQLite.

Each transaction runs on a worker thread (asyncio.to_thread) with its own
connection, so the event loop never blocks on the database. At most
``concurrency`` transactions are in flight at once, however many callers
are waiting.

A transaction may carry a deadline (time.monotonic() value). Waiting for
a slot, waiting for the SQLite write lock and the work itself all count
against it. If it has passed when the work finishes, the transaction is
rolled back and TransactionTimeoutError is raised, so a late unit of work
never commits.

Example:
    >>> pool = TransactionPool(Path(".pkgsync/pkgsync.db"), concurrency=5)
    >>> await pool.initialize()
    >>> org_id = await pool.run(lambda gw: gw.upsert_organization("acme"))
"""

import asyncio
import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from pkgsync.core.db.connection import DEFAULT_BUSY_TIMEOUT, connect, init_db
from pkgsync.core.db.gateway import PersistenceGateway
from pkgsync.core.exceptions import PersistenceError, TransactionTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionPool:
    """Semaphore-bounded executor of gateway transactions."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        concurrency: int = 5,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
        transaction_timeout: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if transaction_timeout <= 0:
            raise ValueError("transaction_timeout must be positive")
        self.db_path = Path(db_path)
        self.concurrency = concurrency
        self.busy_timeout = busy_timeout
        self.transaction_timeout = transaction_timeout
        self._semaphore = asyncio.Semaphore(concurrency)
        self.active = 0
        self.peak_active = 0

    async def initialize(self) -> None:
        """Create the database file and schema if needed."""
        conn = await asyncio.to_thread(init_db, self.db_path)
        conn.close()

    async def run(
        self,
        work: Callable[[PersistenceGateway], T],
        *,
        deadline: float | None = None,
        write: bool = True,
    ) -> T:
        """
        Run work(gateway) inside one transaction.

        Args:
            work: Synchronous callable receiving a PersistenceGateway
            deadline: Optional time.monotonic() value the commit must beat
            write: Take the write lock up front (BEGIN IMMEDIATE)

        Returns:
            Whatever work returns

        Raises:
            TransactionTimeoutError: If the deadline passed; nothing was committed
            PersistenceError: On other SQLite operational failures
            Exception: Anything work raises, after rollback
        """
        async with self._semaphore:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                return await asyncio.to_thread(self._run_sync, work, deadline, write)
            finally:
                self.active -= 1

    def new_deadline(self) -> float:
        """Deadline for a unit of work starting now."""
        return time.monotonic() + self.transaction_timeout

    def _remaining(self, deadline: float | None) -> float:
        if deadline is None:
            return self.busy_timeout
        return min(self.busy_timeout, deadline - time.monotonic())

    def _timeout_error(self, stage: str) -> TransactionTimeoutError:
        return TransactionTimeoutError(
            f"Transaction exceeded {self.transaction_timeout:g}s deadline {stage}; rolled back",
            timeout=self.transaction_timeout,
            stage=stage,
        )

    def _run_sync(
        self,
        work: Callable[[PersistenceGateway], T],
        deadline: float | None,
        write: bool,
    ) -> T:
        remaining = self._remaining(deadline)
        if remaining <= 0:
            raise self._timeout_error("before start")

        conn = connect(self.db_path, busy_timeout=remaining, autocommit=True)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            except sqlite3.OperationalError as e:
                if deadline is not None:
                    raise self._timeout_error("waiting for the write lock") from e
                raise PersistenceError(f"Could not begin transaction: {e}") from e

            try:
                result = work(PersistenceGateway(conn))
                if deadline is not None and time.monotonic() > deadline:
                    raise self._timeout_error("before commit")
                conn.execute("COMMIT")
                return result
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.OperationalError as e:
            raise PersistenceError(f"Database operation failed: {e}", path=str(self.db_path)) from e
        finally:
            conn.close()
