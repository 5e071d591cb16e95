"""
SQLite connections for the pkgsync store.

Every connection handed out here runs in WAL journal mode, enforces
foreign keys and yields rows as plain dicts. The sync path opens
autocommit connections and brackets each unit of work with explicit
BEGIN IMMEDIATE / COMMIT (see pool.py); the report commands use
get_connection() for short read-only sessions.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pkgsync.core.db.schema import create_schema, needs_migration

DEFAULT_BUSY_TIMEOUT = 30.0

Params = tuple[Any, ...] | dict[str, Any] | None


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    names = (description[0] for description in cursor.description)
    return dict(zip(names, row))


def configure_connection(conn: sqlite3.Connection) -> None:
    """Apply the pragmas and row factory shared by all pkgsync connections."""
    for pragma in ("journal_mode=WAL", "foreign_keys=ON"):
        conn.execute(f"PRAGMA {pragma}")
    conn.row_factory = dict_factory


def connect(
    db_path: Path | str,
    *,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    autocommit: bool = False,
) -> sqlite3.Connection:
    """
    Open a configured connection to `db_path`.

    With autocommit=True the sqlite3 module never opens transactions on
    its own, so the caller owns BEGIN/COMMIT/ROLLBACK. The connection may
    be used from a thread other than the one that opened it.
    """
    conn = sqlite3.connect(
        str(db_path),
        timeout=busy_timeout,
        isolation_level=None if autocommit else "",
        check_same_thread=False,
    )
    configure_connection(conn)
    return conn


def init_db(db_path: Path | str, *, force_recreate: bool = False) -> sqlite3.Connection:
    """
    Make sure `db_path` holds an up-to-date schema and return a connection to it.

    Missing parent directories are created. force_recreate deletes any
    existing file first, discarding all stored data.
    """
    path = Path(db_path)
    if force_recreate:
        path.unlink(missing_ok=True)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(path)
    if needs_migration(conn):
        create_schema(conn)
    return conn


@contextmanager
def get_connection(db_path: Path | str) -> Iterator[sqlite3.Connection]:
    """
    Context-managed connection, initialising the file on first use.

    An exception inside the block rolls back whatever was pending; the
    connection is closed on the way out either way.
    """
    path = Path(db_path)
    if not path.exists():
        init_db(path).close()

    conn = connect(path)
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute_query(conn: sqlite3.Connection, query: str, params: Params = None) -> list[dict[str, Any]]:
    return conn.execute(query, params or ()).fetchall()


def execute_one(conn: sqlite3.Connection, query: str, params: Params = None) -> dict[str, Any] | None:
    """Run `query` and return its first row, or None when it matched nothing."""
    row: dict[str, Any] | None = conn.execute(query, params or ()).fetchone()
    return row
