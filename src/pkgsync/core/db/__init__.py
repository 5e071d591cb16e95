"""
SQLite persistence for pkgsync.

Usage:
    from pkgsync.core.db import PersistenceGateway, get_connection, init_db

    init_db(db_path).close()

    with get_connection(db_path) as conn:
        gateway = PersistenceGateway(conn)
        org_id = gateway.upsert_organization("acme")
        conn.commit()

Async callers go through TransactionPool, which bounds concurrent
transactions and runs each one on a worker thread.
"""

from pkgsync.core.db.connection import (
    configure_connection,
    connect,
    dict_factory,
    execute_one,
    execute_query,
    get_connection,
    init_db,
)
from pkgsync.core.db.gateway import PersistenceGateway
from pkgsync.core.db.pool import TransactionPool
from pkgsync.core.db.schema import SCHEMA_VERSION, create_schema, get_schema_version

__all__ = [
    "SCHEMA_VERSION",
    "PersistenceGateway",
    "TransactionPool",
    "configure_connection",
    "connect",
    "create_schema",
    "dict_factory",
    "execute_one",
    "execute_query",
    "get_connection",
    "get_schema_version",
    "init_db",
]
