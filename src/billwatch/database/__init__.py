"""Database module - connection management, storage and indexes."""

from billwatch.database.connection import create_client, open_database, ping
from billwatch.database.indexes import create_all_indexes
from billwatch.database.storage import BillStore, SnapshotStore

__all__ = [
    "create_client",
    "open_database",
    "ping",
    "create_all_indexes",
    "BillStore",
    "SnapshotStore",
]
