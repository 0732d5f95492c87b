"""
Storage abstraction layer for RevLedger.

This package provides a pluggable record store so the ledger can be
persisted to different storage systems:

- JSON file (default)
- PostgreSQL (for production scalability)
- Memory (for testing)

Usage:
    from storage import get_storage_backend

    store = get_storage_backend()

    with store.transaction() as txn:
        txn.put("distributor", {...})

    record = store.get("distributor")
"""

import os
from typing import TYPE_CHECKING

from storage.base import (
    StorageBackend,
    StorageError,
    StoreTransaction,
    TransactionParticipant,
)
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

# Lazy import for PostgreSQL to avoid requiring psycopg2
if TYPE_CHECKING:
    from storage.postgresql import PostgreSQLStorage

__all__ = [
    "JSONFileStorage",
    "MemoryStorage",
    "StorageBackend",
    "StorageError",
    "StoreTransaction",
    "TransactionParticipant",
    "get_storage_backend",
]


def get_storage_backend(
    backend_type: str | None = None,
    data_file: str | None = None,
    database_url: str | None = None,
) -> StorageBackend:
    """
    Get a storage backend, falling back to environment variables.

    Environment variables:
        STORAGE_BACKEND: Backend type ("json", "postgresql", "memory")
        LEDGER_DATA_FILE: Path for JSON file storage (default: ledger_data.json)
        DATABASE_URL: PostgreSQL connection URL

    Returns:
        Configured StorageBackend instance
    """
    backend_type = (backend_type or os.getenv("STORAGE_BACKEND", "json")).lower()

    if backend_type == "json":
        return JSONFileStorage(data_file or os.getenv("LEDGER_DATA_FILE", "ledger_data.json"))

    elif backend_type == "postgresql" or backend_type == "postgres":
        database_url = database_url or os.getenv("DATABASE_URL")
        if not database_url:
            raise StorageError("DATABASE_URL environment variable required for PostgreSQL backend")
        from storage.postgresql import PostgreSQLStorage

        return PostgreSQLStorage(database_url)

    elif backend_type == "memory":
        return MemoryStorage()

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")
