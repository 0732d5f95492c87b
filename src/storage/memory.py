"""
In-memory storage backend.

This backend keeps ledger records in memory only, useful for:
- Unit testing
- Development
- Ephemeral ledgers
"""

import copy
from typing import Any

from storage.base import StorageBackend


class MemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    All data is lost when the process exits. Thread-safe operations.
    """

    def __init__(self):
        """Initialize empty memory storage."""
        super().__init__()
        self._records: dict[str, dict[str, Any]] = {}
        self._events: list[dict[str, Any]] = []

    def _read_record(self, key: str, handle: Any = None) -> dict[str, Any] | None:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def _read_events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def _list_records(self, prefix: str) -> list[dict[str, Any]]:
        return [
            record for key, record in sorted(self._records.items())
            if key.startswith(prefix)
        ]

    def _write_batch(
        self,
        handle: Any,
        records: dict[str, dict[str, Any]],
        events: list[dict[str, Any]],
    ) -> None:
        # Plain dict/list updates cannot fail halfway for JSON-shaped data
        self._records.update(copy.deepcopy(records))
        self._events.extend(copy.deepcopy(events))

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        with self._lock:
            info.update(
                {
                    "record_count": len(self._records),
                    "event_count": len(self._events),
                }
            )
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._records = {}
            self._events = []
