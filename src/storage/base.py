"""
Abstract base class for ledger record stores.

This module defines the interface that all storage backends must implement:
keyed record reads, an append-only event log, and a transaction scope that
applies every staged write at once or none of them.
"""

import copy
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageConnectionError(StorageError):
    """Raised when connection to storage backend fails."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class TransactionParticipant:
    """
    Collaborator that joins a store transaction.

    begin() runs once the store lock is held, commit() after the store has
    committed, rollback() if anything in the scope (including the store
    commit itself) failed.
    """

    def begin(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass


class StoreTransaction:
    """
    Staged view of the store inside a transaction.

    Reads see this transaction's own staged writes first, then committed
    state. Nothing is visible to other readers until the scope exits cleanly.
    """

    def __init__(self, backend: "StorageBackend", handle: Any = None):
        self._backend = backend
        self._handle = handle
        self._records: dict[str, dict[str, Any]] = {}
        self._events: list[dict[str, Any]] = []

    def get(self, key: str) -> dict[str, Any] | None:
        if key in self._records:
            return copy.deepcopy(self._records[key])
        return self._backend._read_record(key, self._handle)

    def put(self, key: str, record: dict[str, Any]) -> None:
        self._records[key] = copy.deepcopy(record)

    def append_event(self, event: dict[str, Any]) -> None:
        self._events.append(copy.deepcopy(event))

    @property
    def pending_records(self) -> dict[str, dict[str, Any]]:
        return self._records

    @property
    def pending_events(self) -> list[dict[str, Any]]:
        return self._events


class StorageBackend(ABC):
    """
    Abstract base class for ledger storage backends.

    Subclasses provide raw reads and an atomic batch write; this class
    provides locking, staging and participant coordination.
    """

    def __init__(self):
        # RLock so a reader inside a transaction does not deadlock itself
        self._lock = threading.RLock()

    # Backend hooks

    @abstractmethod
    def _read_record(self, key: str, handle: Any = None) -> dict[str, Any] | None:
        """
        Read a committed record.

        Args:
            key: Record key
            handle: Backend transaction handle from _begin(), or None

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def _read_events(self) -> list[dict[str, Any]]:
        """Read the committed event log in append order."""
        pass

    @abstractmethod
    def _write_batch(
        self,
        handle: Any,
        records: dict[str, dict[str, Any]],
        events: list[dict[str, Any]],
    ) -> None:
        """
        Apply staged records and events atomically.

        Raises:
            StorageWriteError: If writing fails (nothing must be applied)
        """
        pass

    @abstractmethod
    def _list_records(self, prefix: str) -> list[dict[str, Any]]:
        """Return committed records whose key starts with prefix."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the storage backend is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def _begin(self) -> Any:
        """Open a backend transaction. Default backends need no handle."""
        return None

    def _rollback(self, handle: Any) -> None:
        """Discard a backend transaction."""
        pass

    # Public interface

    def get(self, key: str) -> dict[str, Any] | None:
        """Read a committed record (a copy) or None if absent."""
        with self._lock:
            record = self._read_record(key)
            return copy.deepcopy(record) if record is not None else None

    def list_records(self, prefix: str) -> list[dict[str, Any]]:
        """Read all committed records under a key prefix."""
        with self._lock:
            return copy.deepcopy(self._list_records(prefix))

    def get_events(
        self,
        collection_id: str | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Read committed events.

        Args:
            collection_id: Only events for this collection
            limit: Maximum number of events returned
            newest_first: Reverse append order
        """
        with self._lock:
            events = self._read_events()
        if collection_id is not None:
            events = [e for e in events if e.get("collection_id") == collection_id]
        if newest_first:
            events = list(reversed(events))
        if limit is not None:
            events = events[:limit]
        return copy.deepcopy(events)

    @contextmanager
    def transaction(
        self,
        participants: Sequence[TransactionParticipant] = (),
    ) -> Iterator[StoreTransaction]:
        """
        Run a block as one all-or-nothing ledger transaction.

        The store lock is held for the whole scope so transactions never
        interleave. Staged writes are applied when the block exits cleanly;
        any exception discards them and rolls back every participant.

        Usage:
            with store.transaction(participants=[transfers]) as txn:
                record = txn.get("distributor")
                txn.put("distributor", updated)
        """
        with self._lock:
            handle = self._begin()
            txn = StoreTransaction(self, handle)
            begun: list[TransactionParticipant] = []
            try:
                for participant in participants:
                    participant.begin()
                    begun.append(participant)
                yield txn
                self._write_batch(handle, txn.pending_records, txn.pending_events)
            except BaseException:
                self._rollback(handle)
                for participant in reversed(begun):
                    participant.rollback()
                raise
            for participant in begun:
                participant.commit()

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def close(self) -> None:
        """
        Close the storage connection and release resources.

        Default implementation does nothing - backends with connections
        should override this.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
