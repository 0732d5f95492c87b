"""
JSON file storage backend.

This is the default storage backend. The whole ledger (records and the
event log) lives in one JSON document that is rewritten atomically on every
commit, so a crash mid-write leaves the previous committed state intact.

Transactions hold an exclusive flock on "<file>.lock" from the first read
to the commit, so several processes sharing one file never interleave.

Document layout:
    {
        "version": 1,
        "last_updated": "2025-01-01T00:00:00+00:00",
        "records": {"distributor": {...}, "collection:abc": {...}},
        "events": [{...}, ...]
    }
"""

import fcntl
import json
import os
import tempfile
from datetime import UTC, datetime
from typing import Any

from storage.base import (
    StorageBackend,
    StorageError,
    StorageReadError,
    StorageWriteError,
)

DOCUMENT_VERSION = 1


def _empty_document() -> dict[str, Any]:
    return {"version": DOCUMENT_VERSION, "last_updated": None, "records": {}, "events": []}


class _FileTransaction:
    """Document snapshot plus the lock file held for one transaction."""

    def __init__(self, lock_file, document: dict[str, Any]):
        self.lock_file = lock_file
        self.document = document

    def release(self) -> None:
        if self.lock_file.closed:
            return
        try:
            fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            self.lock_file.close()


class JSONFileStorage(StorageBackend):
    """
    JSON file storage backend.

    Threads are serialized by the base class lock, processes by an
    exclusive flock on the sidecar lock file.
    """

    def __init__(self, file_path: str = "ledger_data.json"):
        """
        Initialize JSON file storage.

        Args:
            file_path: Path to the JSON file
        """
        super().__init__()
        self.file_path = file_path
        self.lock_path = f"{file_path}.lock"

    def _load_document(self) -> dict[str, Any]:
        """
        Load the ledger document from disk.

        Raises:
            StorageReadError: If reading fails
        """
        try:
            if not os.path.exists(self.file_path):
                return _empty_document()

            with open(self.file_path, encoding="utf-8") as f:
                raw_data = f.read()

            if not raw_data.strip():
                return _empty_document()

            document = json.loads(raw_data)

        except PermissionError as e:
            raise StorageReadError(f"Permission denied: {self.file_path}") from e
        except json.JSONDecodeError as e:
            raise StorageReadError(f"Invalid JSON format: {e}") from e
        except OSError as e:
            raise StorageReadError(f"Failed to load ledger: {e}") from e

        if not isinstance(document, dict):
            raise StorageReadError("Ledger document must be a JSON object")
        document.setdefault("records", {})
        document.setdefault("events", [])
        return document

    def _save_document(self, document: dict[str, Any]) -> None:
        """
        Write the ledger document atomically (temp file, then rename).

        Raises:
            StorageWriteError: If writing fails
        """
        temp_path = None
        try:
            data = json.dumps(document, indent=2, ensure_ascii=False)
            directory = os.path.dirname(os.path.abspath(self.file_path))
            fd, temp_path = tempfile.mkstemp(
                dir=directory, prefix=f"{os.path.basename(self.file_path)}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(temp_path, self.file_path)
            temp_path = None

        except PermissionError as e:
            raise StorageWriteError(f"Permission denied: {self.file_path}") from e
        except (OSError, TypeError, ValueError) as e:
            raise StorageWriteError(f"Failed to save ledger: {e}") from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)

    # Backend hooks

    def _begin(self) -> _FileTransaction:
        try:
            lock_file = open(self.lock_path, "a")
        except OSError as e:
            raise StorageWriteError(f"Failed to open lock file {self.lock_path}: {e}") from e
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        # Snapshot taken under both locks; reads in the transaction use it
        try:
            return _FileTransaction(lock_file, self._load_document())
        except BaseException:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            lock_file.close()
            raise

    def _rollback(self, handle: Any) -> None:
        if handle is not None:
            handle.release()

    def _read_record(self, key: str, handle: Any = None) -> dict[str, Any] | None:
        document = handle.document if handle is not None else self._load_document()
        return document["records"].get(key)

    def _read_events(self) -> list[dict[str, Any]]:
        return self._load_document()["events"]

    def _list_records(self, prefix: str) -> list[dict[str, Any]]:
        records = self._load_document()["records"]
        return [records[key] for key in sorted(records) if key.startswith(prefix)]

    def _write_batch(
        self,
        handle: Any,
        records: dict[str, dict[str, Any]],
        events: list[dict[str, Any]],
    ) -> None:
        try:
            if not records and not events:
                return
            document = handle.document
            document["records"].update(records)
            document["events"].extend(events)
            document["version"] = DOCUMENT_VERSION
            document["last_updated"] = datetime.now(UTC).isoformat()
            self._save_document(document)
        finally:
            handle.release()

    def is_available(self) -> bool:
        """
        Check if file storage is available.

        Returns:
            True if the file path is writable
        """
        directory = os.path.dirname(self.file_path) or "."
        if not os.path.exists(directory):
            return False
        return os.access(directory, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        info.update({
            "file_path": self.file_path,
            "file_exists": os.path.exists(self.file_path),
        })

        if os.path.exists(self.file_path):
            try:
                stat = os.stat(self.file_path)
                info["file_size_bytes"] = stat.st_size
                info["last_modified"] = stat.st_mtime
            except OSError:
                pass

        return info

    def backup(self, backup_path: str | None = None) -> str:
        """
        Create a backup of the storage file.

        Args:
            backup_path: Path for backup file (default: adds .backup suffix)

        Returns:
            Path to the backup file

        Raises:
            StorageError: If backup fails
        """
        import shutil

        if backup_path is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = f"{self.file_path}.{timestamp}.backup"

        try:
            with self._lock:
                if os.path.exists(self.file_path):
                    shutil.copy2(self.file_path, backup_path)
                    return backup_path
                else:
                    raise StorageError("No file to backup")
        except OSError as e:
            raise StorageError(f"Backup failed: {e}") from e
