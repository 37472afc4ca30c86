"""
Local Ledger Store

Durable local persistence for UI state that must always render something.

Every value is wrapped in a PersistedBlob envelope (data, timestamp, version)
and serialized as JSON:

    {"data": ..., "timestamp": "2024-05-01T09:30:00+00:00", "version": "3.1"}

DESIGN DECISION: Exactly one prior generation is kept. Before a key is
overwritten, its current blob is copied verbatim into `<key>_backup`.
This is a weak durability guarantee, but it is enough to recover from a
torn or corrupted write of the primary.

GUARANTEES:
- get() never raises: corruption degrades to the backup, then to the default
- put() never raises: write failures come back as PutResult.error
- Writes to the same key are serialized, because backup rotation is a
  read-then-write sequence
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import quote, unquote

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from src.audit.logger import get_logger
from src.config import get_settings
from src.models.ledger import LoadResult, LoadSource, PersistedBlob, PutResult
from src.services.clock import Clock, SystemClock
from src.services.storage.interface import (
    CorruptBlobError,
    KeyValueBackend,
    StorageError,
)


BACKUP_SUFFIX = "_backup"


def backup_key(key: str) -> str:
    return f"{key}{BACKUP_SUFFIX}"


def user_scoped_key(user_id: Optional[str], key: str) -> str:
    """Local keys are namespaced per user so accounts never share state."""
    if not user_id:
        return key
    return f"{user_id}:{key}"


class JsonFileBackend(KeyValueBackend):
    """
    One JSON file per key inside a directory.

    Writes go to a temporary file first and are moved into place with
    os.replace, so a crash mid-write never leaves a half-written primary.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}")

    def write(self, key: str, raw: str) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(raw)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete key {key}: {e}")

    def keys(self) -> list[str]:
        if not self._directory.exists():
            return []
        return [
            unquote(path.name[: -len(self.SUFFIX)])
            for path in self._directory.glob(f"*{self.SUFFIX}")
        ]


class LocalLedgerStore:
    """
    Versioned, backed-up local key/value store.

    Every blob is stamped with the store's schema version. A backup whose
    version differs from the current one is still returned, but flagged so
    the caller can ask the user to review it.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Optional[Clock] = None,
        schema_version: Optional[str] = None,
    ):
        self._backend = backend
        self._clock = clock or SystemClock()
        self._schema_version = schema_version or get_settings().ledger.schema_version
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._logger = get_logger(__name__)

    @property
    def schema_version(self) -> str:
        return self._schema_version

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _serialize(self, blob: PersistedBlob) -> str:
        envelope = blob.model_dump(mode="json")
        return json.dumps({
            "data": envelope["data"],
            "timestamp": envelope["timestamp"],
            "version": envelope["schema_version"],
        })

    def _parse(self, raw: str) -> PersistedBlob:
        """
        Parse a stored string into a blob.

        Valid JSON without the envelope is a value written before envelopes
        existed; it is migrated as data with no timestamp or version.
        """
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CorruptBlobError(f"Unparsable blob: {e}")

        if isinstance(parsed, dict) and "data" in parsed and "timestamp" in parsed:
            version = parsed.get("version", parsed.get("schema_version"))
            try:
                return PersistedBlob(
                    data=parsed["data"],
                    timestamp=parsed["timestamp"],
                    schema_version=str(version) if version is not None else None,
                )
            except ValidationError as e:
                raise CorruptBlobError(f"Invalid blob envelope: {e}")

        return PersistedBlob(data=parsed)

    def _read_blob(self, key: str) -> Optional[PersistedBlob]:
        """Returns None when absent; raises CorruptBlobError when unreadable."""
        try:
            raw = self._backend.read(key)
        except StorageError as e:
            raise CorruptBlobError(str(e))
        if raw is None:
            return None
        return self._parse(raw)

    def _rotate_backup(self, key: str) -> None:
        try:
            raw = self._backend.read(key)
            if raw is None:
                return
            self._parse(raw)
        except StorageError as e:
            # Keep the last good backup instead of replacing it with garbage
            self._logger.warning("backup_rotation_skipped", key=key, error=str(e))
            return
        self._backend.write(backup_key(key), raw)

    def put(self, key: str, value: Any) -> PutResult:
        """
        Persist a value under `key`, rotating the previous blob to the backup.

        Returns:
            PutResult with the written blob, or with `error` set on failure
        """
        blob = PersistedBlob(
            data=value,
            timestamp=self._clock.now(),
            schema_version=self._schema_version,
        )
        try:
            raw = self._serialize(blob)
        except (TypeError, ValueError, PydanticSerializationError) as e:
            self._logger.error("blob_serialization_failed", key=key, error=str(e))
            return PutResult(error=f"Value for '{key}' cannot be stored: {e}")

        with self._lock_for(key):
            try:
                self._rotate_backup(key)
                self._backend.write(key, raw)
            except StorageError as e:
                self._logger.error("blob_write_failed", key=key, error=str(e))
                return PutResult(error=f"Failed to save '{key}': {e}")

        return PutResult(blob=self._parse(raw))

    def get(self, key: str, default: Any = None) -> LoadResult:
        """
        Load the value under `key`.

        Falls back to the backup when the primary is missing or unreadable,
        and to `default` (with no timestamp) when neither can be read.
        """
        primary_problem: Optional[str] = None
        try:
            blob = self._read_blob(key)
            if blob is not None:
                return LoadResult(
                    data=blob.data,
                    timestamp=blob.timestamp,
                    schema_version=blob.schema_version,
                    source=LoadSource.PRIMARY,
                )
        except CorruptBlobError as e:
            primary_problem = str(e)
            self._logger.warning("primary_blob_corrupt", key=key, error=primary_problem)

        try:
            backup = self._read_blob(backup_key(key))
        except CorruptBlobError as e:
            self._logger.error("backup_blob_corrupt", key=key, error=str(e))
            backup = None

        if backup is not None:
            return self._recovered(key, backup)

        warning = None
        if primary_problem:
            warning = f"Data for '{key}' was corrupted and could not be recovered."
        return LoadResult(data=default, source=LoadSource.DEFAULT, warning=warning)

    def _recovered(self, key: str, backup: PersistedBlob) -> LoadResult:
        version_mismatch = backup.schema_version != self._schema_version
        warning = None
        if version_mismatch:
            backup_version = backup.schema_version or "unknown/legacy"
            warning = (
                f"Recovered data for '{key}' from an older backup version "
                f"({backup_version}). Please review."
            )
        self._logger.info(
            "blob_recovered_from_backup",
            key=key,
            backup_version=backup.schema_version,
            current_version=self._schema_version,
            version_mismatch=version_mismatch,
        )
        return LoadResult(
            data=backup.data,
            timestamp=backup.timestamp,
            schema_version=backup.schema_version,
            source=LoadSource.BACKUP,
            version_mismatch=version_mismatch,
            warning=warning,
        )

    def delete(self, key: str) -> bool:
        """Remove a key and its backup."""
        with self._lock_for(key):
            try:
                removed = self._backend.delete(key)
                self._backend.delete(backup_key(key))
            except StorageError as e:
                self._logger.error("blob_delete_failed", key=key, error=str(e))
                return False
        return removed
