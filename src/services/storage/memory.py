"""
In-Memory Storage Implementations

Used for tests and for running the ledger without any remote configured.
Both classes can be told to fail, so callers can exercise the
corruption, offline and append-failure paths deterministically.
"""

import asyncio
from typing import Any, Optional

from src.models.ledger import LedgerEntry
from src.models.sync import RemoteRecord
from src.services.clock import Clock, SystemClock
from src.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    KeyValueBackend,
    LedgerRemoteInterface,
    RemoteKeyValueInterface,
    StorageError,
)


class InMemoryBackend(KeyValueBackend):
    """Dict-backed local storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self.fail_writes = False

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, raw: str) -> None:
        if self.fail_writes:
            raise StorageError(f"Storage unavailable for key: {key}")
        self._data[key] = raw

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)


class InMemoryRemoteStore(RemoteKeyValueInterface, LedgerRemoteInterface):
    """
    Remote key-value service and ledger held in memory.

    Every upsert is recorded in `upserts` (user_id, key, value) so tests can
    assert exactly what was pushed. Set `offline` to make every call raise
    ConnectionError, or `latency` to make every call suspend.
    """

    def __init__(self, clock: Optional[Clock] = None, latency: float = 0.0):
        self._clock = clock or SystemClock()
        self._values: dict[tuple[str, str], RemoteRecord] = {}
        self._entries: list[LedgerEntry] = []
        self.upserts: list[tuple[str, str, Any]] = []
        self.offline = False
        self.latency = latency

    async def _roundtrip(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.offline:
            raise ConnectionError("Remote store is unreachable")

    def seed(self, user_id: str, key: str, value: Any) -> RemoteRecord:
        """Place a value remotely without recording it as a push."""
        record = RemoteRecord(
            user_id=user_id,
            key=key,
            value=value,
            updated_at=self._clock.now(),
        )
        self._values[(user_id, key)] = record
        return record

    def value_of(self, user_id: str, key: str) -> Any:
        record = self._values.get((user_id, key))
        return record.value if record else None

    async def fetch(self, user_id: str, key: str) -> Optional[RemoteRecord]:
        await self._roundtrip()
        return self._values.get((user_id, key))

    async def upsert(self, user_id: str, key: str, value: Any) -> RemoteRecord:
        await self._roundtrip()
        self.upserts.append((user_id, key, value))
        return self.seed(user_id, key, value)

    async def append_entry(self, entry: LedgerEntry) -> LedgerEntry:
        await self._roundtrip()
        if any(existing.id == entry.id for existing in self._entries):
            raise DuplicateError(f"Ledger entry already exists: {entry.id}")
        self._entries.append(entry)
        return entry

    async def list_entries(self, user_id: str) -> list[LedgerEntry]:
        await self._roundtrip()
        entries = [e for e in self._entries if e.user_id == user_id]
        entries.sort(key=lambda e: e.timestamp)
        return entries
