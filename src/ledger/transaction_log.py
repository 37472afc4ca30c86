"""
Transaction Log

The append-only record of financial actions. One entry per action, appended
before the UI mutates visible state.

DESIGN DECISION: The remote ledger is the source of truth; the local copy is
a cache for offline history. An append only counts once the remote accepted
it. A failed append comes back as an error result carrying the built entry,
so the caller can retry or queue it; nothing is dropped silently and nothing
is queued here.
"""

from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import ValidationError

from src.audit.logger import get_logger
from src.config import get_settings
from src.models.ledger import (
    AppendResult,
    LedgerEntry,
    LedgerEntryBuilder,
    LedgerEntryType,
    LoadResult,
    LoadSource,
)
from src.services.clock import Clock, SystemClock
from src.services.storage.interface import LedgerRemoteInterface
from src.services.storage.local import LocalLedgerStore, user_scoped_key


class TransactionLog:
    """
    Append-only ledger written to the remote and cached locally.
    """

    def __init__(
        self,
        store: LocalLedgerStore,
        remote: LedgerRemoteInterface,
        clock: Optional[Clock] = None,
        log_key: Optional[str] = None,
    ):
        self._store = store
        self._remote = remote
        self._clock = clock or SystemClock()
        self._log_key = log_key or get_settings().ledger.transaction_log_key
        self._logger = get_logger(__name__)

    def _cache_key(self, user_id: str) -> str:
        return user_scoped_key(user_id, self._log_key)

    # -------------------------------------------------------------------------
    # Local cache
    # -------------------------------------------------------------------------

    def _parse_cached(self, raw_entries: Any) -> list[LedgerEntry]:
        entries = []
        for raw in raw_entries if isinstance(raw_entries, list) else []:
            try:
                entries.append(LedgerEntry.model_validate(raw))
            except ValidationError:
                self._logger.warning("ledger_cache_entry_skipped")
                continue
        entries.sort(key=lambda e: e.timestamp)
        return entries

    def _write_cache(self, user_id: str, entries: list[LedgerEntry]) -> None:
        result = self._store.put(
            self._cache_key(user_id),
            [entry.model_dump(mode="json") for entry in entries],
        )
        if not result.ok:
            self._logger.warning("ledger_cache_write_failed", user_id=user_id, error=result.error)

    def entries(self, user_id: str) -> list[LedgerEntry]:
        """Cached entries for a user, oldest first (no remote access)."""
        cached = self._store.get(self._cache_key(user_id), [])
        return self._parse_cached(cached.data)

    def history(self, user_id: str, subject_id: str) -> list[LedgerEntry]:
        """Every cached entry concerning one account/obligation, oldest first."""
        return [e for e in self.entries(user_id) if e.subject_id == subject_id]

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    async def append(
        self,
        user_id: str,
        entry_type: Union[LedgerEntryType, str],
        subject_id: str,
        payload: Optional[dict[str, Any]] = None,
        description: str = "",
    ) -> AppendResult:
        """
        Record a financial action.

        Always assigns a fresh id and timestamp.

        Returns:
            AppendResult with the stored entry, or with `error` set when the
            entry could not be built or the remote ledger rejected it
        """
        if not user_id:
            self._logger.error("ledger_append_rejected", reason="missing user id")
            return AppendResult(error="User id missing for transaction logging.")

        try:
            entry = LedgerEntry(
                id=uuid4(),
                timestamp=self._clock.now(),
                user_id=user_id,
                entry_type=LedgerEntryType(entry_type),
                subject_id=subject_id,
                payload=payload or {},
                description=description,
            )
        except (ValidationError, ValueError) as e:
            self._logger.error("ledger_append_rejected", reason=str(e))
            return AppendResult(error=f"Invalid ledger entry: {e}")

        return await self._append(entry)

    async def append_entry(self, entry: LedgerEntry) -> AppendResult:
        """
        Append an entry built elsewhere (e.g. by LedgerEntryBuilder).

        The entry is re-stamped with a fresh id and the log's clock.
        """
        fresh = entry.model_copy(update={"id": uuid4(), "timestamp": self._clock.now()})
        return await self._append(fresh)

    async def _append(self, entry: LedgerEntry) -> AppendResult:
        try:
            stored = await self._remote.append_entry(entry)
        except Exception as e:
            self._logger.error("ledger_append_failed", error=str(e), **entry.to_log_dict())
            return AppendResult(entry=entry, error=f"Failed to log transaction: {e}")

        self._write_cache(entry.user_id, [*self.entries(entry.user_id), stored])
        self._logger.info("ledger_entry_appended", **stored.to_log_dict())
        return AppendResult(entry=stored)

    async def undo(
        self,
        user_id: str,
        entry_id: Union[UUID, str],
        reason: Optional[str] = None,
    ) -> AppendResult:
        """
        Reverse an earlier entry by appending an `undo` entry.

        The original entry is left untouched. Unknown or already reversed
        entries are rejected.
        """
        target = str(entry_id)
        entries = self.entries(user_id)
        original = next((e for e in entries if str(e.id) == target), None)
        if original is None:
            return AppendResult(error=f"Ledger entry not found: {target}")
        if original.entry_type == LedgerEntryType.UNDO:
            return AppendResult(error="An undo entry cannot itself be undone.")
        if any(
            e.entry_type == LedgerEntryType.UNDO and e.payload.get("reverses") == target
            for e in entries
        ):
            return AppendResult(error=f"Ledger entry already undone: {target}")

        return await self.append_entry(LedgerEntryBuilder.reversal(user_id, original, reason))

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    async def load(self, user_id: str) -> LoadResult:
        """
        Pull the user's ledger from the remote and refresh the local cache.

        On failure the cached entries are returned with a warning.
        """
        try:
            entries = await self._remote.list_entries(user_id)
        except Exception as e:
            self._logger.warning("ledger_load_failed", user_id=user_id, error=str(e))
            cached = self._store.get(self._cache_key(user_id), [])
            return LoadResult(
                data=self._parse_cached(cached.data),
                timestamp=cached.timestamp,
                schema_version=cached.schema_version,
                source=cached.source,
                version_mismatch=cached.version_mismatch,
                warning="Failed to fetch transaction history from the cloud.",
            )

        entries = sorted(entries, key=lambda e: e.timestamp)
        self._write_cache(user_id, entries)
        return LoadResult(
            data=entries,
            timestamp=self._clock.now(),
            schema_version=self._store.schema_version,
            source=LoadSource.PRIMARY,
        )
