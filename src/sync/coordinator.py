"""
Sync Coordinator

Reconciles the LocalLedgerStore with a remote key-value service for one user.

Per key there are two independent state machines:
- pull: idle -> pulling -> idle           (only on attach, i.e. "on load")
- push: idle -> pending_push -> pushing -> idle

DESIGN DECISION: Remote writes are debounced per key. Every local put resets
that key's quiescence timer and replaces the pending value, so a burst of
edits becomes one push carrying the last value. Pushes for one key are
serialized with a per-key lock, which means an older push can never land
after a newer one. Pushes for different keys run independently.

Nothing here raises to the caller. Remote failures are recorded as
SyncWarnings on the key's status and are not retried by this layer.
"""

import asyncio
from typing import Any, Optional

from src.audit.logger import get_logger
from src.config import get_settings
from src.models.ledger import LoadResult, LoadSource, PutResult
from src.models.sync import (
    PullState,
    PushState,
    SyncStatus,
    SyncWarning,
    SyncWarningKind,
)
from src.services.clock import Clock, SystemClock
from src.services.storage.interface import RemoteKeyValueInterface
from src.services.storage.local import LocalLedgerStore, user_scoped_key


class SyncCoordinator:
    """
    Offline-first sync of user-scoped keys.

    Usage:
        coordinator = SyncCoordinator("user-1", store, remote)
        loaded = await coordinator.attach("accounts", default=[])
        coordinator.put("accounts", updated_accounts)
        ...
        await coordinator.drain()
    """

    def __init__(
        self,
        user_id: str,
        store: LocalLedgerStore,
        remote: RemoteKeyValueInterface,
        clock: Optional[Clock] = None,
        debounce_seconds: Optional[float] = None,
    ):
        self._user_id = user_id
        self._store = store
        self._remote = remote
        self._clock = clock or SystemClock()
        if debounce_seconds is None:
            debounce_seconds = get_settings().ledger.debounce_seconds
        self._debounce = debounce_seconds

        self._statuses: dict[str, SyncStatus] = {}
        self._warnings: list[SyncWarning] = []
        self._pending: dict[str, Any] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._push_locks: dict[str, asyncio.Lock] = {}
        self._write_counts: dict[str, int] = {}

        self._logger = get_logger(__name__, user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def store(self) -> LocalLedgerStore:
        return self._store

    @property
    def warnings(self) -> list[SyncWarning]:
        """Every warning recorded so far, oldest first."""
        return list(self._warnings)

    def _local_key(self, key: str) -> str:
        return user_scoped_key(self._user_id, key)

    def _status(self, key: str) -> SyncStatus:
        status = self._statuses.get(key)
        if status is None:
            status = self._statuses[key] = SyncStatus(key=key)
        return status

    def status(self, key: str) -> SyncStatus:
        """Snapshot of a key's sync state."""
        return self._status(key).model_copy()

    def _record(
        self,
        kind: SyncWarningKind,
        key: str,
        message: str,
        cause: Optional[str] = None,
    ) -> SyncWarning:
        warning = SyncWarning(
            kind=kind,
            key=key,
            message=message,
            cause=cause,
            occurred_at=self._clock.now(),
        )
        self._warnings.append(warning)
        self._status(key).last_error = warning
        return warning

    # -------------------------------------------------------------------------
    # Local reads and writes
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> LoadResult:
        """Read the local value for a key (no remote access)."""
        return self._store.get(self._local_key(key), default)

    def put(self, key: str, value: Any) -> PutResult:
        """
        Persist locally and schedule a debounced push.

        The push is scheduled even when the local write fails, so the
        remote still converges on the user's latest value.
        """
        self._write_counts[key] = self._write_counts.get(key, 0) + 1

        result = self._store.put(self._local_key(key), value)
        if not result.ok:
            self._record(
                SyncWarningKind.STORAGE_WRITE_FAILED,
                key,
                f"Could not save '{key}' on this device.",
                cause=result.error,
            )

        self._schedule_push(key, value)
        return result

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------

    async def attach(self, key: str, default: Any = None, force: bool = False) -> LoadResult:
        """
        Start tracking a key and pull its remote value.

        A remote value is authoritative and overwrites local state. With no
        remote value, the local value is pushed to seed the remote. A failed
        fetch leaves local state authoritative and records a warning.
        Attaching an already attached key only re-reads local state unless
        `force` is set.
        """
        status = self._status(key)
        local = self.get(key, default)
        if local.warning:
            self._record(SyncWarningKind.STORAGE_CORRUPT, key, local.warning)

        if status.attached and not force:
            return local
        status.attached = True

        writes_before = self._write_counts.get(key, 0)
        status.pull_state = PullState.PULLING
        try:
            record = await self._remote.fetch(self._user_id, key)
        except Exception as e:
            # Any transport failure: stay offline-first
            self._logger.warning("sync_pull_failed", key=key, error=str(e))
            self._record(
                SyncWarningKind.SYNC_UNAVAILABLE,
                key,
                f"Could not load '{key}' from the cloud; using data on this device.",
                cause=str(e),
            )
            return local
        finally:
            status.pull_state = PullState.IDLE

        status.last_sync = self._clock.now()

        if self._write_counts.get(key, 0) != writes_before:
            # A local edit happened while pulling; it is the last writer
            self._logger.info("sync_pull_superseded", key=key)
            return self.get(key, default)

        if record is None:
            self._logger.info("sync_seeding_remote", key=key)
            self._schedule_push(key, local.data)
            return local

        result = self._store.put(self._local_key(key), record.value)
        if not result.ok:
            self._record(
                SyncWarningKind.STORAGE_WRITE_FAILED,
                key,
                f"Could not save '{key}' on this device.",
                cause=result.error,
            )
        self._logger.info("sync_pull_completed", key=key)
        blob = result.blob
        return LoadResult(
            data=blob.data if blob else record.value,
            timestamp=blob.timestamp if blob else record.updated_at,
            schema_version=self._store.schema_version,
            source=LoadSource.PRIMARY,
        )

    # -------------------------------------------------------------------------
    # Debounced push
    # -------------------------------------------------------------------------

    def _schedule_push(self, key: str, value: Any) -> None:
        self._pending[key] = value
        status = self._status(key)
        if status.push_state != PushState.PUSHING:
            status.push_state = PushState.PENDING_PUSH

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (synchronous caller); drain() pushes it later
            return

        timer = self._timers.get(key)
        if timer is not None and not timer.done():
            timer.cancel()
        self._timers[key] = loop.create_task(self._push_after_quiescence(key))

    async def _push_after_quiescence(self, key: str) -> None:
        await asyncio.sleep(self._debounce)

        task = asyncio.current_task()
        # From here on a newer put must not cancel this push
        if self._timers.get(key) is task:
            del self._timers[key]
        self._inflight.add(task)
        try:
            await self._push(key)
        finally:
            self._inflight.discard(task)

    def _push_lock(self, key: str) -> asyncio.Lock:
        lock = self._push_locks.get(key)
        if lock is None:
            lock = self._push_locks[key] = asyncio.Lock()
        return lock

    async def _push(self, key: str) -> None:
        async with self._push_lock(key):
            if key not in self._pending:
                return
            value = self._pending.pop(key)
            status = self._status(key)
            status.push_state = PushState.PUSHING
            try:
                await self._remote.upsert(self._user_id, key, value)
            except Exception as e:
                self._logger.error("sync_push_failed", key=key, error=str(e))
                self._record(
                    SyncWarningKind.SYNC_UNAVAILABLE,
                    key,
                    f"Failed to sync '{key}' to the cloud.",
                    cause=str(e),
                )
            else:
                status.last_sync = self._clock.now()
                status.push_count += 1
                status.last_error = None
                self._logger.info("sync_push_completed", key=key)
            finally:
                if key in self._pending:
                    status.push_state = PushState.PENDING_PUSH
                else:
                    status.push_state = PushState.IDLE

    def has_pending(self, key: Optional[str] = None) -> bool:
        """True while a push is waiting or in flight."""
        if key is not None:
            return key in self._pending or self._status(key).push_state != PushState.IDLE
        return bool(self._pending) or any(
            s.push_state != PushState.IDLE for s in self._statuses.values()
        )

    async def drain(self) -> None:
        """
        Wait until every scheduled push has completed.

        Debounce windows are honoured, not skipped. Values put without a
        running event loop are pushed here.
        """
        while True:
            tasks = [t for t in (*self._timers.values(), *self._inflight) if not t.done()]
            if not tasks:
                break
            await asyncio.gather(*tasks, return_exceptions=True)

        for key in list(self._pending):
            await self._push(key)

    async def close(self) -> None:
        await self.drain()
