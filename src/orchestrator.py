"""
Main Orchestrator for the Ledger Core

This module ties together all the components and defines the end-to-end
flow for a user's session:
1. Open → attach every state key (pull remote, seed if missing) and load
   the ledger
2. Record → append a ledger entry, then persist the updated aggregate,
   which schedules a debounced push
3. Close → wait for pending pushes

DESIGN DECISION: The orchestrator enforces the ordering of a mutation:
the ledger entry is appended before visible state changes. If the append
fails, state is left alone and the caller decides what to do.
"""

from typing import Any, Optional, Union

from src.audit.logger import get_logger
from src.config import get_settings
from src.ledger import TransactionLog
from src.models.ledger import AppendResult, LedgerEntryType, LoadResult
from src.models.obligation import Obligation, Reminder
from src.reminders import ReminderPlanner
from src.services.clock import Clock, SystemClock
from src.services.storage import (
    GoogleSheetsRemoteStore,
    InMemoryBackend,
    InMemoryRemoteStore,
    JsonFileBackend,
    KeyValueBackend,
    LedgerRemoteInterface,
    LocalLedgerStore,
    RemoteKeyValueInterface,
)
from src.sync import StateSlice, SyncCoordinator


class LedgerSession:
    """
    One user's view of the ledger core.

    Flow:
    1. open() attaches the state keys the dashboard uses and loads history
    2. record() appends to the ledger, then updates a state slice
    3. close() drains pending pushes
    """

    def __init__(
        self,
        user_id: str,
        coordinator: SyncCoordinator,
        transaction_log: TransactionLog,
        planner: Optional[ReminderPlanner] = None,
        clock: Optional[Clock] = None,
    ):
        self._user_id = user_id
        self._coordinator = coordinator
        self._transaction_log = transaction_log
        self._planner = planner or ReminderPlanner()
        self._clock = clock or SystemClock()
        self._slices: dict[str, StateSlice] = {}
        self._logger = get_logger(__name__, user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def coordinator(self) -> SyncCoordinator:
        return self._coordinator

    @property
    def transaction_log(self) -> TransactionLog:
        return self._transaction_log

    @property
    def planner(self) -> ReminderPlanner:
        return self._planner

    async def open(self, keys: dict[str, Any]) -> LoadResult:
        """
        Attach every key (key -> default value) and load the ledger.

        Returns:
            The ledger load result (entries in `data`)
        """
        for key, default in keys.items():
            self._slices[key] = await StateSlice.attach(self._coordinator, key, default)
        history = await self._transaction_log.load(self._user_id)
        if history.warning:
            self._logger.warning("session_history_degraded", warning=history.warning)
        return history

    def slice(self, key: str, default: Any = None) -> StateSlice:
        """The state slice for a key, created from local data if not attached."""
        state = self._slices.get(key)
        if state is None:
            state = self._slices[key] = StateSlice(self._coordinator, key, default)
        return state

    async def record(
        self,
        entry_type: Union[LedgerEntryType, str],
        subject_id: str,
        payload: Optional[dict[str, Any]] = None,
        description: str = "",
        key: Optional[str] = None,
        new_value: Any = None,
    ) -> AppendResult:
        """
        Record an action, then (only if it was logged) update state.

        `new_value` may be a callable deriving the new value from the
        current one, as with StateSlice.set.
        """
        result = await self._transaction_log.append(
            self._user_id,
            entry_type,
            subject_id,
            payload,
            description,
        )
        if result.ok and key is not None:
            self.slice(key).set(new_value)
        return result

    def reminders(self, obligations: list[Obligation]) -> list[Reminder]:
        return self._planner.due_reminders(obligations, self._clock.today())

    def upcoming(self, obligations: list[Obligation]) -> list[Reminder]:
        return self._planner.upcoming(obligations, self._clock.today())

    async def close(self) -> None:
        await self._coordinator.drain()


def create_ledger_components(
    user_id: str,
    use_remote: bool = True,
    backend: Optional[KeyValueBackend] = None,
    remote: Optional[Union[RemoteKeyValueInterface, LedgerRemoteInterface]] = None,
    clock: Optional[Clock] = None,
) -> LedgerSession:
    """
    Factory function to create a user's ledger session.

    Args:
        user_id: The signed-in user
        use_remote: Whether to connect to Google Sheets.
                    Set to False to run purely offline.
        backend: Local storage backend (default: JSON files in storage_dir)
        remote: Remote store implementing both remote interfaces
                (overrides use_remote)
        clock: Clock for timestamps (default: system UTC clock)

    Returns:
        A LedgerSession wired to the chosen storage
    """
    settings = get_settings().ledger
    clock = clock or SystemClock()
    logger = get_logger(__name__, user_id=user_id)

    if backend is None:
        backend = JsonFileBackend(settings.storage_path)

    if remote is None:
        if use_remote:
            try:
                remote = GoogleSheetsRemoteStore(clock=clock)
            except Exception as e:
                # Remote not configured - continue offline
                logger.warning("remote_not_configured", error=str(e))
                remote = None
        if remote is None:
            remote = InMemoryRemoteStore(clock=clock)
            remote.offline = True

    store = LocalLedgerStore(backend, clock=clock, schema_version=settings.schema_version)
    coordinator = SyncCoordinator(
        user_id,
        store,
        remote,
        clock=clock,
        debounce_seconds=settings.debounce_seconds,
    )
    transaction_log = TransactionLog(
        store,
        remote,
        clock=clock,
        log_key=settings.transaction_log_key,
    )
    planner = ReminderPlanner(
        reminder_days=settings.reminder_days_list,
        grace_days=settings.override_grace_days,
    )

    return LedgerSession(
        user_id,
        coordinator,
        transaction_log,
        planner=planner,
        clock=clock,
    )


def create_offline_session(user_id: str, clock: Optional[Clock] = None) -> LedgerSession:
    """A fully in-memory session, e.g. for demos and tests."""
    clock = clock or SystemClock()
    return create_ledger_components(
        user_id,
        backend=InMemoryBackend(),
        remote=InMemoryRemoteStore(clock=clock),
        clock=clock,
    )
