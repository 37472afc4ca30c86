"""
State Slice

A small handle over one synced key, the way a UI component holds a piece of
cloud-backed state: read the current value, set a new one (or derive it from
the previous one), and look at the sync status.
"""

from typing import Any, Callable, Union

from src.models.ledger import LoadResult, PutResult
from src.models.sync import SyncStatus
from src.sync.coordinator import SyncCoordinator


class StateSlice:
    """One key of user state, persisted locally and pushed to the remote."""

    def __init__(self, coordinator: SyncCoordinator, key: str, default: Any = None):
        self._coordinator = coordinator
        self._key = key
        self._default = default
        self._loaded: LoadResult = coordinator.get(key, default)
        self._value = self._loaded.data

    @classmethod
    async def attach(
        cls,
        coordinator: SyncCoordinator,
        key: str,
        default: Any = None,
    ) -> "StateSlice":
        """Create the slice and pull the remote value."""
        state = cls(coordinator, key, default)
        state._loaded = await coordinator.attach(key, default)
        state._value = state._loaded.data
        return state

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> Any:
        return self._value

    @property
    def loaded(self) -> LoadResult:
        """How the initial value was obtained (source, warnings)."""
        return self._loaded

    @property
    def status(self) -> SyncStatus:
        return self._coordinator.status(self._key)

    def set(self, new_value: Union[Any, Callable[[Any], Any]]) -> PutResult:
        """
        Replace the value. A callable receives the current value and
        returns the new one.
        """
        value = new_value(self._value) if callable(new_value) else new_value
        self._value = value
        return self._coordinator.put(self._key, value)
