"""
Abstract Storage Interfaces

DESIGN DECISION: Local and remote storage sit behind abstract interfaces.
This allows us to:
1. Swap the JSON-file backend for browser-like or database storage
2. Use in-memory storage for testing
3. Swap Google Sheets for another remote key-value service
4. Keep the sync and ledger logic decoupled from any transport

The interfaces are intentionally small. The local backend only moves raw
strings; envelopes, versions and backups are the LocalLedgerStore's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from src.models.ledger import LedgerEntry
from src.models.sync import RemoteRecord


class KeyValueBackend(ABC):
    """
    Raw local key/value storage.

    Implementations raise StorageError when the medium is unavailable.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """
        Read the raw stored string.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    def write(self, key: str, raw: str) -> None:
        """
        Store a raw string, replacing any previous value.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if something was removed
        """
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """All stored keys."""
        pass


class RemoteKeyValueInterface(ABC):
    """
    Remote store for user-scoped values (one value per user and key).

    Any remote implementation (Google Sheets, a REST service, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def fetch(self, user_id: str, key: str) -> Optional[RemoteRecord]:
        """
        Fetch the remote value for a user's key.

        Returns:
            The record if the remote holds one, None otherwise

        Raises:
            StorageError: If the remote cannot be reached
        """
        pass

    @abstractmethod
    async def upsert(self, user_id: str, key: str, value: Any) -> RemoteRecord:
        """
        Insert or replace the value for a user's key.

        Returns:
            The record as stored, with the remote's timestamp

        Raises:
            StorageError: If the write fails
        """
        pass


class LedgerRemoteInterface(ABC):
    """
    Abstract interface for remote ledger storage.

    The ledger is append-only - we never delete or modify entries.
    """

    @abstractmethod
    async def append_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Append a ledger entry.

        Returns:
            The entry as stored

        Raises:
            DuplicateError: If an entry with the same id already exists
            StorageError: If the append fails
        """
        pass

    @abstractmethod
    async def list_entries(self, user_id: str) -> list[LedgerEntry]:
        """
        All of a user's entries in chronological order.

        Raises:
            StorageError: If the remote cannot be reached
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class CorruptBlobError(StorageError):
    """A stored value could not be parsed."""
    pass
