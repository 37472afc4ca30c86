"""
Storage Services Package

Provides abstract interfaces and concrete implementations for local and
remote storage. The remote is Google Sheets, but designed to be swappable.
"""

from src.services.storage.interface import (
    ConnectionError,
    CorruptBlobError,
    DuplicateError,
    KeyValueBackend,
    LedgerRemoteInterface,
    NotFoundError,
    RemoteKeyValueInterface,
    StorageError,
)
from src.services.storage.local import (
    JsonFileBackend,
    LocalLedgerStore,
    backup_key,
    user_scoped_key,
)
from src.services.storage.memory import (
    InMemoryBackend,
    InMemoryRemoteStore,
)
from src.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    "LedgerRemoteInterface",
    "RemoteKeyValueInterface",
    # Exceptions
    "ConnectionError",
    "CorruptBlobError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Local store
    "JsonFileBackend",
    "LocalLedgerStore",
    "backup_key",
    "user_scoped_key",
    # In-memory implementation
    "InMemoryBackend",
    "InMemoryRemoteStore",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
]
