"""Services package."""

from src.services.clock import (
    Clock,
    FixedClock,
    SystemClock,
)
from src.services.storage import (
    ConnectionError,
    CorruptBlobError,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryBackend,
    InMemoryRemoteStore,
    JsonFileBackend,
    KeyValueBackend,
    LedgerRemoteInterface,
    LocalLedgerStore,
    NotFoundError,
    RemoteKeyValueInterface,
    StorageError,
)

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Storage services
    "ConnectionError",
    "CorruptBlobError",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryBackend",
    "InMemoryRemoteStore",
    "JsonFileBackend",
    "KeyValueBackend",
    "LedgerRemoteInterface",
    "LocalLedgerStore",
    "NotFoundError",
    "RemoteKeyValueInterface",
    "StorageError",
]
