"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing through the system must conform to these schemas.
"""

from src.models.recurrence import (
    RecurrenceDescriptor,
    RecurrencePattern,
    WeeklyRule,
)
from src.models.ledger import (
    AppendResult,
    LedgerEntry,
    LedgerEntryBuilder,
    LedgerEntryType,
    LoadResult,
    LoadSource,
    PersistedBlob,
    PutResult,
)
from src.models.obligation import (
    Obligation,
    ObligationKind,
    Reminder,
)
from src.models.sync import (
    PullState,
    PushState,
    RemoteRecord,
    SyncStatus,
    SyncWarning,
    SyncWarningKind,
)

__all__ = [
    # Recurrence models
    "RecurrenceDescriptor",
    "RecurrencePattern",
    "WeeklyRule",
    # Ledger models
    "AppendResult",
    "LedgerEntry",
    "LedgerEntryBuilder",
    "LedgerEntryType",
    "LoadResult",
    "LoadSource",
    "PersistedBlob",
    "PutResult",
    # Obligation models
    "Obligation",
    "ObligationKind",
    "Reminder",
    # Sync models
    "PullState",
    "PushState",
    "RemoteRecord",
    "SyncStatus",
    "SyncWarning",
    "SyncWarningKind",
]
