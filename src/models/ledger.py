"""
Ledger Models

Every financial action taken in the dashboard produces one LedgerEntry.
The ledger is the source of truth for history and the basis for undo/audit.

DESIGN DECISION: Ledger entries are append-only. We never delete or modify them.
A correction is a new entry about the same subject.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEntryType(str, Enum):
    """
    Types of financial actions recorded in the ledger.
    """
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    BALANCE_ADJUSTMENT = "balance_adjustment"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_DELETED = "bill_deleted"
    BILL_PAYMENT = "bill_payment"
    BILL_UNPAID = "bill_unpaid"

    # Income and credits
    INCOME_CREATED = "income_created"
    INCOME_RECEIVED = "income_received"
    CREDIT_RECEIVED = "credit_received"

    # One-time costs
    ONE_TIME_COST_CREATED = "one_time_cost_created"
    ONE_TIME_COST_PAID = "one_time_cost_paid"

    # Corrections
    UNDO = "undo"


class LedgerEntry(BaseModel):
    """
    A single ledger entry.

    Immutable once created: `id` and `timestamp` are assigned exactly once.
    """
    model_config = ConfigDict(frozen=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Globally unique, client-generated entry id"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the action was taken (UTC)"
    )

    # Classification
    user_id: str = Field(..., min_length=1)
    entry_type: LedgerEntryType
    subject_id: str = Field(
        ...,
        description="The obligation/account this entry concerns"
    )

    # Content
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Entry-specific fields"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Human-readable description of the action"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "entry_id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "entry_type": self.entry_type.value,
            "user_id": self.user_id,
            "subject_id": self.subject_id,
            "description": self.description,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [id, timestamp, user_id, entry_type, subject_id, payload_json, description]
        """
        return [
            str(self.id),
            self.timestamp.isoformat(),
            self.user_id,
            self.entry_type.value,
            self.subject_id,
            json.dumps(self.payload, default=str) if self.payload else "",
            self.description,
        ]


class LedgerEntryBuilder:
    """
    Helper class to build ledger entries with common patterns.

    Usage:
        entry = LedgerEntryBuilder.bill_payment(user_id, bill_id, "Rent", "1200.00", "2024-05")
        entry = LedgerEntryBuilder.reversal(user_id, entry)
    """

    @staticmethod
    def account_created(
        user_id: str,
        account_id: str,
        name: str,
        balance: str,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.ACCOUNT_CREATED,
            subject_id=account_id,
            description=f"Account created: {name}",
            payload={"name": name, "balance": balance},
        )

    @staticmethod
    def bill_created(
        user_id: str,
        bill_id: str,
        name: str,
        amount: str,
        recurrence: Optional[dict] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.BILL_CREATED,
            subject_id=bill_id,
            description=f"Bill created: {name}",
            payload={"name": name, "amount": amount, "recurrence": recurrence or {}},
        )

    @staticmethod
    def bill_payment(
        user_id: str,
        bill_id: str,
        name: str,
        amount: str,
        month: str,
        account_id: Optional[str] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.BILL_PAYMENT,
            subject_id=bill_id,
            description=f"Paid {name} for {month}",
            payload={
                "name": name,
                "amount": amount,
                "month": month,
                "account_id": account_id,
            },
        )

    @staticmethod
    def credit_received(
        user_id: str,
        credit_id: str,
        name: str,
        amount: str,
        account_id: Optional[str] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.CREDIT_RECEIVED,
            subject_id=credit_id,
            description=f"Credit received: {name}",
            payload={"name": name, "amount": amount, "account_id": account_id},
        )

    @staticmethod
    def balance_adjustment(
        user_id: str,
        account_id: str,
        old_balance: str,
        new_balance: str,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.BALANCE_ADJUSTMENT,
            subject_id=account_id,
            description=f"Balance adjusted from {old_balance} to {new_balance}",
            payload={"old_balance": old_balance, "new_balance": new_balance},
        )

    @staticmethod
    def reversal(
        user_id: str,
        original: LedgerEntry,
        reason: Optional[str] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=user_id,
            entry_type=LedgerEntryType.UNDO,
            subject_id=original.subject_id,
            description=f"Undo {original.entry_type.value}: {original.description}"[:500],
            payload={
                "reverses": str(original.id),
                "reversed_type": original.entry_type.value,
                "reversed_payload": original.payload,
                "reason": reason or "No reason provided",
            },
        )


# =============================================================================
# PERSISTENCE RESULT MODELS
# =============================================================================

class PersistedBlob(BaseModel):
    """
    Envelope around every locally stored value.

    `timestamp` is None only for raw values migrated from before the
    envelope existed.
    """

    data: Any = None
    timestamp: Optional[datetime] = None
    schema_version: Optional[str] = None


class LoadSource(str, Enum):
    """Where a loaded value came from."""
    PRIMARY = "primary"
    BACKUP = "backup"
    DEFAULT = "default"


class LoadResult(BaseModel):
    """
    Outcome of reading a key.

    Reads never fail: corruption degrades to the backup and then to the
    caller's default. `warning` carries anything the user should be told.
    """

    data: Any = None
    timestamp: Optional[datetime] = None
    schema_version: Optional[str] = None
    source: LoadSource = LoadSource.DEFAULT
    version_mismatch: bool = False
    warning: Optional[str] = None

    @property
    def recovered(self) -> bool:
        return self.source == LoadSource.BACKUP


class PutResult(BaseModel):
    """Outcome of a local write. `error` is set instead of raising."""

    blob: Optional[PersistedBlob] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.blob is not None


class AppendResult(BaseModel):
    """Outcome of a ledger append. A failed append keeps the built entry."""

    entry: Optional[LedgerEntry] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
