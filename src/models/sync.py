"""
Sync Models

State and warnings reported by the SyncCoordinator for each tracked key.
Sync problems are never raised; they are recorded here for the caller
to display.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.models.ledger import utcnow


class PullState(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"


class PushState(str, Enum):
    IDLE = "idle"
    PENDING_PUSH = "pending_push"
    PUSHING = "pushing"


class SyncWarningKind(str, Enum):
    """Non-fatal problems surfaced to the caller."""
    SYNC_UNAVAILABLE = "sync_unavailable"
    STORAGE_CORRUPT = "storage_corrupt"
    STORAGE_WRITE_FAILED = "storage_write_failed"


class SyncWarning(BaseModel):
    """A recorded, non-fatal sync or storage problem."""

    kind: SyncWarningKind
    key: str
    message: str
    cause: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utcnow)


class SyncStatus(BaseModel):
    """Observable sync state of one key."""

    key: str
    pull_state: PullState = PullState.IDLE
    push_state: PushState = PushState.IDLE
    attached: bool = False
    last_sync: Optional[datetime] = None
    last_error: Optional[SyncWarning] = None
    push_count: int = 0

    @property
    def syncing(self) -> bool:
        return self.pull_state == PullState.PULLING or self.push_state == PushState.PUSHING

    @property
    def is_healthy(self) -> bool:
        return self.last_error is None


class RemoteRecord(BaseModel):
    """A value as held by the remote key-value service."""

    user_id: str
    key: str
    value: Any = None
    updated_at: Optional[datetime] = None
