"""Models for the secret-sync poller."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from kv_sync.sync.targets import SyncTarget


class SyncStatus(str, Enum):
    """Outcome of syncing one secret in one poll cycle."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncSpec:
    """A Key Vault secret to watch and where to deliver it.

    Attributes:
        secret_name: Key Vault secret name
        targets: Destinations written on change
        version: Pin a specific version instead of following latest
    """

    secret_name: str
    targets: list["SyncTarget"] = field(default_factory=list)
    version: Optional[str] = None


@dataclass
class KnownGood:
    """Last value successfully delivered to every target of a spec."""

    version: Optional[str]
    fingerprint: str
    synced_at: datetime


class SyncRecord(BaseModel):
    """History entry for one secret in one poll cycle."""

    id: str = Field(..., examples=["sync-1a2b3c4d"])
    secret_name: str = Field(..., examples=["redis-password"])
    status: SyncStatus
    timestamp: datetime
    duration_seconds: Optional[float] = None
    previous_version: Optional[str] = None
    new_version: Optional[str] = None
    targets: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
