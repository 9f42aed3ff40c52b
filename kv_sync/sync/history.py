"""In-memory history of sync outcomes."""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from kv_sync.sync.models import SyncRecord, SyncStatus

logger = logging.getLogger(__name__)

MAX_ENTRIES_PER_SECRET = 100


class SyncHistoryTracker:
    """Tracks sync outcomes per secret, newest last, capped per secret."""

    def __init__(self, max_entries: int = MAX_ENTRIES_PER_SECRET):
        self._max_entries = max_entries
        self._history: dict[str, list[SyncRecord]] = {}
        self._lock = threading.Lock()

    def record(
        self,
        secret_name: str,
        status: SyncStatus,
        duration_seconds: Optional[float] = None,
        previous_version: Optional[str] = None,
        new_version: Optional[str] = None,
        targets: Optional[list[str]] = None,
        error_message: Optional[str] = None,
    ) -> SyncRecord:
        """Record the outcome of syncing one secret.

        Returns:
            The stored SyncRecord
        """
        entry = SyncRecord(
            id=f"sync-{uuid.uuid4().hex[:8]}",
            secret_name=secret_name,
            status=status,
            timestamp=datetime.now(timezone.utc),
            duration_seconds=duration_seconds,
            previous_version=previous_version,
            new_version=new_version,
            targets=targets or [],
            error_message=error_message,
        )

        with self._lock:
            entries = self._history.setdefault(secret_name, [])
            entries.append(entry)
            if len(entries) > self._max_entries:
                del entries[: len(entries) - self._max_entries]

        logger.debug(f"Recorded {entry.id} for {secret_name}: {status.value}")
        return entry

    def get_history(
        self,
        secret_name: Optional[str] = None,
        limit: int = 50,
        status_filter: Optional[SyncStatus] = None,
    ) -> list[SyncRecord]:
        """Return history entries, newest first.

        Args:
            secret_name: Filter by secret (None for all)
            limit: Maximum number of entries to return
            status_filter: Filter by status
        """
        with self._lock:
            if secret_name:
                history = list(self._history.get(secret_name, []))
            else:
                history = [e for entries in self._history.values() for e in entries]

        if status_filter:
            history = [h for h in history if h.status == status_filter]

        # Reverse first so entries sharing a timestamp stay newest first
        history.reverse()
        history.sort(key=lambda h: h.timestamp, reverse=True)
        return history[:limit]

    def get_stats(self, secret_name: Optional[str] = None) -> dict[str, Any]:
        history = self.get_history(secret_name, limit=self._max_entries * max(1, len(self._history)))
        counts = {status.value: 0 for status in SyncStatus}
        for entry in history:
            counts[entry.status.value] += 1
        return {
            "total": len(history),
            **counts,
            "last_update": next(
                (h.timestamp.isoformat() for h in history if h.status == SyncStatus.UPDATED),
                None,
            ),
        }

    def last_update(self, secret_name: str) -> Optional[SyncRecord]:
        """Most recent UPDATED entry for a secret."""
        for entry in self.get_history(secret_name, limit=self._max_entries):
            if entry.status == SyncStatus.UPDATED:
                return entry
        return None
