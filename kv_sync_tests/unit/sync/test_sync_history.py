"""Tests for SyncHistoryTracker."""

from kv_sync.sync import SyncHistoryTracker, SyncStatus


class TestSyncHistoryTracker:
    """Test recording and querying sync outcomes."""

    def test_record_returns_entry(self):
        tracker = SyncHistoryTracker()

        entry = tracker.record(
            "redis-password",
            SyncStatus.UPDATED,
            previous_version="v1",
            new_version="v2",
            targets=["file:/etc/redis/password"],
        )

        assert entry.id.startswith("sync-")
        assert entry.secret_name == "redis-password"
        assert entry.targets == ["file:/etc/redis/password"]

    def test_history_newest_first(self):
        tracker = SyncHistoryTracker()
        tracker.record("redis-password", SyncStatus.UPDATED, new_version="v1")
        tracker.record("redis-password", SyncStatus.UNCHANGED, new_version="v1")
        tracker.record("redis-password", SyncStatus.UPDATED, new_version="v2")

        history = tracker.get_history("redis-password")

        assert [h.new_version for h in history] == ["v2", "v1", "v1"]
        assert history[0].status == SyncStatus.UPDATED

    def test_filters(self):
        tracker = SyncHistoryTracker()
        tracker.record("redis-password", SyncStatus.UPDATED)
        tracker.record("redis-password", SyncStatus.FAILED, error_message="boom")
        tracker.record("redis-user", SyncStatus.UPDATED)

        assert len(tracker.get_history()) == 3
        assert len(tracker.get_history("redis-user")) == 1
        failed = tracker.get_history(status_filter=SyncStatus.FAILED)
        assert [h.error_message for h in failed] == ["boom"]
        assert len(tracker.get_history(limit=2)) == 2

    def test_capped_per_secret(self):
        tracker = SyncHistoryTracker(max_entries=3)
        for i in range(5):
            tracker.record("redis-password", SyncStatus.UNCHANGED, new_version=f"v{i}")

        history = tracker.get_history("redis-password")

        assert [h.new_version for h in history] == ["v4", "v3", "v2"]

    def test_stats(self):
        tracker = SyncHistoryTracker()
        tracker.record("redis-password", SyncStatus.UPDATED)
        tracker.record("redis-password", SyncStatus.UNCHANGED)
        tracker.record("redis-password", SyncStatus.FAILED)

        stats = tracker.get_stats("redis-password")

        assert stats["total"] == 3
        assert stats["updated"] == 1
        assert stats["unchanged"] == 1
        assert stats["failed"] == 1
        assert stats["skipped"] == 0
        assert stats["last_update"] is not None

    def test_last_update(self):
        tracker = SyncHistoryTracker()
        assert tracker.last_update("redis-password") is None

        tracker.record("redis-password", SyncStatus.UPDATED, new_version="v1")
        tracker.record("redis-password", SyncStatus.FAILED)

        assert tracker.last_update("redis-password").new_version == "v1"
