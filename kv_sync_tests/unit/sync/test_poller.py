"""Tests for SecretSyncPoller."""

import threading
from unittest.mock import Mock, patch

import pytest

from kv_sync.keyvault.exceptions import (
    KeyVaultAuthenticationError,
    KeyVaultConnectionError,
    KeyVaultError,
    KeyVaultPermissionError,
    SecretNotFoundError,
)
from kv_sync.retry import CircuitBreaker, CircuitBreakerConfiguration, CircuitState
from kv_sync.sync import (
    CallbackSignal,
    FileTarget,
    SecretSyncPoller,
    SyncSpec,
    SyncStatus,
    SyncTarget,
)
from kv_sync.sync.poller import is_service_failure


class MemoryTarget(SyncTarget):
    def __init__(self, fail=False):
        self.value = None
        self.writes = 0
        self.fail = fail

    def write(self, value):
        if self.fail:
            raise OSError("disk full")
        self.value = value
        self.writes += 1

    def holds(self, value):
        return self.value == value

    def describe(self):
        return "memory"


@pytest.fixture
def target():
    return MemoryTarget()


@pytest.fixture
def fired():
    return []


@pytest.fixture
def poller(keyvault_client, target, fired):
    return SecretSyncPoller(
        keyvault_client,
        [SyncSpec(secret_name="redis-password", targets=[target])],
        signals=[CallbackSignal(fired.append, name="record")],
        interval=0.01,
    )


class TestChangeDetection:
    """Test version and value tracking."""

    def test_first_poll_writes_and_signals(self, poller, fake_secret_client, target, fired):
        fake_secret_client.set_secret("redis-password", "s3cret")

        [record] = poller.poll_once()

        assert record.status == SyncStatus.UPDATED
        assert record.new_version == "v1"
        assert record.previous_version is None
        assert target.value == "s3cret"
        assert fired == [["redis-password"]]
        assert poller.known_good("redis-password").version == "v1"

    def test_second_poll_unchanged(self, poller, fake_secret_client, target, fired):
        """No new version means no writes and no signals."""
        fake_secret_client.set_secret("redis-password", "s3cret")
        poller.poll_once()

        [record] = poller.poll_once()

        assert record.status == SyncStatus.UNCHANGED
        assert target.writes == 1
        assert len(fired) == 1

    def test_new_version_rewrites_and_signals_once(self, poller, fake_secret_client, target, fired):
        fake_secret_client.set_secret("redis-password", "old")
        poller.poll_once()
        fake_secret_client.set_secret("redis-password", "new")

        [record] = poller.poll_once()

        assert record.status == SyncStatus.UPDATED
        assert record.previous_version == "v1"
        assert record.new_version == "v2"
        assert target.value == "new"
        assert fired == [["redis-password"], ["redis-password"]]

    def test_target_drift_is_repaired(self, poller, fake_secret_client, target):
        """A target that lost its value is rewritten even without a new version."""
        fake_secret_client.set_secret("redis-password", "s3cret")
        poller.poll_once()
        target.value = "tampered"

        [record] = poller.poll_once()

        assert record.status == SyncStatus.UPDATED
        assert target.value == "s3cret"

    def test_crlf_file_value_is_stable(self, keyvault_client, fake_secret_client, tmp_path, fired):
        """A value with CRLF line endings is written once and then left alone."""
        fake_secret_client.set_secret("redis-password", "line1\r\nline2\r\n")
        poller = SecretSyncPoller(
            keyvault_client,
            [SyncSpec(secret_name="redis-password", targets=[FileTarget(tmp_path / "password")])],
            signals=[CallbackSignal(fired.append, name="record")],
            interval=0.01,
        )

        first, second = poller.poll_once(), poller.poll_once()

        assert first[0].status == SyncStatus.UPDATED
        assert second[0].status == SyncStatus.UNCHANGED
        assert fired == [["redis-password"]]
        assert (tmp_path / "password").read_bytes() == b"line1\r\nline2\r\n"

    def test_signals_fire_once_for_many_changes(self, keyvault_client, fake_secret_client):
        fake_secret_client.set_secret("redis-password", "a")
        fake_secret_client.set_secret("redis-user", "b")
        callback = Mock()
        poller = SecretSyncPoller(
            keyvault_client,
            [
                SyncSpec(secret_name="redis-password", targets=[MemoryTarget()]),
                SyncSpec(secret_name="redis-user", targets=[MemoryTarget()]),
            ],
            signals=[CallbackSignal(callback)],
        )

        poller.poll_once()

        callback.assert_called_once_with(["redis-password", "redis-user"])


class TestFailures:
    """Test that failures keep the last known good value."""

    def test_fetch_failure_keeps_target(self, poller, fake_secret_client, target, fired):
        fake_secret_client.set_secret("redis-password", "s3cret")
        poller.poll_once()
        del fake_secret_client.secrets["redis-password"]

        [record] = poller.poll_once()

        assert record.status == SyncStatus.FAILED
        assert "redis-password" in record.error_message
        assert target.value == "s3cret"
        assert poller.known_good("redis-password").version == "v1"
        assert len(fired) == 1

    def test_write_failure_does_not_advance_known_good(self, keyvault_client, fake_secret_client):
        fake_secret_client.set_secret("redis-password", "s3cret")
        poller = SecretSyncPoller(
            keyvault_client,
            [SyncSpec(secret_name="redis-password", targets=[MemoryTarget(fail=True)])],
        )

        [record] = poller.poll_once()

        assert record.status == SyncStatus.FAILED
        assert record.new_version == "v1"
        assert poller.known_good("redis-password") is None

    def test_open_circuit_skips(self, keyvault_client, fake_secret_client, target):
        breaker = CircuitBreaker(
            "test-sync",
            CircuitBreakerConfiguration(failure_threshold=1, recovery_timeout=60.0),
        )
        poller = SecretSyncPoller(
            keyvault_client,
            [SyncSpec(secret_name="redis-password", targets=[target])],
            circuit_breaker=breaker,
        )

        with patch.object(
            keyvault_client, "get_secret", side_effect=KeyVaultConnectionError("unreachable")
        ):
            [first] = poller.poll_once()
        fake_secret_client.set_secret("redis-password", "s3cret")
        [second] = poller.poll_once()

        assert first.status == SyncStatus.FAILED
        assert second.status == SyncStatus.SKIPPED
        assert target.value is None

    def test_missing_secrets_do_not_open_circuit(self, keyvault_client, fake_secret_client):
        """Per-secret errors never block reads of the healthy secrets."""
        fake_secret_client.set_secret("redis-password", "s3cret")
        healthy = MemoryTarget()
        specs = [
            SyncSpec(secret_name=name, targets=[MemoryTarget()])
            for name in ("typo-a", "typo-b", "typo-c")
        ]
        specs.append(SyncSpec(secret_name="redis-password", targets=[healthy]))
        poller = SecretSyncPoller(keyvault_client, specs)

        records = poller.poll_once()

        assert [r.status for r in records] == [SyncStatus.FAILED] * 3 + [SyncStatus.UPDATED]
        assert healthy.value == "s3cret"
        assert poller.circuit_breaker.state == CircuitState.CLOSED
        assert poller.circuit_breaker.failure_count == 0

    @pytest.mark.parametrize(
        "error, expected",
        [
            (KeyVaultConnectionError("unreachable"), True),
            (KeyVaultAuthenticationError("bad credential"), True),
            (KeyVaultError("throttled", details={"status_code": 429}), True),
            (KeyVaultError("server error", details={"status_code": 503}), True),
            (KeyVaultError("bad request", details={"status_code": 400}), False),
            (SecretNotFoundError(name="typo-a"), False),
            (KeyVaultPermissionError(name="redis-password", operation="get"), False),
        ],
    )
    def test_is_service_failure(self, error, expected):
        assert is_service_failure(error) is expected

    def test_failing_signal_does_not_stop_others(self, keyvault_client, fake_secret_client):
        fake_secret_client.set_secret("redis-password", "s3cret")
        broken = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        poller = SecretSyncPoller(
            keyvault_client,
            [SyncSpec(secret_name="redis-password", targets=[MemoryTarget()])],
            signals=[CallbackSignal(broken, name="broken"), CallbackSignal(healthy, name="healthy")],
        )

        [record] = poller.poll_once()

        assert record.status == SyncStatus.UPDATED
        healthy.assert_called_once_with(["redis-password"])


class TestValidation:
    """Test constructor checks."""

    def test_rejects_non_positive_interval(self, keyvault_client):
        with pytest.raises(ValueError):
            SecretSyncPoller(keyvault_client, [], interval=0)

    def test_rejects_duplicate_specs(self, keyvault_client):
        with pytest.raises(ValueError):
            SecretSyncPoller(
                keyvault_client,
                [SyncSpec(secret_name="redis-password"), SyncSpec(secret_name="redis-password")],
            )


class TestLoop:
    """Test run/start/stop."""

    def test_run_max_cycles(self, poller, fake_secret_client):
        fake_secret_client.set_secret("redis-password", "s3cret")

        poller.run(max_cycles=3)

        assert poller.cycles == 3
        assert len(poller.history.get_history("redis-password")) == 3

    def test_run_returns_when_stop_event_set(self, poller):
        stop = threading.Event()
        stop.set()

        poller.run(stop_event=stop)

        assert poller.cycles == 0

    def test_start_and_stop(self, poller, fake_secret_client, tmp_path):
        fake_secret_client.set_secret("redis-password", "s3cret")
        path = tmp_path / "password"
        poller.specs[0].targets.append(FileTarget(path))
        synced = threading.Event()
        poller.signals.append(CallbackSignal(lambda changed: synced.set(), name="synced"))

        poller.start()
        with pytest.raises(RuntimeError):
            poller.start()
        assert synced.wait(5)
        poller.stop(timeout=5)

        assert not poller.is_running
        assert poller.cycles >= 1
        assert path.read_text() == "s3cret"
