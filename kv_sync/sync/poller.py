"""Poll Key Vault and deliver changed secrets to local targets.

Once a secret lives in Key Vault, workloads still read it from a local file or
a Kubernetes Secret. The poller keeps those copies current: each cycle it
reads every watched secret, compares it with the last value that reached all
of its targets, rewrites the targets on change and finally notifies
dependents (for example by rolling a Deployment).
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Sequence

from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.exceptions import (
    KeyVaultAuthenticationError,
    KeyVaultConnectionError,
    KeyVaultError,
)
from kv_sync.keyvault.models import KeyVaultSecret
from kv_sync.retry import (
    RETRYABLE_STATUS_CODES,
    CircuitBreaker,
    CircuitBreakerConfiguration,
    CircuitOpenException,
)
from kv_sync.sync.history import SyncHistoryTracker
from kv_sync.sync.models import KnownGood, SyncRecord, SyncSpec, SyncStatus
from kv_sync.sync.signals import Signal

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 120.0


def is_service_failure(error: KeyVaultError) -> bool:
    """True if ``error`` says the vault itself is unhealthy or unreachable.

    Missing secrets, denied access to one secret and bad names are per-secret
    problems and must not open the circuit for the other watched secrets.
    """
    if isinstance(error, (KeyVaultConnectionError, KeyVaultAuthenticationError)):
        return True
    status = error.details.get("status_code")
    return status is not None and (status in RETRYABLE_STATUS_CODES or status >= 500)


class SecretSyncPoller:
    """Keep local copies of Key Vault secrets in sync.

    Args:
        client: Key Vault client used for reads
        specs: Secrets to watch and their targets
        signals: Fired once per cycle when at least one secret changed
        interval: Seconds between cycles
        history: Tracker receiving one record per spec per cycle
        circuit_breaker: Guards Key Vault reads; a default one is created
    """

    def __init__(
        self,
        client: KeyVaultClient,
        specs: Sequence[SyncSpec],
        signals: Optional[Sequence[Signal]] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        history: Optional[SyncHistoryTracker] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        names = [spec.secret_name for spec in specs]
        if len(names) != len(set(names)):
            raise ValueError("each secret may only be watched by one spec")

        self.client = client
        self.specs = list(specs)
        self.signals = list(signals or [])
        self.interval = interval
        self.history = history or SyncHistoryTracker()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            "keyvault-sync",
            CircuitBreakerConfiguration(failure_threshold=3, recovery_timeout=interval * 2),
        )

        self._known_good: dict[str, KnownGood] = {}
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0

    # =====================================================================
    # State
    # =====================================================================

    def known_good(self, secret_name: str) -> Optional[KnownGood]:
        """Last version delivered to every target of ``secret_name``."""
        with self._state_lock:
            return self._known_good.get(secret_name)

    def _is_current(self, spec: SyncSpec, secret: KeyVaultSecret) -> bool:
        known = self.known_good(spec.secret_name)
        if known is None:
            return False
        if known.version != secret.version or known.fingerprint != secret.fingerprint:
            return False
        return all(target.holds(secret.value) for target in spec.targets)

    # =====================================================================
    # Poll cycle
    # =====================================================================

    def _fetch(self, spec: SyncSpec) -> KeyVaultSecret:
        # per-secret errors count as a healthy vault response for the breaker
        def read() -> tuple[Optional[KeyVaultSecret], Optional[KeyVaultError]]:
            try:
                secret = self.client.get_secret(
                    spec.secret_name, version=spec.version, use_cache=False
                )
            except KeyVaultError as e:
                if is_service_failure(e):
                    raise
                return None, e
            return secret, None

        secret, error = self.circuit_breaker.call(read)
        if error is not None:
            raise error
        return secret

    def _sync_spec(self, spec: SyncSpec) -> SyncRecord:
        start = time.monotonic()
        known = self.known_good(spec.secret_name)
        previous_version = known.version if known else None
        target_names = [target.describe() for target in spec.targets]

        def finish(status: SyncStatus, **kwargs) -> SyncRecord:
            return self.history.record(
                spec.secret_name,
                status,
                duration_seconds=round(time.monotonic() - start, 3),
                previous_version=previous_version,
                targets=target_names,
                **kwargs,
            )

        try:
            secret = self._fetch(spec)
        except CircuitOpenException as e:
            logger.warning(f"Skipping {spec.secret_name}: {e}")
            return finish(SyncStatus.SKIPPED, error_message=str(e))
        except Exception as e:
            logger.error(f"Failed to read {spec.secret_name} from Key Vault: {e}")
            return finish(SyncStatus.FAILED, error_message=str(e))

        try:
            if self._is_current(spec, secret):
                logger.debug(f"{spec.secret_name} unchanged at version {secret.version}")
                return finish(SyncStatus.UNCHANGED, new_version=secret.version)

            for target in spec.targets:
                target.write(secret.value)
                logger.debug(f"Wrote {spec.secret_name} to {target.describe()}")
        except Exception as e:
            logger.error(f"Failed to deliver {spec.secret_name}: {e}")
            return finish(SyncStatus.FAILED, new_version=secret.version, error_message=str(e))

        with self._state_lock:
            self._known_good[spec.secret_name] = KnownGood(
                version=secret.version,
                fingerprint=secret.fingerprint,
                synced_at=datetime.now(timezone.utc),
            )
        logger.info(
            f"Synced {spec.secret_name}: {previous_version or 'none'} -> {secret.version} "
            f"({len(spec.targets)} targets)"
        )
        return finish(SyncStatus.UPDATED, new_version=secret.version)

    def _fire_signals(self, changed: list[str]) -> None:
        for signal in self.signals:
            try:
                signal.fire(changed)
            except Exception as e:
                logger.error(f"Signal {signal.describe()} failed: {e}")

    def poll_once(self) -> list[SyncRecord]:
        """Run one cycle over every spec.

        Returns:
            One SyncRecord per spec, in spec order
        """
        records = [self._sync_spec(spec) for spec in self.specs]
        self.cycles += 1

        changed = [r.secret_name for r in records if r.status == SyncStatus.UPDATED]
        if changed:
            self._fire_signals(changed)

        failed = sum(1 for r in records if r.status == SyncStatus.FAILED)
        logger.info(
            f"Cycle {self.cycles}: {len(changed)} updated, {failed} failed, "
            f"{len(records)} watched"
        )
        return records

    # =====================================================================
    # Loop control
    # =====================================================================

    def run(
        self,
        stop_event: Optional[threading.Event] = None,
        max_cycles: Optional[int] = None,
    ) -> None:
        """Poll until ``stop_event`` is set or ``max_cycles`` cycles ran."""
        stop_event = stop_event or self._stop_event
        completed = 0
        logger.info(
            f"Watching {len(self.specs)} secrets in {self.client.vault_url} "
            f"every {self.interval:g}s"
        )
        while not stop_event.is_set():
            self.poll_once()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break
            stop_event.wait(self.interval)
        logger.info("Secret sync poller stopped")

    def start(self) -> threading.Thread:
        """Run the poller in a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("poller is already running")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            kwargs={"stop_event": self._stop_event},
            name="kv-sync-poller",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
