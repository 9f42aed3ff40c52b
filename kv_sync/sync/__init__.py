"""Poll Key Vault and keep local copies of secrets current."""

from kv_sync.sync.history import SyncHistoryTracker
from kv_sync.sync.models import KnownGood, SyncRecord, SyncSpec, SyncStatus
from kv_sync.sync.poller import DEFAULT_POLL_INTERVAL, SecretSyncPoller
from kv_sync.sync.signals import CallbackSignal, DeploymentRestartSignal, Signal
from kv_sync.sync.targets import FileTarget, KubernetesSecretTarget, SyncTarget

__all__ = [
    "SecretSyncPoller",
    "DEFAULT_POLL_INTERVAL",
    "SyncSpec",
    "SyncStatus",
    "SyncRecord",
    "KnownGood",
    "SyncHistoryTracker",
    "SyncTarget",
    "FileTarget",
    "KubernetesSecretTarget",
    "Signal",
    "DeploymentRestartSignal",
    "CallbackSignal",
]
