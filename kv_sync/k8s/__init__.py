"""Kubernetes Secret access for the Key Vault migration and sync targets."""

from kv_sync.k8s.exceptions import (
    KubernetesError,
    KubernetesPermissionError,
    KubernetesSecretNotFoundError,
)
from kv_sync.k8s.models import KubernetesSecret, b64decode, b64encode
from kv_sync.k8s.store import RESTARTED_AT_ANNOTATION, SecretStore, load_kube_config

__all__ = [
    "KubernetesError",
    "KubernetesPermissionError",
    "KubernetesSecretNotFoundError",
    "KubernetesSecret",
    "b64decode",
    "b64encode",
    "SecretStore",
    "load_kube_config",
    "RESTARTED_AT_ANNOTATION",
]
