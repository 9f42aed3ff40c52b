"""Kubernetes Secret store backed by the official Kubernetes client.

Covers the ``kubectl`` steps of the Key Vault migration runbook: reading and
writing Secrets, rolling a Deployment so pods pick up new credentials, and
applying SecretProviderClass custom objects.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from kv_sync.k8s.exceptions import (
    KubernetesError,
    KubernetesPermissionError,
    KubernetesSecretNotFoundError,
)
from kv_sync.k8s.models import KubernetesSecret
from kv_sync.retry import with_kubernetes_retry

logger = logging.getLogger(__name__)

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


def load_kube_config(in_cluster: Optional[bool] = None, context: Optional[str] = None) -> None:
    """Load cluster credentials.

    Args:
        in_cluster: Force in-cluster (service account) config. When None, the
            presence of ``KUBERNETES_SERVICE_HOST`` decides.
        context: kubeconfig context to use outside the cluster

    Raises:
        KubernetesError: If no usable configuration is found
    """
    if in_cluster is None:
        in_cluster = "KUBERNETES_SERVICE_HOST" in os.environ
    try:
        if in_cluster:
            k8s_config.load_incluster_config()
            logger.debug("Loaded in-cluster Kubernetes config")
        else:
            k8s_config.load_kube_config(context=context)
            logger.debug(f"Loaded kubeconfig (context={context or 'current'})")
    except ConfigException as e:
        raise KubernetesError(f"Unable to load Kubernetes configuration: {e}") from e


def _plural(kind: str) -> str:
    lower = kind.lower()
    return f"{lower}es" if lower.endswith("s") else f"{lower}s"


class SecretStore:
    """Read/write access to Kubernetes Secrets and related objects.

    API clients are created lazily on first use so that constructing a store
    never touches the cluster.
    """

    def __init__(
        self,
        core_api: Optional[Any] = None,
        apps_api: Optional[Any] = None,
        custom_api: Optional[Any] = None,
        in_cluster: Optional[bool] = None,
        context: Optional[str] = None,
    ):
        self._core = core_api
        self._apps = apps_api
        self._custom = custom_api
        self._in_cluster = in_cluster
        self._context = context
        self._config_loaded = any(api is not None for api in (core_api, apps_api, custom_api))

    def _ensure_config(self) -> None:
        if not self._config_loaded:
            load_kube_config(self._in_cluster, self._context)
            self._config_loaded = True

    @property
    def core(self):
        if self._core is None:
            self._ensure_config()
            self._core = k8s_client.CoreV1Api()
        return self._core

    @property
    def apps(self):
        if self._apps is None:
            self._ensure_config()
            self._apps = k8s_client.AppsV1Api()
        return self._apps

    @property
    def custom(self):
        if self._custom is None:
            self._ensure_config()
            self._custom = k8s_client.CustomObjectsApi()
        return self._custom

    def _call(
        self,
        operation: str,
        namespace: str,
        name: str,
        func: Callable,
        *args,
        kind: str = "Secret",
        **kwargs,
    ) -> Any:
        """Run an API call with retry and error translation."""
        try:
            return with_kubernetes_retry()(func)(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise KubernetesSecretNotFoundError(namespace, name, kind=kind) from e
            if e.status == 403:
                raise KubernetesPermissionError(namespace, name, operation) from e
            raise KubernetesError(
                f"Failed to {operation} {kind} {namespace}/{name}: {e.reason}",
                status=e.status,
            ) from e

    # =====================================================================
    # Secrets
    # =====================================================================

    def read_secret(self, namespace: str, name: str) -> KubernetesSecret:
        """Read a Secret and decode its values.

        Raises:
            KubernetesSecretNotFoundError: If the Secret does not exist
        """
        obj = self._call("read", namespace, name, self.core.read_namespaced_secret, name, namespace)
        secret = KubernetesSecret.from_api(obj)
        logger.debug(f"Read Secret {namespace}/{name} with keys {sorted(secret.data)}")
        return secret

    def apply_secret(self, secret: KubernetesSecret) -> KubernetesSecret:
        """Create a Secret, replacing it when it already exists."""
        body = secret.to_body()
        try:
            self._call(
                "create",
                secret.namespace,
                secret.name,
                self.core.create_namespaced_secret,
                secret.namespace,
                body,
            )
            logger.info(f"Created Secret {secret.namespace}/{secret.name}")
        except KubernetesError as e:
            if e.status != 409:
                raise
            self._call(
                "replace",
                secret.namespace,
                secret.name,
                self.core.replace_namespaced_secret,
                secret.name,
                secret.namespace,
                body,
            )
            logger.info(f"Replaced Secret {secret.namespace}/{secret.name}")
        return secret

    def delete_secret(self, namespace: str, name: str) -> bool:
        """Delete a Secret.

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self._call("delete", namespace, name, self.core.delete_namespaced_secret, name, namespace)
        except KubernetesSecretNotFoundError:
            logger.info(f"Secret {namespace}/{name} already absent")
            return False
        logger.info(f"Deleted Secret {namespace}/{name}")
        return True

    # =====================================================================
    # Workloads and custom objects
    # =====================================================================

    def restart_deployment(self, namespace: str, name: str) -> str:
        """Trigger a rolling restart, like ``kubectl rollout restart``.

        Returns:
            The timestamp written to the pod template annotation
        """
        restarted_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "spec": {
                "template": {
                    "metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}
                }
            }
        }
        self._call(
            "patch",
            namespace,
            name,
            self.apps.patch_namespaced_deployment,
            name,
            namespace,
            body,
            kind="Deployment",
        )
        logger.info(f"Restarted Deployment {namespace}/{name} at {restarted_at}")
        return restarted_at

    def apply_custom_object(self, manifest: dict[str, Any], plural: Optional[str] = None) -> dict[str, Any]:
        """Create or replace a namespaced custom object.

        Args:
            manifest: Full object manifest (apiVersion, kind, metadata, spec)
            plural: Resource plural; derived from ``kind`` when omitted
        """
        group, _, version = manifest["apiVersion"].partition("/")
        kind = manifest["kind"]
        plural = plural or _plural(kind)
        namespace = manifest["metadata"].get("namespace", "default")
        name = manifest["metadata"]["name"]

        try:
            result = self._call(
                "create",
                namespace,
                name,
                self.custom.create_namespaced_custom_object,
                group,
                version,
                namespace,
                plural,
                manifest,
                kind=kind,
            )
            logger.info(f"Created {kind} {namespace}/{name}")
            return result
        except KubernetesError as e:
            if e.status != 409:
                raise

        existing = self._call(
            "get",
            namespace,
            name,
            self.custom.get_namespaced_custom_object,
            group,
            version,
            namespace,
            plural,
            name,
            kind=kind,
        )
        body = dict(manifest)
        body["metadata"] = dict(manifest["metadata"])
        body["metadata"]["resourceVersion"] = existing["metadata"]["resourceVersion"]
        result = self._call(
            "replace",
            namespace,
            name,
            self.custom.replace_namespaced_custom_object,
            group,
            version,
            namespace,
            plural,
            name,
            body,
            kind=kind,
        )
        logger.info(f"Replaced {kind} {namespace}/{name}")
        return result
