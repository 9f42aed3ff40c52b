"""Tests for the Kubernetes SecretStore."""

import pytest
from unittest.mock import Mock, patch

from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from kv_sync.k8s.exceptions import (
    KubernetesError,
    KubernetesPermissionError,
    KubernetesSecretNotFoundError,
)
from kv_sync.k8s.models import KubernetesSecret, b64decode
from kv_sync.k8s.store import RESTARTED_AT_ANNOTATION, SecretStore, load_kube_config


class TestSecrets:
    """Test Secret read/apply/delete."""

    def test_read_decodes_values(self, secret_store, fake_core_api):
        fake_core_api.add_secret("default", "redis-auth", {"password": "s3cret"}, labels={"app": "redis"})

        secret = secret_store.read_secret("default", "redis-auth")

        assert secret.data == {"password": "s3cret"}
        assert secret.labels == {"app": "redis"}
        assert secret.namespace == "default"

    def test_binary_value_survives_read_and_apply(self, secret_store, fake_core_api):
        fake_core_api.add_secret("default", "redis-tls", {"password": "s3cret"})
        fake_core_api.secrets[("default", "redis-tls")]["data"]["keystore.jks"] = "//4A"

        secret = secret_store.read_secret("default", "redis-tls")
        secret.data["password"] = "rotated"
        secret_store.apply_secret(secret)

        stored = fake_core_api.secrets[("default", "redis-tls")]["data"]
        assert stored["keystore.jks"] == "//4A"
        assert b64decode(stored["password"]) == "rotated"

    def test_read_missing_raises_not_found(self, secret_store):
        with pytest.raises(KubernetesSecretNotFoundError) as exc_info:
            secret_store.read_secret("default", "missing")
        assert exc_info.value.status == 404

    def test_apply_creates_new_secret(self, secret_store, fake_core_api):
        secret_store.apply_secret(
            KubernetesSecret(namespace="default", name="redis-auth", data={"password": "x"})
        )

        body = fake_core_api.secrets[("default", "redis-auth")]
        assert b64decode(body["data"]["password"]) == "x"

    def test_apply_replaces_existing_secret(self, secret_store, fake_core_api):
        """A 409 on create falls back to replace."""
        fake_core_api.add_secret("default", "redis-auth", {"password": "old"})

        secret_store.apply_secret(
            KubernetesSecret(namespace="default", name="redis-auth", data={"password": "new"})
        )

        assert secret_store.read_secret("default", "redis-auth").data == {"password": "new"}

    def test_delete_is_idempotent(self, secret_store, fake_core_api):
        fake_core_api.add_secret("default", "redis-auth", {"password": "x"})

        assert secret_store.delete_secret("default", "redis-auth") is True
        assert secret_store.delete_secret("default", "redis-auth") is False

    def test_forbidden_maps_to_permission_error(self):
        core = Mock()
        core.read_namespaced_secret.side_effect = ApiException(status=403, reason="Forbidden")
        store = SecretStore(core_api=core)

        with pytest.raises(KubernetesPermissionError) as exc_info:
            store.read_secret("kube-system", "admin")
        assert exc_info.value.operation == "read"

    def test_other_api_errors_map_to_kubernetes_error(self):
        core = Mock()
        core.read_namespaced_secret.side_effect = ApiException(status=422, reason="Invalid")
        store = SecretStore(core_api=core)

        with pytest.raises(KubernetesError) as exc_info:
            store.read_secret("default", "redis-auth")
        assert exc_info.value.status == 422


class TestRestartDeployment:
    """Test rolling restarts."""

    def test_patches_restarted_at_annotation(self):
        apps = Mock()
        store = SecretStore(apps_api=apps)

        restarted_at = store.restart_deployment("default", "redis-client")

        name, namespace, body = apps.patch_namespaced_deployment.call_args.args
        assert (name, namespace) == ("redis-client", "default")
        annotations = body["spec"]["template"]["metadata"]["annotations"]
        assert annotations[RESTARTED_AT_ANNOTATION] == restarted_at
        assert restarted_at.endswith("Z")

    def test_missing_deployment(self):
        apps = Mock()
        apps.patch_namespaced_deployment.side_effect = ApiException(status=404, reason="Not Found")
        store = SecretStore(apps_api=apps)

        with pytest.raises(KubernetesSecretNotFoundError) as exc_info:
            store.restart_deployment("default", "redis-client")
        assert exc_info.value.kind == "Deployment"


class TestCustomObjects:
    """Test SecretProviderClass create-or-replace."""

    MANIFEST = {
        "apiVersion": "secrets-store.csi.x-k8s.io/v1",
        "kind": "SecretProviderClass",
        "metadata": {"name": "redis-auth-kv", "namespace": "default"},
        "spec": {"provider": "azure"},
    }

    def test_create(self):
        custom = Mock()
        store = SecretStore(custom_api=custom)

        store.apply_custom_object(dict(self.MANIFEST))

        custom.create_namespaced_custom_object.assert_called_once_with(
            "secrets-store.csi.x-k8s.io",
            "v1",
            "default",
            "secretproviderclasses",
            self.MANIFEST,
        )

    def test_conflict_replaces_with_resource_version(self):
        custom = Mock()
        custom.create_namespaced_custom_object.side_effect = ApiException(status=409, reason="Conflict")
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"resourceVersion": "42"}
        }
        store = SecretStore(custom_api=custom)

        store.apply_custom_object(
            {**self.MANIFEST, "metadata": dict(self.MANIFEST["metadata"])}
        )

        args = custom.replace_namespaced_custom_object.call_args.args
        assert args[:5] == (
            "secrets-store.csi.x-k8s.io",
            "v1",
            "default",
            "secretproviderclasses",
            "redis-auth-kv",
        )
        assert args[5]["metadata"]["resourceVersion"] == "42"


class TestLoadKubeConfig:
    """Test configuration loading."""

    def test_in_cluster_when_service_host_set(self, monkeypatch):
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
        with patch("kv_sync.k8s.store.k8s_config") as k8s_config:
            load_kube_config()
        k8s_config.load_incluster_config.assert_called_once_with()

    def test_kubeconfig_with_context(self, monkeypatch):
        monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
        with patch("kv_sync.k8s.store.k8s_config") as k8s_config:
            load_kube_config(context="aks-demo")
        k8s_config.load_kube_config.assert_called_once_with(context="aks-demo")

    def test_config_error_translated(self):
        with patch("kv_sync.k8s.store.k8s_config") as k8s_config:
            k8s_config.load_kube_config.side_effect = ConfigException("no kubeconfig")
            with pytest.raises(KubernetesError):
                load_kube_config(in_cluster=False)

    def test_store_loads_config_lazily(self):
        with patch("kv_sync.k8s.store.load_kube_config") as loader:
            store = SecretStore(context="aks-demo")
            loader.assert_not_called()
            with patch("kv_sync.k8s.store.k8s_client") as k8s_client:
                store.core
                store.apps
        loader.assert_called_once_with(None, "aks-demo")
        k8s_client.CoreV1Api.assert_called_once_with()
