"""Shared fixtures: in-memory stand-ins for the Azure and Kubernetes SDK clients."""

import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from azure.core.exceptions import ResourceNotFoundError
from kubernetes.client import V1ObjectMeta, V1Secret
from kubernetes.client.exceptions import ApiException

from kv_sync.k8s.models import b64encode
from kv_sync.k8s.store import SecretStore
from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.models import AuthMethod, KeyVaultConnectionConfig
from kv_sync.retry import reset_circuit_breakers


class FakeSecretProperties:
    def __init__(self, name, version, content_type=None, tags=None, enabled=True, created_on=None):
        self.name = name
        self.version = version
        self.content_type = content_type
        self.tags = tags
        self.enabled = enabled
        self.updated_on = datetime.now(timezone.utc)
        self.created_on = created_on or self.updated_on


class FakeSdkSecret:
    def __init__(self, name, value, properties):
        self.name = name
        self.value = value
        self.properties = properties


class FakeSecretClient:
    """Mimics azure.keyvault.secrets.SecretClient for the calls we make."""

    def __init__(self):
        self.secrets: dict[str, list[FakeSdkSecret]] = {}
        self.get_calls = 0
        self.list_version_calls = 0
        self.set_calls = 0
        self.purged: list[str] = []
        self.closed = False
        self._versions = itertools.count(1)

    def set_secret(self, name, value, content_type=None, tags=None, **kwargs):
        self.set_calls += 1
        number = next(self._versions)
        props = FakeSecretProperties(
            name,
            f"v{number}",
            content_type=content_type,
            tags=tags,
            created_on=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=number),
        )
        secret = FakeSdkSecret(name, value, props)
        self.secrets.setdefault(name, []).append(secret)
        return secret

    def get_secret(self, name, version=None, **kwargs):
        self.get_calls += 1
        versions = self.secrets.get(name)
        if not versions:
            raise ResourceNotFoundError(f"Secret not found: {name}")
        if version is None:
            return versions[-1]
        for secret in versions:
            if secret.properties.version == version:
                return secret
        raise ResourceNotFoundError(f"Secret version not found: {name}/{version}")

    def begin_delete_secret(self, name, **kwargs):
        if name not in self.secrets:
            raise ResourceNotFoundError(f"Secret not found: {name}")
        del self.secrets[name]
        return Mock()

    def purge_deleted_secret(self, name, **kwargs):
        self.purged.append(name)

    def list_properties_of_secret_versions(self, name, **kwargs):
        self.list_version_calls += 1
        versions = self.secrets.get(name)
        if not versions:
            raise ResourceNotFoundError(f"Secret not found: {name}")
        return [secret.properties for secret in reversed(versions)]

    def list_properties_of_secrets(self, **kwargs):
        return [versions[-1].properties for versions in self.secrets.values()]

    def close(self):
        self.closed = True


class FakeCoreV1Api:
    """Mimics kubernetes.client.CoreV1Api Secret calls with an in-memory store."""

    def __init__(self):
        self.secrets: dict[tuple[str, str], dict] = {}

    def add_secret(self, namespace, name, data, labels=None):
        self.secrets[(namespace, name)] = {
            "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
            "type": "Opaque",
            "data": {key: b64encode(value) for key, value in data.items()},
        }

    def _to_v1(self, body):
        meta = body["metadata"]
        return V1Secret(
            metadata=V1ObjectMeta(
                name=meta["name"],
                namespace=meta["namespace"],
                labels=meta.get("labels") or None,
                annotations=meta.get("annotations") or None,
            ),
            data=dict(body.get("data") or {}),
            type=body.get("type"),
        )

    def read_namespaced_secret(self, name, namespace, **kwargs):
        body = self.secrets.get((namespace, name))
        if body is None:
            raise ApiException(status=404, reason="Not Found")
        return self._to_v1(body)

    def create_namespaced_secret(self, namespace, body, **kwargs):
        key = (namespace, body["metadata"]["name"])
        if key in self.secrets:
            raise ApiException(status=409, reason="Conflict")
        self.secrets[key] = body
        return self._to_v1(body)

    def replace_namespaced_secret(self, name, namespace, body, **kwargs):
        if (namespace, name) not in self.secrets:
            raise ApiException(status=404, reason="Not Found")
        self.secrets[(namespace, name)] = body
        return self._to_v1(body)

    def delete_namespaced_secret(self, name, namespace, **kwargs):
        if (namespace, name) not in self.secrets:
            raise ApiException(status=404, reason="Not Found")
        del self.secrets[(namespace, name)]


@pytest.fixture(autouse=True)
def _fresh_circuit_breakers():
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def keyvault_config():
    return KeyVaultConnectionConfig(
        vault_name="redis-kv-demo",
        auth_method=AuthMethod.DEFAULT,
        retries=0,
    )


@pytest.fixture
def fake_secret_client():
    return FakeSecretClient()


@pytest.fixture
def keyvault_client(keyvault_config, fake_secret_client):
    return KeyVaultClient(keyvault_config, secret_client=fake_secret_client)


@pytest.fixture
def fake_core_api():
    return FakeCoreV1Api()


@pytest.fixture
def secret_store(fake_core_api):
    return SecretStore(core_api=fake_core_api, apps_api=Mock(), custom_api=Mock())
