"""Dagster resource for Azure Key Vault secrets.

This module provides a Dagster resource that wraps :class:`KeyVaultClient`
for secret retrieval in pipeline execution and in the sync sensor.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Optional

from dagster import Field, Noneable, ResourceDefinition

from kv_sync import config as settings
from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.exceptions import (
    KeyVaultAuthenticationError,
    KeyVaultConnectionError,
    KeyVaultError,
)
from kv_sync.keyvault.models import AuthMethod, KeyVaultConnectionConfig, ServicePrincipal

logger = logging.getLogger(__name__)


@dataclass
class KeyVaultSecretsResourceConfig:
    """Configuration for the Key Vault secrets resource.

    Attributes:
        vault_name: Key Vault name (e.g., redis-kv-demo)
        vault_url: Full vault URL; derived from vault_name when omitted
        auth_method: service_principal, default or managed_identity
        client_id: Service Principal application id
        client_secret: Service Principal password
        tenant_id: Azure AD tenant id
        timeout: Request timeout in seconds
        retries: Number of retry attempts
        cache_ttl: Cache TTL in seconds (default: 300 = 5 minutes)
    """

    vault_name: Optional[str] = None
    vault_url: Optional[str] = None
    auth_method: str = AuthMethod.DEFAULT.value
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    tenant_id: Optional[str] = None
    timeout: int = 30
    retries: int = 3
    cache_ttl: int = 300

    @classmethod
    def from_env(cls) -> "KeyVaultSecretsResourceConfig":
        """Build from the values loaded by ``kv_sync.config``."""
        use_sp = bool(settings.AZURE_CLIENT_ID and settings.AZURE_CLIENT_SECRET and settings.AZURE_TENANT_ID)
        return cls(
            vault_name=settings.KEYVAULT_NAME,
            vault_url=settings.KEYVAULT_URL,
            auth_method=settings.KEYVAULT_AUTH_METHOD
            or (AuthMethod.SERVICE_PRINCIPAL.value if use_sp else AuthMethod.DEFAULT.value),
            client_id=settings.AZURE_CLIENT_ID,
            client_secret=settings.AZURE_CLIENT_SECRET,
            tenant_id=settings.AZURE_TENANT_ID,
        )

    def to_connection_config(self) -> KeyVaultConnectionConfig:
        """Convert to KeyVaultConnectionConfig for KeyVaultClient."""
        service_principal = None
        if self.client_id and self.client_secret and self.tenant_id:
            service_principal = ServicePrincipal(
                client_id=self.client_id,
                client_secret=self.client_secret,
                tenant_id=self.tenant_id,
            )
        return KeyVaultConnectionConfig(
            vault_name=self.vault_name,
            vault_url=self.vault_url,
            auth_method=AuthMethod(self.auth_method),
            service_principal=service_principal,
            timeout=self.timeout,
            retries=self.retries,
            cache_ttl=self.cache_ttl,
        )

    def __repr__(self) -> str:
        return (
            f"KeyVaultSecretsResourceConfig(vault_name={self.vault_name!r}, "
            f"vault_url={self.vault_url!r}, auth_method={self.auth_method!r})"
        )


class KeyVaultSecretsResource:
    """Dagster resource for retrieving secrets from Azure Key Vault.

    Example:
        >>> from dagster import Definitions
        >>> from kv_sync.resources import keyvault_secrets_resource
        >>>
        >>> defs = Definitions(
        ...     resources={
        ...         "keyvault": keyvault_secrets_resource().configured({
        ...             "vault_name": "redis-kv-demo",
        ...             "auth_method": "default",
        ...         })
        ...     },
        ...     jobs=[...],
        ... )

    Attributes:
        client: The underlying KeyVaultClient instance.
    """

    def __init__(
        self,
        config: KeyVaultSecretsResourceConfig,
        client: Optional[KeyVaultClient] = None,
    ):
        self.config = config
        self._client = client

    @property
    def client(self) -> KeyVaultClient:
        """Get or create the Key Vault client."""
        if self._client is None:
            self._client = KeyVaultClient(self.config.to_connection_config())
        return self._client

    # =====================================================================
    # Public API
    # =====================================================================

    def get_secret(self, name: str, use_cache: bool = True) -> str:
        """Return the current value of a secret.

        Raises:
            SecretNotFoundError: If the secret doesn't exist.
            KeyVaultAuthenticationError: If authentication fails.
            KeyVaultConnectionError: If Key Vault is unreachable.
        """
        return self.client.get_secret(name, use_cache=use_cache).value

    def get_secret_versions(self, names: list[str]) -> dict[str, Optional[str]]:
        """Return the current version of each named secret, bypassing the cache.

        A secret that cannot be read (missing, forbidden, invalid name) maps to
        None so the remaining names are still reported. Service-level failures
        (connection, authentication) are raised.
        """
        versions: dict[str, Optional[str]] = {}
        for name in names:
            try:
                versions[name] = self.client.get_secret_version(name)
            except (KeyVaultConnectionError, KeyVaultAuthenticationError):
                raise
            except KeyVaultError as e:
                logger.warning(f"Cannot read version of {name}: {e}")
                versions[name] = None
        return versions

    def list_secrets(self) -> list[str]:
        return self.client.list_secret_names()

    def health_check(self) -> dict[str, Any]:
        """Check that the vault is reachable and the identity may list secrets.

        Returns:
            Dictionary containing:
                - healthy: True if listing succeeded
                - vault_url: Vault being checked
                - secret_count: Number of enabled secrets (None on failure)
                - error: Error message on failure
                - latency_ms: Response latency in milliseconds
        """
        start_time = time.time()
        try:
            count = len(self.client.list_secret_names())
            error = None
        except KeyVaultError as e:
            count = None
            error = str(e)

        return {
            "healthy": error is None,
            "vault_url": self.client.vault_url,
            "secret_count": count,
            "error": error,
            "latency_ms": round((time.time() - start_time) * 1000, 2),
        }

    def clear_cache(self) -> None:
        """Invalidate all cached secrets, e.g. after a rotation."""
        self.client.invalidate_cache()
        logger.info("Key Vault resource cache cleared")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        logger.info("KeyVaultSecretsResource closed")


# =====================================================================
# Resource Definition Factory
# =====================================================================

KEYVAULT_RESOURCE_CONFIG_SCHEMA = {
    "vault_name": Field(Noneable(str), is_required=False),
    "vault_url": Field(Noneable(str), is_required=False),
    "auth_method": Field(Noneable(str), is_required=False),
    "client_id": Field(Noneable(str), is_required=False),
    "client_secret": Field(Noneable(str), is_required=False),
    "tenant_id": Field(Noneable(str), is_required=False),
    "timeout": Field(int, is_required=False),
    "retries": Field(int, is_required=False),
    "cache_ttl": Field(int, is_required=False),
}


def merge_resource_config(
    base: KeyVaultSecretsResourceConfig,
    run_config: Optional[dict[str, Any]],
) -> KeyVaultSecretsResourceConfig:
    """Overlay Dagster run config values on ``base``; None values are ignored."""
    run_config = run_config or {}
    values = {
        key: run_config[key]
        for key in KEYVAULT_RESOURCE_CONFIG_SCHEMA
        if run_config.get(key) is not None
    }
    return replace(base, **values)


def keyvault_secrets_resource(
    config: Optional[KeyVaultSecretsResourceConfig] = None,
) -> ResourceDefinition:
    """Create a Dagster resource definition for Key Vault secrets.

    Args:
        config: Optional pre-configured configuration. Defaults to the
                environment (see ``kv_sync.config``).

    Returns:
        ResourceDefinition yielding a KeyVaultSecretsResource.
    """
    effective_config = config if config is not None else KeyVaultSecretsResourceConfig.from_env()

    def create_resource(context):
        init_config = merge_resource_config(
            effective_config,
            context.resource_config if context else None,
        )
        resource = KeyVaultSecretsResource(init_config)
        logger.info(f"KeyVaultSecretsResource initialized with config: {init_config!r}")
        try:
            yield resource
        finally:
            resource.close()

    return ResourceDefinition(
        resource_fn=create_resource,
        config_schema=KEYVAULT_RESOURCE_CONFIG_SCHEMA,
        description="Resource for retrieving secrets from Azure Key Vault",
    )
