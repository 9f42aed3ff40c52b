"""KeyVaultClient wrapper for Azure Key Vault.

This module provides a high-level client for Azure Key Vault secrets,
including credential construction, retry of transient failures, error
translation and an optional TTL cache.
"""

import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import (
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)
from azure.keyvault.secrets import SecretClient

from kv_sync.keyvault.exceptions import (
    KeyVaultAuthenticationError,
    KeyVaultConnectionError,
    KeyVaultError,
    KeyVaultPermissionError,
    KeyVaultValidationError,
    SecretNotFoundError,
)
from kv_sync.keyvault.models import (
    AuthMethod,
    KeyVaultConnectionConfig,
    KeyVaultSecret,
    is_valid_secret_name,
)
from kv_sync.retry import with_azure_retry

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class CacheEntry:
    """Represents a cached secret entry."""

    def __init__(self, secret: KeyVaultSecret, expires_at: datetime):
        self.secret = secret
        self.expires_at = expires_at

    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > self.expires_at


def build_credential(config: KeyVaultConnectionConfig):
    """Create the azure-identity credential for ``config.auth_method``."""
    if config.auth_method == AuthMethod.SERVICE_PRINCIPAL:
        sp = config.service_principal
        return ClientSecretCredential(
            tenant_id=sp.tenant_id,
            client_id=sp.client_id,
            client_secret=sp.client_secret.get_secret_value(),
        )
    if config.auth_method == AuthMethod.MANAGED_IDENTITY:
        return ManagedIdentityCredential(client_id=config.managed_identity_client_id)
    return DefaultAzureCredential()


def _to_model(secret: Any) -> KeyVaultSecret:
    props = secret.properties
    return KeyVaultSecret(
        name=secret.name,
        value=secret.value if secret.value is not None else "",
        version=props.version,
        content_type=props.content_type,
        tags=dict(props.tags or {}),
        enabled=props.enabled if props.enabled is not None else True,
        updated_on=props.updated_on,
    )


class KeyVaultClient:
    """High-level client for Azure Key Vault secret operations.

    This client provides:
    - Service Principal, managed identity or default credential chains
    - Retry of throttling, 5xx and connection errors
    - Translation of Azure SDK errors into ``KeyVaultError`` subclasses
    - Optional secret caching with TTL

    Example:
        >>> config = KeyVaultConnectionConfig(
        ...     vault_name="redis-kv-demo",
        ...     service_principal=ServicePrincipal(
        ...         client_id="...", client_secret="...", tenant_id="..."
        ...     ),
        ... )
        >>> with KeyVaultClient(config) as client:
        ...     password = client.get_secret("redis-password").value
    """

    def __init__(
        self,
        config: KeyVaultConnectionConfig,
        secret_client: Optional[SecretClient] = None,
        credential: Optional[Any] = None,
    ):
        """Initialize the Key Vault client.

        Args:
            config: Connection configuration
            secret_client: Pre-built SDK client (mostly for tests)
            credential: Credential overriding the one derived from config
        """
        self.config = config
        self._client: Optional[SecretClient] = secret_client
        self._credential = credential
        self._client_lock = Lock()
        self._cache: dict[str, CacheEntry] = {}
        self._cache_lock = Lock()
        self._retry = with_azure_retry(max_attempts=config.retries + 1)

    @property
    def vault_url(self) -> str:
        return self.config.vault_url

    def _get_client(self) -> SecretClient:
        """Get or create the underlying SecretClient."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    credential = self._credential or build_credential(self.config)
                    # retry_total=0: transient failures are retried by with_azure_retry
                    self._client = SecretClient(
                        vault_url=self.config.vault_url,
                        credential=credential,
                        retry_total=0,
                        connection_timeout=self.config.timeout,
                        read_timeout=self.config.timeout,
                    )
                    logger.info(f"Connected to Key Vault: {self.config.vault_url}")
        return self._client

    def _call(self, operation: str, name: str, func: Callable, *args, **kwargs) -> Any:
        """Run an SDK call with retry and error translation."""
        try:
            return self._retry(func)(*args, **kwargs)
        except ResourceNotFoundError as e:
            raise SecretNotFoundError(name=name) from e
        except ClientAuthenticationError as e:
            raise KeyVaultAuthenticationError(
                f"Authentication to {self.vault_url} failed: {e.message}"
            ) from e
        except HttpResponseError as e:
            if e.status_code == 403:
                raise KeyVaultPermissionError(name=name, operation=operation) from e
            raise KeyVaultError(
                f"Key Vault {operation} failed for {name}: {e.message}",
                details={"status_code": e.status_code},
            ) from e
        except (ServiceRequestError, ServiceResponseError) as e:
            raise KeyVaultConnectionError(
                f"Key Vault {self.vault_url} is unreachable: {e}"
            ) from e

    @staticmethod
    def _check_name(name: str) -> None:
        if not is_valid_secret_name(name):
            raise KeyVaultValidationError(
                f"Invalid Key Vault secret name: {name!r} "
                "(1-127 characters, alphanumerics and dashes)"
            )

    # =====================================================================
    # Cache
    # =====================================================================

    def _get_from_cache(self, name: str) -> Optional[KeyVaultSecret]:
        with self._cache_lock:
            entry = self._cache.get(name)
            if entry is not None and not entry.is_expired():
                logger.debug(f"Cache hit for {name}")
                return entry.secret
            if entry is not None:
                del self._cache[name]
        return None

    def _set_cache(self, secret: KeyVaultSecret) -> None:
        if self.config.cache_ttl <= 0:
            return
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.config.cache_ttl)
        with self._cache_lock:
            self._cache[secret.name] = CacheEntry(secret, expires_at)

    def invalidate_cache(self, name: Optional[str] = None) -> None:
        """Invalidate cached secrets.

        Args:
            name: Specific secret to invalidate, or None for all
        """
        with self._cache_lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)
        logger.debug(f"Cache invalidated for: {name or 'all'}")

    # =====================================================================
    # Secret operations
    # =====================================================================

    def get_secret(
        self,
        name: str,
        version: Optional[str] = None,
        use_cache: bool = True,
    ) -> KeyVaultSecret:
        """Read a secret from Key Vault.

        Args:
            name: Secret name (e.g., "redis-password")
            version: Optional specific version; latest when omitted
            use_cache: Whether to use the cache (only for latest version reads)

        Returns:
            KeyVaultSecret with value and properties

        Raises:
            SecretNotFoundError: If the secret or version doesn't exist
            KeyVaultAuthenticationError: If the credential is rejected
            KeyVaultPermissionError: If the identity may not read secrets
            KeyVaultConnectionError: If the vault is unreachable
        """
        self._check_name(name)
        cacheable = use_cache and version is None

        if cacheable:
            cached = self._get_from_cache(name)
            if cached is not None:
                return cached

        client = self._get_client()
        raw = self._call("get", name, client.get_secret, name, version=version)
        secret = _to_model(raw)

        if cacheable:
            self._set_cache(secret)

        logger.debug(f"Read secret {name} (version {secret.version})")
        return secret

    def get_secret_version(self, name: str) -> str:
        """Return the current version identifier of a secret.

        Only version properties are listed, so the value never leaves the
        vault. The current version is the most recently created one.
        """
        self._check_name(name)
        client = self._get_client()

        def _latest() -> Optional[Any]:
            versions = [
                props
                for props in client.list_properties_of_secret_versions(name)
                if props.enabled is not False
            ]
            if not versions:
                return None
            return max(versions, key=lambda p: p.created_on or _EPOCH)

        latest = self._call("versions", name, _latest)
        if latest is None:
            raise SecretNotFoundError(name=name)
        return latest.version

    def set_secret(
        self,
        name: str,
        value: str,
        content_type: Optional[str] = None,
        tags: Optional[dict[str, str]] = None,
    ) -> KeyVaultSecret:
        """Create a secret or add a new version to an existing one.

        Args:
            name: Secret name
            value: Secret value
            content_type: Optional content type hint
            tags: Optional tags

        Returns:
            KeyVaultSecret describing the new version
        """
        self._check_name(name)
        client = self._get_client()
        raw = self._call(
            "set",
            name,
            client.set_secret,
            name,
            value,
            content_type=content_type,
            tags=tags,
        )
        self.invalidate_cache(name)
        secret = _to_model(raw)
        logger.info(f"Wrote secret {name} (version {secret.version})")
        return secret

    def delete_secret(self, name: str, purge: bool = False) -> None:
        """Delete a secret.

        Key Vault soft-deletes secrets; ``purge`` removes the deleted secret
        permanently once the delete operation has finished.
        """
        self._check_name(name)
        client = self._get_client()
        poller = self._call("delete", name, client.begin_delete_secret, name)
        poller.wait()
        if purge:
            self._call("purge", name, client.purge_deleted_secret, name)
        self.invalidate_cache(name)
        logger.info(f"Deleted secret {name}{' (purged)' if purge else ''}")

    def list_secret_names(self) -> list[str]:
        """List the names of enabled secrets in the vault."""
        client = self._get_client()

        def _list() -> list[str]:
            return [
                props.name
                for props in client.list_properties_of_secrets()
                if props.enabled is not False
            ]

        return sorted(self._call("list", "*", _list))

    def close(self) -> None:
        """Close the SDK client and drop cached secrets."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing SecretClient: {e}")
            self._client = None
        self.invalidate_cache()

    def __enter__(self) -> "KeyVaultClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
