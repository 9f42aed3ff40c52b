"""Key Vault secret writer for migrating Kubernetes Secret keys.

Each key of a Kubernetes Secret becomes one Key Vault secret. Key Vault names
only allow alphanumerics and dashes, so keys are normalised (``redis_password``
becomes ``<prefix>-redis-password``) unless an explicit mapping is given.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from kv_sync.k8s.models import KubernetesSecret
from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.exceptions import (
    KeyVaultAuthenticationError,
    KeyVaultConnectionError,
    KeyVaultError,
    SecretNotFoundError,
)
from kv_sync.keyvault.models import is_valid_secret_name, to_keyvault_name

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain"

TAG_SOURCE_NAMESPACE = "source-namespace"
TAG_SOURCE_SECRET = "source-secret"
TAG_SOURCE_KEY = "source-key"


@dataclass
class WriteResult:
    """Result of writing secrets to Key Vault."""
    successful: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class SecretToWrite:
    """One Kubernetes Secret key headed for Key Vault."""
    source_key: str
    name: str
    value: str = field(repr=False)
    content_type: str = CONTENT_TYPE
    tags: dict[str, str] = field(default_factory=dict)


def keyvault_name_for(key: str, prefix: str = "") -> str:
    """Derive the Key Vault name for a Kubernetes Secret key."""
    raw = f"{prefix}-{key}" if prefix else key
    return to_keyvault_name(raw)


def plan_secret_names(
    keys: list[str],
    prefix: str = "",
    name_map: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Map Kubernetes Secret keys to Key Vault secret names.

    Args:
        keys: Keys of the source Secret
        prefix: Prefix joined to each key with a dash
        name_map: Explicit ``key -> name`` overrides

    Returns:
        Ordered mapping of key to Key Vault name

    Raises:
        ValueError: On unknown mapped keys, invalid names or two keys
            landing on the same Key Vault name
    """
    name_map = name_map or {}
    unknown = sorted(set(name_map) - set(keys))
    if unknown:
        raise ValueError(f"Mapped keys not present in source secret: {', '.join(unknown)}")

    plan: dict[str, str] = {}
    seen: dict[str, str] = {}
    for key in keys:
        if key in name_map:
            name = name_map[key]
            if not is_valid_secret_name(name):
                raise ValueError(f"Invalid Key Vault secret name for key '{key}': '{name}'")
        else:
            name = keyvault_name_for(key, prefix)

        if name in seen:
            raise ValueError(
                f"Keys '{seen[name]}' and '{key}' both map to Key Vault secret '{name}'"
            )
        seen[name] = key
        plan[key] = name
    return plan


def build_write_plan(
    source: KubernetesSecret,
    prefix: str = "",
    name_map: Optional[dict[str, str]] = None,
    keys: Optional[list[str]] = None,
) -> list[SecretToWrite]:
    """Build the list of secrets to write for a Kubernetes Secret.

    Args:
        source: Decoded source Secret
        prefix: Name prefix (see :func:`plan_secret_names`)
        name_map: Explicit ``key -> name`` overrides
        keys: Only migrate these keys (all text keys when None)

    Raises:
        ValueError: If a selected key is missing or holds binary data.
    """
    binary = [k for k in (keys or []) if k in source.binary_data]
    if binary:
        raise ValueError(
            f"Keys in {source.namespace}/{source.name} hold binary data and cannot be "
            f"migrated to text secrets: {', '.join(binary)}"
        )
    if not keys:
        for key in sorted(source.binary_data):
            logger.warning(
                f"Skipping key '{key}' of {source.namespace}/{source.name}: value is not UTF-8 text"
            )

    selected = list(keys) if keys else sorted(source.data)
    missing = [k for k in selected if k not in source.data]
    if missing:
        raise ValueError(
            f"Keys not found in {source.namespace}/{source.name}: {', '.join(missing)}"
        )

    names = plan_secret_names(selected, prefix=prefix, name_map=name_map)
    return [
        SecretToWrite(
            source_key=key,
            name=names[key],
            value=source.data[key],
            tags={
                TAG_SOURCE_NAMESPACE: source.namespace,
                TAG_SOURCE_SECRET: source.name,
                TAG_SOURCE_KEY: key,
            },
        )
        for key in selected
    ]


class KeyVaultSecretWriter:
    """Writer for secrets to Azure Key Vault."""

    def __init__(self, client: KeyVaultClient):
        self.client = client

    def __enter__(self) -> "KeyVaultSecretWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _validate_secret(self, secret: SecretToWrite) -> list[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        if not is_valid_secret_name(secret.name):
            errors.append(f"Invalid Key Vault secret name '{secret.name}'")
        if not secret.value:
            errors.append(f"Secret '{secret.name}' has an empty value")
        return errors

    def _already_current(self, secret: SecretToWrite) -> bool:
        try:
            existing = self.client.get_secret(secret.name, use_cache=False)
        except SecretNotFoundError:
            return False
        return existing.value == secret.value

    def write_secret(self, secret: SecretToWrite) -> tuple[bool, Optional[str]]:
        """Write a single secret to Key Vault.

        Returns:
            Tuple of (success, error_message).
        """
        errors = self._validate_secret(secret)
        if errors:
            return False, "; ".join(errors)

        try:
            self.client.set_secret(
                secret.name,
                secret.value,
                content_type=secret.content_type,
                tags=secret.tags,
            )
            logger.info(f"Successfully wrote secret {secret.name} (from key {secret.source_key})")
            return True, None
        except KeyVaultConnectionError as e:
            logger.error(f"Connection error writing {secret.name}: {e}")
            return False, f"Connection error: {e}"
        except KeyVaultAuthenticationError as e:
            logger.error(f"Authentication error writing {secret.name}: {e}")
            return False, f"Authentication error: {e}"
        except KeyVaultError as e:
            logger.error(f"Key Vault error writing {secret.name}: {e}")
            return False, f"Key Vault error: {e}"

    def write_batch(
        self,
        secrets: list[SecretToWrite],
        dry_run: bool = False,
        skip_unchanged: bool = True,
    ) -> WriteResult:
        """Write multiple secrets to Key Vault.

        Args:
            secrets: Secrets to write
            dry_run: If True, report what would be written without writing
            skip_unchanged: Skip secrets whose current Key Vault value already
                matches, so re-runs do not create new versions

        Returns:
            WriteResult with summary of operations.
        """
        result = WriteResult()

        for secret in secrets:
            if dry_run:
                result.skipped.append(secret.name)
                logger.info(f"[DRY RUN] Would write {secret.source_key} -> {secret.name}")
                continue

            try:
                if skip_unchanged and self._already_current(secret):
                    result.skipped.append(secret.name)
                    logger.info(f"Secret {secret.name} already up to date, skipping")
                    continue
            except KeyVaultError as e:
                result.failed.append({"name": secret.name, "error": f"Key Vault error: {e}"})
                continue

            success, error = self.write_secret(secret)
            if success:
                result.successful.append(secret.name)
            else:
                result.failed.append({"name": secret.name, "error": error})

        return result

    def verify_secret(self, secret: SecretToWrite) -> tuple[bool, Optional[str]]:
        """Re-read a written secret, bypassing the cache, and compare values.

        Returns:
            Tuple of (verified, error_message).
        """
        try:
            stored = self.client.get_secret(secret.name, use_cache=False)
        except KeyVaultError as e:
            logger.error(f"Failed to verify secret {secret.name}: {e}")
            return False, str(e)

        if stored.value != secret.value:
            return False, f"Value of {secret.name} does not match source key {secret.source_key}"
        return True, None
