"""Azure Key Vault integration.

This module provides a KeyVaultClient wrapper around the Azure SDK,
Pydantic models for configuration and secrets, and exceptions.
"""

from kv_sync.keyvault.client import KeyVaultClient, build_credential
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
    ServicePrincipal,
    fingerprint,
    is_valid_secret_name,
    to_keyvault_name,
)

__all__ = [
    "KeyVaultClient",
    "build_credential",
    "KeyVaultError",
    "KeyVaultConnectionError",
    "KeyVaultAuthenticationError",
    "KeyVaultPermissionError",
    "KeyVaultValidationError",
    "SecretNotFoundError",
    "AuthMethod",
    "KeyVaultConnectionConfig",
    "KeyVaultSecret",
    "ServicePrincipal",
    "fingerprint",
    "is_valid_secret_name",
    "to_keyvault_name",
]
