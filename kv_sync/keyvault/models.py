"""Pydantic models for the Azure Key Vault integration.

This module defines the connection configuration, the Service Principal
identity used for non-interactive authentication, and the secret model
returned by :class:`kv_sync.keyvault.client.KeyVaultClient`.
"""

import hashlib
import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

# Key Vault object names: 1-127 characters, alphanumerics and dashes only
SECRET_NAME_PATTERN = re.compile(r"^[0-9a-zA-Z-]{1,127}$")
MAX_SECRET_NAME_LENGTH = 127

KEYVAULT_DNS_SUFFIX = "vault.azure.net"


class AuthMethod(str, Enum):
    """Supported ways of obtaining an Azure AD token."""

    SERVICE_PRINCIPAL = "service_principal"
    DEFAULT = "default"
    MANAGED_IDENTITY = "managed_identity"


def is_valid_secret_name(name: str) -> bool:
    """Return True if ``name`` is a legal Key Vault secret name."""
    return bool(SECRET_NAME_PATTERN.match(name or ""))


def to_keyvault_name(raw: str) -> str:
    """Normalise an arbitrary key into a legal Key Vault secret name.

    Every character outside ``[0-9a-zA-Z-]`` becomes a dash, runs of dashes
    collapse to one and leading/trailing dashes are dropped.

    >>> to_keyvault_name("redis_password.v2")
    'redis-password-v2'

    Raises:
        ValueError: If nothing usable remains or the result is too long
    """
    name = re.sub(r"[^0-9a-zA-Z-]", "-", raw or "")
    name = re.sub(r"-{2,}", "-", name).strip("-")
    if not name:
        raise ValueError(f"Cannot derive a Key Vault secret name from {raw!r}")
    if len(name) > MAX_SECRET_NAME_LENGTH:
        raise ValueError(
            f"Key Vault secret name exceeds {MAX_SECRET_NAME_LENGTH} characters: {name[:20]}..."
        )
    return name


def fingerprint(value: str) -> str:
    """SHA-256 hex digest of a secret value, safe to log and compare."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class ServicePrincipal(BaseModel):
    """Azure AD application identity (``az ad sp create-for-rbac`` output)."""

    client_id: str = Field(..., min_length=1, description="Application (client) ID")
    client_secret: SecretStr = Field(..., description="Client secret (password)")
    tenant_id: str = Field(..., min_length=1, description="Directory (tenant) ID")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": "00000000-0000-0000-0000-000000000001",
                "client_secret": "********",
                "tenant_id": "00000000-0000-0000-0000-000000000002",
            }
        }
    )


class KeyVaultConnectionConfig(BaseModel):
    """Configuration for Key Vault client connections."""

    vault_name: Optional[str] = Field(
        default=None,
        description="Key Vault name; used to derive vault_url",
        examples=["redis-kv-demo"],
    )
    vault_url: Optional[str] = Field(
        default=None,
        description="Key Vault URL (https://<name>.vault.azure.net)",
        examples=["https://redis-kv-demo.vault.azure.net"],
    )
    auth_method: AuthMethod = Field(
        default=AuthMethod.SERVICE_PRINCIPAL,
        description="Authentication method",
    )
    service_principal: Optional[ServicePrincipal] = Field(
        default=None,
        description="Credentials for service_principal auth",
    )
    managed_identity_client_id: Optional[str] = Field(
        default=None,
        description="Client ID of a user-assigned managed identity",
    )
    timeout: int = Field(default=30, description="Request timeout in seconds", ge=1, le=300)
    retries: int = Field(default=3, description="Retry attempts for transient errors", ge=0, le=10)
    cache_ttl: int = Field(
        default=0,
        description="Secret cache TTL in seconds (0 disables caching)",
        ge=0,
        le=3600,
    )

    @field_validator("vault_url")
    @classmethod
    def validate_vault_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith("https://"):
            raise ValueError("vault_url must start with https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def resolve_vault_url(self) -> "KeyVaultConnectionConfig":
        if not self.vault_url:
            if not self.vault_name:
                raise ValueError("Either vault_name or vault_url must be set")
            self.vault_url = f"https://{self.vault_name}.{KEYVAULT_DNS_SUFFIX}"
        if self.auth_method == AuthMethod.SERVICE_PRINCIPAL and self.service_principal is None:
            raise ValueError("service_principal auth requires service_principal credentials")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "vault_name": "redis-kv-demo",
                "auth_method": "service_principal",
                "service_principal": {
                    "client_id": "00000000-0000-0000-0000-000000000001",
                    "client_secret": "********",
                    "tenant_id": "00000000-0000-0000-0000-000000000002",
                },
                "cache_ttl": 0,
            }
        }
    )


class KeyVaultSecret(BaseModel):
    """A secret value read from (or written to) Key Vault."""

    name: str = Field(..., description="Secret name", examples=["redis-password"])
    value: str = Field(..., repr=False, description="Secret value")
    version: Optional[str] = Field(default=None, description="Version identifier")
    content_type: Optional[str] = Field(default=None, description="Content type hint")
    tags: dict[str, str] = Field(default_factory=dict, description="Secret tags")
    enabled: bool = Field(default=True, description="Whether the secret is enabled")
    updated_on: Optional[datetime] = Field(default=None, description="Last update time")

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.value)
