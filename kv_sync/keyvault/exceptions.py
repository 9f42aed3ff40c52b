"""Custom exceptions for the Azure Key Vault integration.

Azure SDK exceptions are translated into this hierarchy at the client
boundary so callers only need to handle ``KeyVaultError`` subclasses.
"""

from typing import Optional


class KeyVaultError(Exception):
    """Base exception for Key Vault related errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class KeyVaultConnectionError(KeyVaultError):
    """Raised when the vault endpoint cannot be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to Key Vault",
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)


class KeyVaultAuthenticationError(KeyVaultError):
    """Raised when Azure AD rejects the configured credential."""

    def __init__(
        self,
        message: str = "Key Vault authentication failed",
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)


class SecretNotFoundError(KeyVaultError):
    """Raised when a secret (or secret version) does not exist."""

    def __init__(
        self,
        name: str,
        message: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message or f"Secret not found: {name}", details)
        self.name = name


class KeyVaultPermissionError(KeyVaultError):
    """Raised when the identity lacks an access policy / RBAC role."""

    def __init__(
        self,
        name: str,
        operation: str,
        message: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message or f"Permission denied for {operation} on secret: {name}",
            details,
        )
        self.name = name
        self.operation = operation


class KeyVaultValidationError(KeyVaultError):
    """Raised when configuration or a secret name is invalid."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details)
