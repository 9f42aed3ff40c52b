"""Exceptions for the Kubernetes Secret store."""

from typing import Optional


class KubernetesError(Exception):
    """Base exception for Kubernetes API errors."""

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.message} (status: {self.status})"
        return self.message


class KubernetesSecretNotFoundError(KubernetesError):
    """Raised when a Secret (or other object) does not exist."""

    def __init__(self, namespace: str, name: str, kind: str = "Secret"):
        super().__init__(f"{kind} {namespace}/{name} not found", status=404)
        self.namespace = namespace
        self.name = name
        self.kind = kind


class KubernetesPermissionError(KubernetesError):
    """Raised when RBAC forbids the request."""

    def __init__(self, namespace: str, name: str, operation: str):
        super().__init__(
            f"Forbidden: cannot {operation} {namespace}/{name}",
            status=403,
        )
        self.namespace = namespace
        self.name = name
        self.operation = operation
