"""Retry and circuit breaker helpers for Key Vault and Kubernetes calls."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfiguration, CircuitState
from .config import RetryConfiguration
from .decorators import (
    AZURE_RETRYABLE_EXCEPTIONS,
    KUBERNETES_RETRYABLE_EXCEPTIONS,
    RETRYABLE_STATUS_CODES,
    RetryPresets,
    get_circuit_breaker,
    is_azure_retryable_error,
    is_kubernetes_retryable_error,
    reset_circuit_breakers,
    with_azure_retry,
    with_circuit_breaker,
    with_kubernetes_retry,
    with_retry,
)
from .exceptions import CircuitOpenException, RetryExhaustedException
from .tenacity_base import get_tenacity_decorator

__all__ = [
    "RetryConfiguration",
    "RetryExhaustedException",
    "CircuitOpenException",
    "CircuitBreaker",
    "CircuitState",
    "CircuitBreakerConfiguration",
    "get_tenacity_decorator",
    "with_retry",
    "with_azure_retry",
    "with_kubernetes_retry",
    "RetryPresets",
    "RETRYABLE_STATUS_CODES",
    "AZURE_RETRYABLE_EXCEPTIONS",
    "KUBERNETES_RETRYABLE_EXCEPTIONS",
    "is_azure_retryable_error",
    "is_kubernetes_retryable_error",
    "with_circuit_breaker",
    "get_circuit_breaker",
    "reset_circuit_breakers",
]
