"""Retry decorator utilities for Azure Key Vault and Kubernetes API calls."""

import logging
import threading
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

import tenacity
from azure.core.exceptions import (
    HttpResponseError,
    ServiceRequestError,
    ServiceResponseError,
)
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfiguration
from .config import RetryConfiguration
from .exceptions import RetryExhaustedException
from .tenacity_base import get_tenacity_decorator

logger = logging.getLogger(__name__)


# HTTP status codes worth another attempt: timeouts, throttling, server errors
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Azure SDK transport errors raised before/while reading a response
AZURE_RETRYABLE_EXCEPTIONS = (
    ServiceRequestError,
    ServiceResponseError,
    HttpResponseError,  # Filtered by status code
)

KUBERNETES_RETRYABLE_EXCEPTIONS = (
    ApiException,  # Filtered by status code
    MaxRetryError,
    NewConnectionError,
    ProtocolError,
)


def _is_retryable_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return status in RETRYABLE_STATUS_CODES or 500 <= status < 600


def is_azure_retryable_error(exception: BaseException) -> bool:
    """Check whether an Azure SDK error is transient.

    Connection-level failures are always retryable. ``HttpResponseError``
    (and subclasses such as ``ResourceNotFoundError``) are retryable only
    for 408, 429 and 5xx responses.
    """
    if isinstance(exception, (ServiceRequestError, ServiceResponseError)):
        return True
    if isinstance(exception, HttpResponseError):
        return _is_retryable_status(getattr(exception, "status_code", None))
    return False


def is_kubernetes_retryable_error(exception: BaseException) -> bool:
    """Check whether a Kubernetes client error is transient."""
    if isinstance(exception, ApiException):
        return _is_retryable_status(exception.status)
    if isinstance(exception, (MaxRetryError, NewConnectionError, ProtocolError)):
        return True
    return False


class RetryPresets:
    """Pre-configured retry settings for common scenarios."""

    # Key Vault reads/writes. Key Vault throttles per vault, back off generously.
    KEYVAULT = RetryConfiguration(
        max_attempts=4,
        base_delay=1.0,
        max_delay=30.0,
        jitter=0.5,
        retry_on_exceptions=AZURE_RETRYABLE_EXCEPTIONS,
        reraise=True,
    )

    KUBERNETES = RetryConfiguration(
        max_attempts=3,
        base_delay=0.5,
        max_delay=10.0,
        jitter=0.5,
        retry_on_exceptions=KUBERNETES_RETRYABLE_EXCEPTIONS,
        reraise=True,
    )


def _wrap_exhaustion(func: Callable, decorated: Callable, max_attempts: int) -> Callable:
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return decorated(*args, **kwargs)
        except tenacity.RetryError as e:
            last_exception = e.last_attempt.exception() if e.last_attempt else e
            raise RetryExhaustedException(
                message=f"All {max_attempts} retry attempts exhausted for {func.__name__}",
                attempts=max_attempts,
                last_exception=last_exception,
            ) from last_exception

    return wrapper


def with_retry(
    config: Optional[RetryConfiguration] = None,
    exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    exponential_base: Optional[float] = None,
    jitter: Optional[float] = None,
) -> Callable:
    """Decorator to add retry logic with exponential backoff to a function.

    After the last failed attempt a ``RetryExhaustedException`` is raised
    unless the configuration sets ``reraise``.

    Examples:
        @with_retry(max_attempts=5, base_delay=0.5)
        def flaky():
            ...

        @with_retry(RetryConfiguration(max_attempts=10))
        def another():
            ...
    """

    def decorator(func: Callable) -> Callable:
        if config is not None:
            effective_config = config
        else:
            effective_config = RetryConfiguration(
                max_attempts=max_attempts or 3,
                base_delay=base_delay or 1.0,
                max_delay=max_delay or 30.0,
                exponential_base=exponential_base or 2.0,
                jitter=jitter if jitter is not None else 0.1,
                retry_on_exceptions=exceptions or (Exception,),
            )

        decorated = get_tenacity_decorator(effective_config)(func)
        if effective_config.reraise:
            return wraps(func)(decorated)
        return _wrap_exhaustion(func, decorated, effective_config.max_attempts)

    return decorator


def with_azure_retry(
    max_attempts: int = RetryPresets.KEYVAULT.max_attempts,
    base_delay: float = RetryPresets.KEYVAULT.base_delay,
    max_delay: float = RetryPresets.KEYVAULT.max_delay,
    jitter: float = RetryPresets.KEYVAULT.jitter,
) -> Callable:
    """Retry transient Azure SDK failures (throttling, 5xx, connection errors).

    Non-retryable errors (404, 401, 403, ...) propagate on the first attempt.
    After exhaustion the last Azure exception is re-raised unchanged so the
    caller can translate it.

    Examples:
        @with_azure_retry(max_attempts=5)
        def read(client, name):
            return client.get_secret(name)
    """

    def decorator(func: Callable) -> Callable:
        config = RetryConfiguration(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
            retry_on_exceptions=AZURE_RETRYABLE_EXCEPTIONS,
            reraise=True,
        )
        return wraps(func)(
            get_tenacity_decorator(config, predicate=is_azure_retryable_error)(func)
        )

    return decorator


def with_kubernetes_retry(
    max_attempts: int = RetryPresets.KUBERNETES.max_attempts,
    base_delay: float = RetryPresets.KUBERNETES.base_delay,
    max_delay: float = RetryPresets.KUBERNETES.max_delay,
    jitter: float = RetryPresets.KUBERNETES.jitter,
) -> Callable:
    """Retry transient Kubernetes API failures (429, 5xx, connection errors)."""

    def decorator(func: Callable) -> Callable:
        config = RetryConfiguration(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
            retry_on_exceptions=KUBERNETES_RETRYABLE_EXCEPTIONS,
            reraise=True,
        )
        return wraps(func)(
            get_tenacity_decorator(config, predicate=is_kubernetes_retryable_error)(func)
        )

    return decorator


# =============================================================================
# Circuit breaker registry
# =============================================================================

_circuit_breakers: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfiguration] = None,
) -> CircuitBreaker:
    """Return the named circuit breaker, creating it on first use.

    ``config`` only applies when the breaker is created.
    """
    with _registry_lock:
        breaker = _circuit_breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, config)
            _circuit_breakers[name] = breaker
        return breaker


def reset_circuit_breakers() -> None:
    """Drop every registered circuit breaker."""
    with _registry_lock:
        _circuit_breakers.clear()


def with_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfiguration] = None,
) -> Callable:
    """Route calls through the named circuit breaker.

    Examples:
        @with_circuit_breaker("keyvault")
        def read(client, name):
            return client.get_secret(name)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            breaker = get_circuit_breaker(name, config)
            return breaker.call(func, *args, **kwargs)

        return wrapper

    return decorator
