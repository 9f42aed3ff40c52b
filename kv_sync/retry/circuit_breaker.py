"""Circuit breaker guarding calls to Key Vault and the Kubernetes API."""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .exceptions import CircuitOpenException

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states.

    Attributes:
        CLOSED: Normal operation, calls pass through
        OPEN: Circuit tripped, calls rejected immediately
        HALF_OPEN: Probing recovery, a limited number of calls allowed
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfiguration:
    """Configuration for circuit breaker behavior.

    Attributes:
        failure_threshold: Consecutive failures before opening (default: 5)
        success_threshold: Successes in HALF_OPEN needed to close (default: 1)
        recovery_timeout: Seconds to stay OPEN before probing (default: 60.0)
        half_open_max_calls: Concurrent probe calls allowed in HALF_OPEN (default: 1)
    """

    failure_threshold: int = 5
    success_threshold: int = 1
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 1

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.success_threshold < 1:
            raise ValueError(f"success_threshold must be >= 1, got {self.success_threshold}")
        if self.recovery_timeout <= 0:
            raise ValueError(f"recovery_timeout must be > 0, got {self.recovery_timeout}")
        if self.half_open_max_calls < 1:
            raise ValueError(f"half_open_max_calls must be >= 1, got {self.half_open_max_calls}")


class CircuitBreaker:
    """Thread-safe circuit breaker.

    State machine:
    - CLOSED -> OPEN: consecutive failures reach ``failure_threshold``
    - OPEN -> HALF_OPEN: ``recovery_timeout`` elapsed, next call is a probe
    - HALF_OPEN -> CLOSED: ``success_threshold`` probes succeeded
    - HALF_OPEN -> OPEN: any probe failed

    Args:
        name: Identifier used in logs and metrics
        config: Circuit breaker configuration
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfiguration] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfiguration()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._last_failure_time: Optional[float] = None
        self._next_attempt_time: float = 0.0
        self._lock = threading.RLock()

        logger.debug(
            f"Circuit breaker '{name}' created "
            f"(failure_threshold={self.config.failure_threshold}, "
            f"recovery_timeout={self.config.recovery_timeout}s)"
        )

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    @property
    def last_failure_time(self) -> Optional[float]:
        with self._lock:
            return self._last_failure_time

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, "
            f"state={self._state.name}, "
            f"failures={self._failure_count})"
        )

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt_time = time.monotonic() + self.config.recovery_timeout
        self._half_open_calls = 0
        self._success_count = 0

    def _before_call(self) -> None:
        """Admit or reject a call, moving OPEN -> HALF_OPEN when due."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                now = time.monotonic()
                if now < self._next_attempt_time:
                    remaining = self._next_attempt_time - now
                    raise CircuitOpenException(
                        message=f"Circuit breaker '{self.name}' is OPEN. "
                        f"Retry after {remaining:.1f}s.",
                        failure_count=self._failure_count,
                        retry_after=remaining,
                    )
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                self._half_open_calls = 0
                logger.info(f"Circuit breaker '{self.name}' OPEN -> HALF_OPEN")

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitOpenException(
                        message=f"Circuit breaker '{self.name}' is HALF_OPEN "
                        "and already probing.",
                        failure_count=self._failure_count,
                    )
                self._half_open_calls += 1

    def _on_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_calls = max(0, self._half_open_calls - 1)
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    self._success_count = 0
                    logger.info(f"Circuit breaker '{self.name}' HALF_OPEN -> CLOSED")
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def _on_failure(self, exception: BaseException) -> None:
        with self._lock:
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._trip()
                logger.warning(
                    f"Circuit breaker '{self.name}' HALF_OPEN -> OPEN "
                    f"(probe failed: {type(exception).__name__})"
                )
            elif self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.config.failure_threshold:
                    self._trip()
                    logger.warning(
                        f"Circuit breaker '{self.name}' CLOSED -> OPEN "
                        f"({self._failure_count} consecutive failures)"
                    )

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute ``func`` through the circuit breaker.

        Raises:
            CircuitOpenException: If the circuit rejects the call
            Exception: Anything raised by ``func``
        """
        self._before_call()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    @contextmanager
    def context(self):
        """Context manager form of :meth:`call`.

        Usage:
            with breaker.context():
                client.get_secret("redis-password")
        """
        self._before_call()
        try:
            yield
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()

    def reset(self) -> None:
        """Reset to the initial CLOSED state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._half_open_calls = 0
            self._last_failure_time = None
            self._next_attempt_time = 0.0
            logger.info(f"Circuit breaker '{self.name}' reset to CLOSED")

    def get_metrics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.name,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "time_until_retry": max(0.0, self._next_attempt_time - time.monotonic())
                if self._state == CircuitState.OPEN
                else 0.0,
            }
