"""Retry configuration settings for Key Vault and Kubernetes calls."""

from dataclasses import dataclass
from typing import Tuple, Type


@dataclass
class RetryConfiguration:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Maximum number of attempts, first call included (default: 3)
        base_delay: Initial delay in seconds before the first retry (default: 1.0)
        max_delay: Upper bound for a single delay in seconds (default: 30.0)
        exponential_base: Multiplier applied per attempt (default: 2.0)
        jitter: Maximum random jitter added to each delay (default: 0.1)
        retry_on_exceptions: Exception types considered for retry (default: all)
        reraise: Re-raise the last exception instead of RetryExhaustedException
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: float = 0.1
    retry_on_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    reraise: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {self.base_delay}")
        if self.max_delay <= 0:
            raise ValueError(f"max_delay must be > 0, got {self.max_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.exponential_base < 1:
            raise ValueError(f"exponential_base must be >= 1, got {self.exponential_base}")
        if self.jitter < 0:
            raise ValueError(f"jitter must be >= 0, got {self.jitter}")
