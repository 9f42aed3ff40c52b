"""Tenacity integration utilities for retry logic."""

import logging
from typing import Callable, Optional

import tenacity
from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .config import RetryConfiguration

logger = logging.getLogger(__name__)


def get_wait_strategy(config: RetryConfiguration):
    """Create exponential jitter wait strategy from configuration."""
    return wait_exponential_jitter(
        initial=config.base_delay,
        max=config.max_delay,
        exp_base=config.exponential_base,
        jitter=config.jitter,
    )


def get_stop_strategy(config: RetryConfiguration):
    """Create stop strategy from configuration."""
    return stop_after_attempt(config.max_attempts)


def get_retry_strategy(
    config: RetryConfiguration,
    predicate: Optional[Callable[[BaseException], bool]] = None,
):
    """Create retry strategy from configuration.

    Args:
        config: RetryConfiguration with exception types
        predicate: Optional exception predicate; when given, an exception is
            retried only if it matches ``retry_on_exceptions`` AND the predicate

    Returns:
        Tenacity retry strategy
    """
    exceptions = config.retry_on_exceptions
    by_type = retry_if_exception_type(exceptions)
    if predicate is None:
        return by_type
    return by_type & retry_if_exception(predicate)


def before_sleep_log(retry_state: tenacity.RetryCallState) -> None:
    """Log before each retry attempt."""
    if retry_state.outcome is None:
        return

    exception = retry_state.outcome.exception()
    if exception is not None:
        fn_name = getattr(retry_state.fn, "__name__", "call")
        logger.warning(
            f"Retrying {fn_name} (attempt {retry_state.attempt_number}) "
            f"after exception: {type(exception).__name__}: {exception}"
        )


def get_tenacity_decorator(
    config: RetryConfiguration,
    predicate: Optional[Callable[[BaseException], bool]] = None,
) -> Callable:
    """Create a complete tenacity decorator from configuration.

    Args:
        config: Complete RetryConfiguration
        predicate: Optional exception predicate for retry decisions

    Returns:
        Configured tenacity decorator. When ``config.reraise`` is set the
        last exception propagates unchanged after exhaustion, otherwise
        tenacity raises ``RetryError``.
    """
    return retry(
        wait=get_wait_strategy(config),
        stop=get_stop_strategy(config),
        retry=get_retry_strategy(config, predicate=predicate),
        before_sleep=before_sleep_log,
        reraise=config.reraise,
    )
