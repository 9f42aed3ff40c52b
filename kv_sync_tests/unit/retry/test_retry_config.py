"""Tests for retry configuration and tenacity integration."""

import pytest

from kv_sync.retry import (
    RetryConfiguration,
    RetryExhaustedException,
    with_retry,
)


class TestRetryConfiguration:
    """Test RetryConfiguration dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = RetryConfiguration()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.1
        assert config.retry_on_exceptions == (Exception,)
        assert config.reraise is False

    def test_custom_values(self):
        """Test custom configuration values."""
        config = RetryConfiguration(
            max_attempts=5,
            base_delay=0.5,
            max_delay=20.0,
            exponential_base=3.0,
            jitter=0.2,
        )
        assert config.max_attempts == 5
        assert config.base_delay == 0.5
        assert config.max_delay == 20.0
        assert config.exponential_base == 3.0
        assert config.jitter == 0.2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"base_delay": 0},
            {"max_delay": -1},
            {"base_delay": 10.0, "max_delay": 5.0},
            {"exponential_base": 0.5},
            {"jitter": -0.1},
        ],
    )
    def test_validation(self, kwargs):
        """Invalid values raise ValueError."""
        with pytest.raises(ValueError):
            RetryConfiguration(**kwargs)


class TestWithRetryDecorator:
    """Test with_retry decorator."""

    def test_successful_function(self):
        """Test that successful functions work without retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        def success():
            nonlocal call_count
            call_count += 1
            return "success"

        assert success() == "success"
        assert call_count == 1

    def test_retry_on_exception(self):
        """Test that retries occur on exceptions."""
        call_count = 0

        @with_retry(max_attempts=3, base_delay=0.01, jitter=0)
        def fail_twice():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Temporary failure")
            return "success"

        assert fail_twice() == "success"
        assert call_count == 3

    def test_exhausted_retries_raises_exception(self):
        """Test that RetryExhaustedException is raised after all retries."""
        @with_retry(max_attempts=3, base_delay=0.01, jitter=0)
        def always_fail():
            raise ValueError("Always fails")

        with pytest.raises(RetryExhaustedException) as exc_info:
            always_fail()

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ValueError)
        assert "ValueError" in str(exc_info.value)

    def test_only_listed_exceptions_are_retried(self):
        """Exceptions outside ``exceptions`` propagate on the first attempt."""
        call_count = 0

        @with_retry(exceptions=(ConnectionError,), max_attempts=3, base_delay=0.01)
        def wrong_error():
            nonlocal call_count
            call_count += 1
            raise KeyError("not retryable")

        with pytest.raises(KeyError):
            wrong_error()
        assert call_count == 1

    def test_reraise_config_keeps_original_exception(self):
        """With reraise the last exception propagates unchanged."""
        config = RetryConfiguration(max_attempts=2, base_delay=0.01, jitter=0, reraise=True)

        @with_retry(config)
        def always_fail():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            always_fail()

    def test_preserves_function_name(self):
        """Decorated functions keep their metadata."""
        @with_retry(max_attempts=2)
        def read_secret():
            return None

        assert read_secret.__name__ == "read_secret"
