"""Exceptions raised by the retry helpers."""


class RetryExhaustedException(Exception):
    """Raised when every retry attempt failed."""

    def __init__(self, message: str, attempts: int, last_exception: BaseException):
        self.message = message
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(self.message)

    def __str__(self) -> str:
        return (
            f"{self.message} (attempts: {self.attempts}, "
            f"last error: {type(self.last_exception).__name__})"
        )


class CircuitOpenException(Exception):
    """Raised when a circuit breaker rejects a call."""

    def __init__(self, message: str, failure_count: int, retry_after: float = 0.0):
        self.message = message
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message} (failure_count: {self.failure_count})"
