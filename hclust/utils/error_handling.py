"""
Error Handling Module

Provides error handling infrastructure for the clustering engine:
- Custom exception hierarchy
- Retry decorator with exponential backoff (cancellation backends only)
"""

import functools
import random
import time
from typing import Any, Callable, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict


logger = structlog.get_logger(__name__)


# =============================================================================
# Custom Exception Hierarchy
# =============================================================================


class HClustError(Exception):
    """Base exception for all hclust errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/CLI output."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(HClustError):
    """Error in engine configuration."""
    pass


# Clustering Errors
class ClusteringError(HClustError):
    """Base class for clustering errors."""
    pass


class InvalidInputError(ClusteringError):
    """Malformed input vectors or labels."""
    pass


class ClusteringCancelledError(ClusteringError):
    """Cancellation was requested while clustering."""

    def __init__(self, message: str = "Clustering aborted", **kwargs: Any):
        super().__init__(message, error_code=kwargs.pop("error_code", "CANCELLED"), **kwargs)


class ClusteringFailedError(ClusteringError):
    """The engine hit an internal failure distinct from cancellation."""
    pass


# Resource Management Errors
class ResourceError(HClustError):
    """Resource management error."""
    pass


class ResourceExhaustedError(ResourceError):
    """Resource limit exceeded."""
    pass


# Cancellation Backend Errors
class CancellationBackendError(HClustError):
    """Stop-token store could not be reached."""
    pass


# =============================================================================
# Retry Decorator with Exponential Backoff
# =============================================================================


T = TypeVar("T")


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_attempts: int = 3
    initial_delay: float = 0.05
    max_delay: float = 1.0
    backoff_factor: float = 2.0
    jitter: bool = True
    retriable_exceptions: tuple[Type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        CancellationBackendError,
    )


def retry(
    config: Optional[RetryConfig] = None,
    max_attempts: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    jitter: Optional[bool] = None,
    retriable_exceptions: Optional[tuple[Type[Exception], ...]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for retrying operations with exponential backoff.

    Args:
        config: RetryConfig object (overrides individual params)
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Exponential backoff multiplier
        jitter: Add random jitter to delays
        retriable_exceptions: Tuple of exception types to retry

    Example:
        @retry(max_attempts=5, initial_delay=0.1)
        def query_backend():
            ...
    """
    if config is None:
        defaults = RetryConfig()
        config = RetryConfig(
            max_attempts=max_attempts or defaults.max_attempts,
            initial_delay=initial_delay if initial_delay is not None else defaults.initial_delay,
            max_delay=max_delay or defaults.max_delay,
            backoff_factor=backoff_factor or defaults.backoff_factor,
            jitter=jitter if jitter is not None else defaults.jitter,
            retriable_exceptions=retriable_exceptions or defaults.retriable_exceptions,
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            delay = config.initial_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except config.retriable_exceptions as e:
                    attempt += 1

                    if attempt >= config.max_attempts:
                        logger.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise

                    current_delay = min(delay, config.max_delay)
                    if config.jitter:
                        current_delay *= (0.5 + random.random())

                    logger.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=config.max_attempts,
                        delay=current_delay,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                    time.sleep(current_delay)
                    delay *= config.backoff_factor

        return wrapper

    return decorator
