"""
Cancellation & progress channel.

The linkage loop cannot yield while it runs, so cancellation is observed
by synchronous polling at iteration boundaries. A poll must be a
self-contained blocking query: the computation thread cannot service a
message queue while it is busy.

Stop tokens give callers an opaque handle to cancel a run from another
thread (local store) or another process (Redis store).
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis

from hclust.core.base_clustering import CancelCheck, ProgressCallback
from hclust.utils.error_handling import (
    CancellationBackendError,
    ClusteringCancelledError,
    ClusteringFailedError,
    HClustError,
    InvalidInputError,
    RetryConfig,
    retry,
)

logger = logging.getLogger(__name__)


class ProgressChannel:
    """
    Pair of optional callbacks consulted by the engine.

    report() is fire-and-forget; poll() is the cancellation query.
    """

    def __init__(
        self,
        report_progress: Optional[ProgressCallback] = None,
        check_cancelled: Optional[CancelCheck] = None,
    ):
        self.report_progress = report_progress
        self.check_cancelled = check_cancelled
        self.poll_count = 0

    @classmethod
    def noop(cls) -> "ProgressChannel":
        """Channel that reports nothing and never cancels."""
        return cls()

    def report(self, message: str) -> None:
        """Forward a status message; callback failures are logged, not raised."""
        logger.debug(f"Progress: {message}")
        if self.report_progress is None:
            return
        try:
            self.report_progress(message)
        except Exception as e:
            logger.warning(f"Progress callback raised {type(e).__name__}: {e}")

    def poll(self) -> bool:
        """
        Ask whether cancellation was requested.

        Raises:
            ClusteringFailedError: If the cancellation query itself fails
        """
        self.poll_count += 1
        if self.check_cancelled is None:
            return False
        try:
            return bool(self.check_cancelled())
        except HClustError as e:
            raise ClusteringFailedError(
                f"Cancellation check failed: {e.message}",
                details={"cause": e.to_dict()},
            ) from e
        except Exception as e:
            raise ClusteringFailedError(
                f"Cancellation check raised {type(e).__name__}: {e}"
            ) from e

    def raise_if_cancelled(self) -> None:
        if self.poll():
            logger.info(f"Cancellation observed after {self.poll_count} polls")
            raise ClusteringCancelledError(details={"polls": self.poll_count})


# =============================================================================
# Stop Tokens
# =============================================================================


class StopTokenStore(ABC):
    """Creates and answers queries about opaque stop tokens."""

    @abstractmethod
    def create(self) -> str:
        """Register a new, unstopped token."""

    @abstractmethod
    def stop(self, token: str) -> None:
        """Request cancellation for a token."""

    @abstractmethod
    def is_stopped(self, token: str) -> bool:
        """Blocking query: has cancellation been requested?"""

    @abstractmethod
    def release(self, token: str) -> None:
        """Forget a token once its run is over."""

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex


class LocalStopTokenStore(StopTokenStore):
    """
    In-process store; safe to query from any thread.

    Only live tokens (created and not yet released) can be stopped.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._live: set[str] = set()
        self._stopped: set[str] = set()

    def create(self) -> str:
        token = self.new_token()
        with self._lock:
            self._live.add(token)
        return token

    def stop(self, token: str) -> None:
        with self._lock:
            if token not in self._live:
                logger.debug(f"Ignoring stop for unknown or released token {token}")
                return
            self._stopped.add(token)
        logger.debug(f"Stop requested for token {token}")

    def is_stopped(self, token: str) -> bool:
        with self._lock:
            return token in self._stopped

    def release(self, token: str) -> None:
        with self._lock:
            self._live.discard(token)
            self._stopped.discard(token)


class RedisStopTokenStore(StopTokenStore):
    """
    Stop tokens kept as Redis keys so another process can cancel a run.

    A token is stopped when its key exists; keys expire after ttl_seconds.
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "hclust:stop:",
        ttl_seconds: int = 86400,
        retry_attempts: int = 3,
    ):
        self.redis = client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self._query = retry(
            config=RetryConfig(
                max_attempts=retry_attempts,
                retriable_exceptions=(CancellationBackendError,),
            )
        )(self._exists)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def _exists(self, token: str) -> bool:
        try:
            return bool(self.redis.exists(self._key(token)))
        except redis.RedisError as e:
            raise CancellationBackendError(
                f"Stop-token query failed: {e}",
                details={"token": token},
            ) from e

    def create(self) -> str:
        return self.new_token()

    def stop(self, token: str) -> None:
        try:
            self.redis.set(self._key(token), "1", ex=self.ttl_seconds)
        except redis.RedisError as e:
            raise CancellationBackendError(
                f"Failed to stop token {token}: {e}",
                details={"token": token},
            ) from e
        logger.info(f"Stop requested for token {token}")

    def is_stopped(self, token: str) -> bool:
        return self._query(token)

    def release(self, token: str) -> None:
        try:
            self.redis.delete(self._key(token))
        except redis.RedisError as e:
            logger.warning(f"Failed to release stop token {token}: {e}")


# Global store (initialized lazily from settings)
_store_instance: Optional[StopTokenStore] = None
_store_lock = threading.Lock()


def get_stop_token_store() -> StopTokenStore:
    """
    Get or create the process-wide stop-token store.

    The backend is chosen by cancellation.backend in settings.
    """
    global _store_instance

    with _store_lock:
        if _store_instance is None:
            from hclust.config.settings_loader import get_settings

            settings = get_settings().cancellation
            if settings.backend == "redis":
                from hclust.utils.redis_client import get_redis_client

                _store_instance = RedisStopTokenStore(
                    get_redis_client(settings.redis_url),
                    key_prefix=settings.key_prefix,
                    ttl_seconds=settings.token_ttl_seconds,
                    retry_attempts=settings.retry_attempts,
                )
            else:
                _store_instance = LocalStopTokenStore()
            logger.debug(f"Initialized {type(_store_instance).__name__}")

        return _store_instance


def reset_stop_token_store() -> None:
    global _store_instance

    with _store_lock:
        _store_instance = None


def make_cancel_check(
    stop_token: Any,
    store: Optional[StopTokenStore] = None,
) -> Optional[CancelCheck]:
    """
    Build a cancellation query from an opaque stop token.

    Args:
        stop_token: None, a zero-argument callable (checked first), an object with is_set()
            (e.g. threading.Event), or a token string from a StopTokenStore
        store: Store answering string tokens (defaults to the global store)

    Returns:
        Zero-argument callable returning True once cancelled, or None
    """
    if stop_token is None:
        return None
    if isinstance(stop_token, str):
        token_store = store or get_stop_token_store()
        return lambda: token_store.is_stopped(stop_token)
    if callable(stop_token):
        return stop_token
    is_set: Optional[Callable[[], bool]] = getattr(stop_token, "is_set", None)
    if callable(is_set):
        return is_set
    raise InvalidInputError(f"Unsupported stop token type: {type(stop_token).__name__}")
