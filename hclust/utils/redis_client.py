"""
Common Redis Client Factory.

Used by the Redis-backed stop-token store.
"""

import logging
from typing import Optional

import redis

from hclust.utils.error_handling import CancellationBackendError

logger = logging.getLogger(__name__)


def get_redis_client(
    url: Optional[str] = None,
    decode_responses: bool = True,
    **kwargs
) -> redis.Redis:
    """
    Create and return a Redis client.

    Args:
        url: Redis URL (defaults to cancellation.redis_url from settings)
        decode_responses: Whether to decode responses to strings
        **kwargs: Additional Redis client arguments

    Returns:
        Redis client instance

    Raises:
        CancellationBackendError: If Redis cannot be reached
    """
    if url is None:
        from hclust.config.settings_loader import get_settings

        url = get_settings().cancellation.redis_url

    kwargs.setdefault("socket_timeout", 5.0)
    kwargs.setdefault("socket_connect_timeout", 5.0)

    try:
        client = redis.from_url(url, decode_responses=decode_responses, **kwargs)
        client.ping()
    except redis.RedisError as e:
        logger.error(f"Failed to connect to Redis at {url}: {e}")
        raise CancellationBackendError(
            f"Failed to connect to Redis at {url}: {e}",
            details={"url": url},
        ) from e

    logger.debug(f"Connected to Redis: {url}")
    return client
