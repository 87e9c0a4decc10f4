"""Redis client configuration and utilities."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

import redis.asyncio as aioredis
import structlog
from redis.exceptions import LockError

from app.config import settings
from app.core.exceptions import ConflictException

logger = structlog.get_logger()

# Global Redis client instance
_redis_client: aioredis.Redis | None = None


def get_redis_client() -> aioredis.Redis:
    """
    Get or create the asyncio Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        await client.ping()
        return True
    except Exception:
        return False


async def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class ScheduleLock:
    """Redis lock that serializes booking writes for one calendar day."""

    KEY_PREFIX = "appointments:day-lock"

    def __init__(
        self,
        redis_client: aioredis.Redis,
        timeout: int = 10,
        blocking_timeout: int = 5,
    ):
        """
        Initialize the lock helper.

        Args:
            redis_client: Async Redis connection
            timeout: Seconds before a held lock expires on its own
            blocking_timeout: Seconds to wait for a busy lock
        """
        self.redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @classmethod
    def key_for(cls, day: date) -> str:
        """Lock key for a calendar day."""
        return f"{cls.KEY_PREFIX}:{day.isoformat()}"

    @asynccontextmanager
    async def hold(self, day: date) -> AsyncIterator[None]:
        """
        Hold the lock for ``day`` while the block runs.

        Waiting for a busy lock yields to the event loop, so the current
        holder can finish its own database work meanwhile.

        Raises:
            ConflictException: If the lock could not be acquired in time
        """
        key = self.key_for(day)
        lock = self.redis.lock(key, timeout=self.timeout, blocking_timeout=self.blocking_timeout)

        if not await lock.acquire():
            logger.warning("schedule_lock_busy", key=key)
            raise ConflictException(f"Schedule for {day.isoformat()} is busy, try again")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired before release; another writer may already hold it
                logger.warning("schedule_lock_expired", key=key)


def get_schedule_lock() -> ScheduleLock | None:
    """Day lock when enabled in settings, otherwise None."""
    if not settings.scheduling_lock_enabled:
        return None
    return ScheduleLock(
        get_redis_client(),
        timeout=settings.scheduling_lock_timeout,
        blocking_timeout=settings.scheduling_lock_blocking_timeout,
    )
