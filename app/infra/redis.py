"""
Redis Connection Management

Redis connection with retries and timeouts, and the Redis-backed wizard
session store. Unlike a cache, the session store does not degrade
silently: an unreachable Redis is reported as a StorageError so the
engine can tell the user and leave the session untouched.
"""

import logging
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from app.config import settings
from app.core.reservations.errors import StorageError
from app.core.reservations.ports import SessionStore
from app.core.reservations.session import WizardSession

# Logger
logger = logging.getLogger(__name__)

# App prefix for namespacing (allows multiple apps/versions on same Redis)
APP_PREFIX = "reservations:v1:"


class RedisClient:
    """
    Manages Redis connection as a singleton.

    Features:
    - Connection pooling
    - Automatic retries
    - Timeouts
    - Graceful failure handling
    """

    _client: Optional[Redis] = None
    _connected: bool = False

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get or create Redis client.

        Returns:
            Redis client or None if connection fails
        """
        if cls._client is not None and cls._connected:
            return cls._client

        try:
            # Retry configuration: 3 retries with exponential backoff
            retry = Retry(ExponentialBackoff(), retries=3)

            cls._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
                retry=retry,
            )

            # Test connection
            await cls._client.ping()
            cls._connected = True
            logger.info("Redis connection established successfully")
            return cls._client

        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            cls._connected = False
            cls._client = None
            return None

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._client is not None:
            try:
                await cls._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                cls._client = None
                cls._connected = False


async def get_redis() -> Optional[Redis]:
    """
    Provide the shared Redis client.

    Returns None if Redis is unavailable.
    """
    return await RedisClient.get_client()


class RedisSessionStore(SessionStore):
    """
    Redis-based storage of wizard sessions.

    Keys (with namespace):
    - reservations:v1:wizard:{session_id} -> session data (JSON)

    One key per conversation; saving overwrites (last writer wins).
    """

    SESSION_PREFIX = f"{APP_PREFIX}wizard:"

    def __init__(self, redis_client: Optional[Redis] = None, ttl: Optional[int] = None):
        """Initialize store.

        Args:
            redis_client: Redis client (shared client if not provided)
            ttl: Session expiry in seconds (settings.wizard_session_ttl if
                not provided, None for no expiry)
        """
        self._redis = redis_client
        self.ttl = ttl if ttl is not None else settings.wizard_session_ttl

    def _session_key(self, session_id: str) -> str:
        """Generate session key with namespace."""
        return f"{self.SESSION_PREFIX}{session_id}"

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis()
        if self._redis is None:
            raise StorageError("Redis unavailable")
        return self._redis

    async def load(self, session_id: str) -> Optional[WizardSession]:
        """
        Load a session.

        Args:
            session_id: Conversation identifier

        Returns:
            WizardSession or None if not found

        Raises:
            StorageError: If Redis is unreachable
            SessionCorruptedError: If the stored JSON cannot be decoded
        """
        client = await self._client()
        try:
            data = await client.get(self._session_key(session_id))
        except RedisError as e:
            raise StorageError(f"Failed to load session {session_id}: {e}") from e

        if data is None:
            return None
        return WizardSession.from_json(data)

    async def save(self, session: WizardSession) -> None:
        """
        Create or overwrite a session.

        Raises:
            StorageError: If Redis is unreachable
        """
        client = await self._client()
        key = self._session_key(session.session_id)
        try:
            if self.ttl:
                await client.setex(key, timedelta(seconds=self.ttl), session.to_json())
            else:
                await client.set(key, session.to_json())
        except RedisError as e:
            raise StorageError(f"Failed to save session {session.session_id}: {e}") from e
        logger.debug(f"Session saved: {session.session_id} ({session.step.value})")

    async def delete(self, session_id: str) -> None:
        """
        Delete a session.

        Raises:
            StorageError: If Redis is unreachable
        """
        client = await self._client()
        try:
            deleted = await client.delete(self._session_key(session_id))
        except RedisError as e:
            raise StorageError(f"Failed to delete session {session_id}: {e}") from e
        if deleted:
            logger.debug(f"Session deleted: {session_id}")


async def check_redis_health() -> bool:
    """
    Check Redis connectivity for health checks.

    Returns:
        True if Redis is accessible and responding, False otherwise
    """
    try:
        client = await get_redis()
        if client is None:
            return False

        await client.ping()
        return True

    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False
