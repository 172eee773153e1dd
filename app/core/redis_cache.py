import logging
import time
import uuid
from typing import Dict, Optional
import redis
from redis.exceptions import RedisError
from app.core.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait before retrying after a failed connection attempt
RECONNECT_BACKOFF_SECONDS = 30


class RedisCache:
    """Redis-backed counters (rate limiting) and short-lived locks (usage accounting).

    Every operation degrades gracefully: when Redis is unreachable reads return
    None, writes are dropped and locks are reported as not acquired.
    """

    def __init__(self, url: Optional[str] = None, password: Optional[str] = None):
        self._url = url or settings.redis_url
        self._password = password or settings.redis_password or None
        self._client: Optional[redis.Redis] = None
        self._retry_after = 0.0
        self._lock_tokens: Dict[str, str] = {}

    def _get_client(self) -> Optional[redis.Redis]:
        """Return a live client, connecting lazily. None when Redis is unavailable."""
        if self._client is not None:
            return self._client

        if time.monotonic() < self._retry_after:
            return None

        try:
            client = redis.from_url(
                self._url,
                password=self._password,
                decode_responses=False,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=False,
                health_check_interval=0,
            )
            client.ping()
            self._client = client
            logger.info(f"RedisCache: Connected to {self._url}")
            return client
        except RedisError as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisCache: Authentication failed - {error_msg}. Check REDIS_PASSWORD or REDIS_URL.")
            else:
                logger.warning(f"RedisCache: Redis unavailable - {error_msg}")
            self._retry_after = time.monotonic() + RECONNECT_BACKOFF_SECONDS
            return None

    def _drop_connection(self, error: Exception, operation: str):
        logger.error(f"RedisCache: Error during {operation} - {error}")
        self._client = None
        self._retry_after = time.monotonic() + RECONNECT_BACKOFF_SECONDS

    def get_int(self, key: str) -> Optional[int]:
        """Get an integer counter (rate limiting windows)"""
        client = self._get_client()
        if client is None:
            return None

        try:
            data = client.get(key)
            if data is None:
                return None
            return int(data.decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"RedisCache: Failed to decode integer for key {key}: {e}")
            client.delete(key)
            return None
        except RedisError as e:
            self._drop_connection(e, f"get_int {key}")
            return None

    def set(self, key: str, value: int, ttl_minutes: int):
        """Set an integer counter with TTL in minutes"""
        client = self._get_client()
        if client is None:
            return

        try:
            client.setex(key, ttl_minutes * 60, str(int(value)).encode('utf-8'))
            logger.debug(f"Cache set: {key}, TTL: {ttl_minutes} minutes")
        except RedisError as e:
            self._drop_connection(e, f"set {key}")

    def incr(self, key: str, ttl_seconds: Optional[int] = None) -> Optional[int]:
        """Atomically increment a counter, optionally (re)setting its expiry"""
        client = self._get_client()
        if client is None:
            return None

        try:
            new_value = client.incr(key)
            if ttl_seconds:
                client.expire(key, ttl_seconds)
            return new_value
        except RedisError as e:
            self._drop_connection(e, f"incr {key}")
            return None

    def delete(self, key: str):
        client = self._get_client()
        if client is None:
            return

        try:
            client.delete(key)
        except RedisError as e:
            self._drop_connection(e, f"delete {key}")

    def ping(self) -> bool:
        client = self._get_client()
        if client is None:
            return False
        try:
            return bool(client.ping())
        except RedisError as e:
            self._drop_connection(e, "ping")
            return False

    def acquire_lock(self, lock_key: str, timeout_seconds: int = 10, block_seconds: float = 5) -> bool:
        """
        Acquire a distributed lock with SET NX EX.

        Args:
            lock_key: Unique key for the lock
            timeout_seconds: Lock auto-release time
            block_seconds: How long to keep retrying

        Returns:
            True if the lock was acquired, False otherwise (including Redis unavailable)
        """
        client = self._get_client()
        if client is None:
            logger.warning(f"RedisCache: Cannot acquire lock {lock_key} - Redis not available")
            return False

        token = str(uuid.uuid4())
        deadline = time.monotonic() + block_seconds
        try:
            while True:
                if client.set(lock_key, token, nx=True, ex=timeout_seconds):
                    self._lock_tokens[lock_key] = token
                    logger.debug(f"RedisCache: Lock acquired - {lock_key}")
                    return True
                if time.monotonic() >= deadline:
                    logger.debug(f"RedisCache: Failed to acquire lock - {lock_key}")
                    return False
                time.sleep(0.05)
        except RedisError as e:
            self._drop_connection(e, f"acquire_lock {lock_key}")
            return False

    def release_lock(self, lock_key: str):
        """Release a lock previously acquired by this instance"""
        token = self._lock_tokens.pop(lock_key, None)
        if token is None:
            return

        client = self._get_client()
        if client is None:
            return

        try:
            current = client.get(lock_key)
            if current is not None and current.decode('utf-8') == token:
                client.delete(lock_key)
                logger.debug(f"RedisCache: Lock released - {lock_key}")
        except RedisError as e:
            self._drop_connection(e, f"release_lock {lock_key}")
