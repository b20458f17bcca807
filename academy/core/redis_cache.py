import logging
import time
import uuid
from typing import Optional
import redis
from redis.exceptions import RedisError
from academy.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-backed store for rate-limit counters and scheduler locks"""

    def __init__(self, redis_url: Optional[str] = None, password: Optional[str] = None):
        """Initialize Redis cache (lazy connection)"""
        self._redis_url = redis_url or settings.redis_url
        self._password = password if password is not None else settings.redis_password
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def _connect(self):
        """Connect to Redis server; leaves the cache disconnected on failure"""
        client_kwargs = {
            'decode_responses': False,
            'socket_connect_timeout': 2,
            'socket_timeout': 2,
            'retry_on_timeout': False,
            'health_check_interval': 0,
        }
        # Explicit password takes precedence over the one embedded in the URL
        if self._password:
            client_kwargs['password'] = self._password

        try:
            client = redis.from_url(self._redis_url, **client_kwargs)
            client.ping()
            self._client = client
            self._connected = True
            logger.info("RedisCache: Connected to Redis")
        except RedisError as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisCache: Authentication failed - {error_msg}. Check REDIS_PASSWORD or REDIS_URL.")
            else:
                logger.warning(f"RedisCache: Connection test failed - {error_msg}")
            self._client = None
            self._connected = False

    def _get_client(self) -> Optional[redis.Redis]:
        """Return a live client, reconnecting if the previous one went away"""
        if self._connected and self._client is not None:
            return self._client
        self._connect()
        return self._client

    def _reset(self):
        self._connected = False
        self._client = None

    def ping(self) -> bool:
        """Check if Redis connection is alive"""
        client = self._get_client()
        if client is None:
            return False
        try:
            client.ping()
            return True
        except RedisError:
            self._reset()
            return False

    def get_int(self, key: str) -> Optional[int]:
        """Get an integer counter (for rate limiting)"""
        client = self._get_client()
        if client is None:
            logger.warning(f"RedisCache: Cannot get integer key {key} - Redis not available")
            return None
        try:
            data = client.get(key)
            if data is None:
                return None
            try:
                return int(data.decode('utf-8'))
            except (ValueError, UnicodeDecodeError) as e:
                logger.warning(f"RedisCache: Failed to decode integer for key {key}: {e}")
                client.delete(key)
                return None
        except RedisError as e:
            logger.error(f"RedisCache: Error getting integer key {key}: {e}")
            self._reset()
            return None

    def incr(self, key: str, amount: int = 1) -> Optional[int]:
        """
        Atomically increment a counter in Redis.

        Returns:
            The new value after increment, or None if Redis unavailable
        """
        client = self._get_client()
        if client is None:
            logger.warning(f"RedisCache: Cannot increment key {key} - Redis not available")
            return None
        try:
            return client.incrby(key, amount)
        except RedisError as e:
            logger.error(f"RedisCache: Error incrementing key {key}: {e}")
            self._reset()
            return None

    def expire(self, key: str, seconds: int):
        """Set expiration time on a key"""
        client = self._get_client()
        if client is None:
            return
        try:
            client.expire(key, seconds)
        except RedisError as e:
            logger.error(f"RedisCache: Error setting expiration on key {key}: {e}")
            self._reset()

    def acquire_lock(self, lock_key: str, timeout_seconds: int = 10, block_seconds: float = 0) -> Optional[str]:
        """
        Acquire a distributed lock using SET NX EX.

        Args:
            lock_key: Unique key for the lock
            timeout_seconds: How long the lock is held before auto-release
            block_seconds: How long to keep retrying; 0 tries once

        Returns:
            The lock token if acquired, None otherwise
        """
        client = self._get_client()
        if client is None:
            logger.warning(f"RedisCache: Cannot acquire lock {lock_key} - Redis not available")
            return None

        token = str(uuid.uuid4())
        deadline = time.monotonic() + block_seconds
        try:
            while True:
                if client.set(lock_key, token, nx=True, ex=timeout_seconds):
                    logger.debug(f"RedisCache: Lock acquired - {lock_key}")
                    return token
                if time.monotonic() >= deadline:
                    break
                time.sleep(0.05)
            logger.debug(f"RedisCache: Failed to acquire lock - {lock_key}")
            return None
        except RedisError as e:
            logger.error(f"RedisCache: Error acquiring lock {lock_key}: {e}")
            self._reset()
            return None

    def release_lock(self, lock_key: str, token: str):
        """Release a lock, but only if it is still held with our token"""
        client = self._get_client()
        if client is None:
            logger.warning(f"RedisCache: Cannot release lock {lock_key} - Redis not available")
            return
        try:
            current = client.get(lock_key)
            if current is not None and current.decode('utf-8') == token:
                client.delete(lock_key)
                logger.debug(f"RedisCache: Lock released - {lock_key}")
            else:
                logger.warning(f"RedisCache: Lock {lock_key} expired or taken over before release")
        except RedisError as e:
            logger.error(f"RedisCache: Error releasing lock {lock_key}: {e}")
            self._reset()
