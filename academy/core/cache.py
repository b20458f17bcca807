from datetime import datetime
from typing import Optional
from academy.core.redis_cache import RedisCache


# Global cache instance
_cache_instance: Optional[RedisCache] = None

SCHEDULER_LOCK_KEY = "scheduler:subscription-check"


def get_cache() -> RedisCache:
    """Get global Redis cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance


def rate_limit_key(scope: str, ident: str, window: str, now: Optional[datetime] = None) -> str:
    """Build a rate-limit counter key for a minute or hour window."""
    now = now or datetime.utcnow()
    if window == "minute":
        bucket = now.replace(second=0, microsecond=0)
    else:
        bucket = now.replace(minute=0, second=0, microsecond=0)
    return f"rate_limit:{scope}:{ident}:{window}:{bucket.isoformat()}"
