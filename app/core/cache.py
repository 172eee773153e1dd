import logging
from typing import Optional
from app.core.redis_cache import RedisCache

logger = logging.getLogger(__name__)


# Global cache instance
_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get global Redis cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance


def set_cache(cache: Optional[RedisCache]):
    """Replace the global cache instance (tests)"""
    global _cache_instance
    _cache_instance = cache


def usage_lock_key(user_id: str, month: str) -> str:
    """Lock guarding a user's usage record for one month"""
    return f"usage_lock:{user_id}:{month}"


def rate_limit_key(scope: str, ident: str, window: str, stamp: str) -> str:
    """Counter key for one rate-limit window, e.g. rate_limit:user:<uid>:minute:<iso>"""
    return f"rate_limit:{scope}:{ident}:{window}:{stamp}"
