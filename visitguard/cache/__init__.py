# Cache tiers
from .base import CacheBackend, CacheCategory
from .local import LocalCache
from .redis_cache import RedisCache
from .tiered import TieredCache

__all__ = [
    "CacheBackend",
    "CacheCategory",
    "LocalCache",
    "RedisCache",
    "TieredCache",
]
