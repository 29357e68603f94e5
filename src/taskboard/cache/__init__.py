from .store import CACHE_TTL, CacheHit, CacheStore

__all__ = ["CACHE_TTL", "CacheHit", "CacheStore"]
