"""
Capa cache-aside.

Keys estables independientes del orden de los filtros y TTLs por clase.
"""

from propmatch.cache.keys import CacheKeys, canonical_json, stable_key
from propmatch.cache.store import CacheStore, TTLClass, create_redis

__all__ = [
    "CacheKeys",
    "CacheStore",
    "TTLClass",
    "canonical_json",
    "create_redis",
    "stable_key",
]
