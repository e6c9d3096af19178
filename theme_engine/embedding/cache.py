"""
Embedding caches keyed by content hash.

Two tiers are available:

- EmbeddingCache: bounded in-memory LRU with optional TTL. Created per run
  (or shared across runs when long-lived) and passed explicitly to the
  EmbeddingService; it is the only state shared between concurrent
  embedding tasks, so every access goes through an asyncio.Lock.
- RedisEmbeddingCache: optional long-lived cache shared across processes,
  evicted by key TTL.
"""

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any

import numpy as np
import redis.asyncio as redis

logger = logging.getLogger(__name__)


def make_cache_key(text: str, model: str) -> str:
    """
    Build a cache key from the model name and a SHA256 content hash.

    The model is part of the key so that switching models never returns
    vectors of a different dimension for the same text.
    """
    content_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
    return f"{model}:{content_hash}"


class EmbeddingCache:
    """Bounded LRU cache for embedding vectors.

    An ordered key→(vector, expiry) map. The least recently used entry is
    evicted on write when full; expired entries are dropped on read.

    Args:
        max_entries: Maximum number of vectors kept.
        ttl: Optional time-to-live in seconds (None = never expires).
    """

    def __init__(self, max_entries: int = 10_000, ttl: float | None = None) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._max_entries = max_entries
        self._ttl = ttl
        self._store: OrderedDict[str, tuple[np.ndarray, float | None]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    async def get(self, key: str) -> np.ndarray | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expiry = entry
            if expiry is not None and time.monotonic() > expiry:
                del self._store[key]
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return value

    async def set(self, key: str, value: np.ndarray) -> None:
        expiry = time.monotonic() + self._ttl if self._ttl is not None else None
        async with self._lock:
            self._store[key] = (value, expiry)
            self._store.move_to_end(key)
            while len(self._store) > self._max_entries:
                self._store.popitem(last=False)
                self._evictions += 1

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        lookups = self._hits + self._misses
        return {
            "entries": len(self._store),
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }


class RedisEmbeddingCache:
    """
    Cross-run embedding cache backed by Redis.

    Vectors are stored as JSON lists under ``{prefix}{key}`` with a TTL.
    Redis failures are logged and treated as cache misses; the cache never
    fails an embedding call.

    Args:
        client: Connected redis.asyncio client (lifecycle managed by caller).
        ttl_seconds: Key time-to-live.
        key_prefix: Namespace prefix for keys.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = 7 * 24 * 3600,
        key_prefix: str = "theme_emb:",
    ) -> None:
        self._redis = client
        self._ttl_seconds = ttl_seconds
        self._prefix = key_prefix

    async def get(self, key: str) -> np.ndarray | None:
        try:
            cached = await self._redis.get(f"{self._prefix}{key}")
        except Exception as e:
            logger.warning("Redis embedding cache read failed: %s", e)
            return None
        if not cached:
            return None
        return np.asarray(json.loads(cached), dtype=np.float32)

    async def set(self, key: str, value: np.ndarray) -> None:
        try:
            await self._redis.setex(
                f"{self._prefix}{key}",
                self._ttl_seconds,
                json.dumps(value.tolist()),
            )
        except Exception as e:
            logger.warning("Redis embedding cache write failed: %s", e)

    async def is_available(self) -> bool:
        """Check if Redis is reachable."""
        try:
            await self._redis.ping()
            return True
        except Exception:
            return False
