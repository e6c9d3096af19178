"""
Embedding generation for theme extraction.

Components:
- EmbeddingConfig: Configuration for providers, caching and concurrency
- EmbeddingProvider: Protocol implemented by embedding backends
- EmbeddingCache / RedisEmbeddingCache: content-hash caches
- DimensionGuard: run-level dimension detection and enforcement
- EmbeddingService: bounded, cached, retrying embedder used by the pipeline

Concrete backends (TransformerEmbeddingProvider, OpenAIEmbeddingProvider)
live in ``theme_engine.embedding.providers`` and are imported on demand,
since the local backend pulls in torch.
"""

from theme_engine.embedding.base import EmbeddingProvider
from theme_engine.embedding.cache import EmbeddingCache, RedisEmbeddingCache, make_cache_key
from theme_engine.embedding.config import EmbeddingConfig
from theme_engine.embedding.service import DimensionGuard, EmbeddingService

__all__ = [
    "EmbeddingConfig",
    "EmbeddingProvider",
    "EmbeddingCache",
    "RedisEmbeddingCache",
    "make_cache_key",
    "DimensionGuard",
    "EmbeddingService",
]
