"""Tests for EmbeddingService."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from fakes import HashEmbeddingProvider, make_code
from theme_engine.embedding.cache import EmbeddingCache, make_cache_key
from theme_engine.embedding.config import EmbeddingConfig
from theme_engine.embedding.service import EmbeddingService
from theme_engine.errors import InconsistentDimensionError, ProviderError


@pytest.fixture
def config():
    return EmbeddingConfig(max_retries=0, backoff_base_delay=0.0, max_concurrency=4)


class FlakyProvider:
    """Fails the first ``failures`` calls, then returns a fixed vector."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    @property
    def model_name(self) -> str:
        return "flaky"

    async def embed(self, text):
        self.calls += 1
        if self.calls <= self.failures:
            raise ProviderError("transient")
        return [1.0, 0.0, 0.0]


class SlowProvider:
    @property
    def model_name(self) -> str:
        return "slow"

    async def embed(self, text):
        await asyncio.sleep(1.0)
        return [1.0, 0.0]


class TestEmbed:
    """Test single-text embedding."""

    async def test_returns_float64_vector(self, config):
        service = EmbeddingService(HashEmbeddingProvider(dim=16), config)
        vector = await service.embed("remote work")
        assert vector.shape == (16,)
        assert vector.dtype == np.float64
        assert service.dimension == 16

    async def test_empty_text_rejected(self, config):
        service = EmbeddingService(HashEmbeddingProvider(), config)
        with pytest.raises(ProviderError):
            await service.embed("   ")

    async def test_cache_hit_skips_provider(self, config):
        provider = HashEmbeddingProvider(dim=8)
        service = EmbeddingService(provider, config, cache=EmbeddingCache())
        first = await service.embed("same text")
        second = await service.embed("same text")
        np.testing.assert_array_equal(first, second)
        assert provider.calls == ["same text"]
        assert service.get_stats()["cache_hits"] == 1

    async def test_cache_disabled(self):
        config = EmbeddingConfig(max_retries=0, cache_enabled=False)
        provider = HashEmbeddingProvider(dim=8)
        service = EmbeddingService(provider, config, cache=EmbeddingCache())
        await service.embed("same text")
        await service.embed("same text")
        assert len(provider.calls) == 2

    async def test_shared_cache_across_services(self, config):
        cache = EmbeddingCache()
        provider = HashEmbeddingProvider(dim=8)
        await EmbeddingService(provider, config, cache=cache).embed("text")
        await EmbeddingService(provider, config, cache=cache).embed("text")
        assert len(provider.calls) == 1

    async def test_retries_transient_failures(self):
        config = EmbeddingConfig(max_retries=2, backoff_base_delay=0.0, backoff_max_delay=0.0)
        provider = FlakyProvider(failures=2)
        service = EmbeddingService(provider, config)
        vector = await service.embed("text")
        assert provider.calls == 3
        np.testing.assert_array_equal(vector, [1.0, 0.0, 0.0])

    async def test_timeout_becomes_provider_error(self):
        config = EmbeddingConfig(max_retries=0, timeout_seconds=0.01)
        service = EmbeddingService(SlowProvider(), config)
        with pytest.raises(ProviderError, match="timed out"):
            await service.embed("text")

    async def test_redis_tier_fills_memory_cache(self, config):
        provider = HashEmbeddingProvider(dim=4)
        redis_cache = MagicMock()
        redis_cache.get = AsyncMock(return_value=np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float32))
        redis_cache.set = AsyncMock()
        memory = EmbeddingCache()
        service = EmbeddingService(provider, config, cache=memory, redis_cache=redis_cache)

        vector = await service.embed("text")

        assert provider.calls == []
        assert vector.dtype == np.float64
        assert await memory.get(make_cache_key("text", "hash-test")) is not None

    async def test_generated_vectors_written_to_redis(self, config):
        redis_cache = MagicMock()
        redis_cache.get = AsyncMock(return_value=None)
        redis_cache.set = AsyncMock()
        service = EmbeddingService(HashEmbeddingProvider(dim=4), config, redis_cache=redis_cache)
        await service.embed("text")
        redis_cache.set.assert_awaited_once()


class TestEmbedMany:
    """Test batch embedding."""

    async def test_aligned_and_deduplicated(self, config):
        provider = HashEmbeddingProvider(dim=8)
        service = EmbeddingService(provider, config)
        vectors = await service.embed_many(["a text", "b text", "a text"])
        assert len(vectors) == 3
        np.testing.assert_array_equal(vectors[0], vectors[2])
        assert sorted(provider.calls) == ["a text", "b text"]

    async def test_empty(self, config):
        assert await EmbeddingService(HashEmbeddingProvider(), config).embed_many([]) == []

    async def test_failed_items_are_none(self, config):
        provider = HashEmbeddingProvider(dim=8, fail_markers=("bad",))
        service = EmbeddingService(provider, config)
        vectors = await service.embed_many(["good one", "bad one", "good two"])
        assert vectors[1] is None
        assert vectors[0] is not None and vectors[2] is not None
        assert service.get_stats()["failures"] == 1

    async def test_dimension_mismatch_aborts(self):
        config = EmbeddingConfig(max_retries=0, max_concurrency=1)
        provider = HashEmbeddingProvider(dim=8, dim_overrides={"odd": 12})
        service = EmbeddingService(provider, config)
        with pytest.raises(InconsistentDimensionError):
            await service.embed_many(["normal text", "odd text", "more text"])


class TestEmbedCodes:
    """Test attaching embeddings to codes."""

    async def test_embeds_and_drops(self, config):
        provider = HashEmbeddingProvider(dim=8, fail_markers=("broken",))
        service = EmbeddingService(provider, config)
        codes = [
            make_code("c1", label="working from home"),
            make_code("c2", label="broken label"),
            make_code("c3", label="team cohesion"),
        ]
        embedded, dropped = await service.embed_codes(codes)

        assert [c.id for c in embedded] == ["c1", "c3"]
        assert [c.id for c in dropped] == ["c2"]
        assert all(c.embedding is not None and c.embedding.shape == (8,) for c in embedded)
        assert codes[0].embedding is None

    async def test_uses_label_and_description(self, config):
        provider = HashEmbeddingProvider(dim=8)
        service = EmbeddingService(provider, config)
        code = make_code("c1", label="working from home")
        await service.embed_codes([code])
        assert provider.calls == ["working from home\ndescription of c1"]
