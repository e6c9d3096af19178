"""
Embedding generation for codes and excerpts.

Provides async, bounded-concurrency embedding with:
- Runtime dimension detection and validation (fail fast on mismatch)
- Content-hash caching through an explicitly passed cache context
- Optional second-tier Redis cache shared across runs
- Per-call timeouts and jittered retries on provider errors
- Per-item failure isolation (a failed text yields None, not an abort)
"""

import asyncio
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np
import structlog

from theme_engine.concurrency.backoff import ExponentialBackoff, retry_async
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.concurrency.pool import bounded_gather
from theme_engine.embedding.base import EmbeddingProvider
from theme_engine.embedding.cache import EmbeddingCache, RedisEmbeddingCache, make_cache_key
from theme_engine.embedding.config import EmbeddingConfig
from theme_engine.errors import InconsistentDimensionError, InvalidInputError, ProviderError
from theme_engine.observability.metrics import get_metrics

if TYPE_CHECKING:
    from theme_engine.coding.schemas import Code

logger = structlog.get_logger(__name__)

MIN_DIMENSION = 2


class DimensionGuard:
    """
    Establishes the embedding dimension of a run and enforces it.

    The first vector that passes validation fixes the dimension. Every
    later vector must match it exactly; nothing is ever truncated or padded.
    """

    def __init__(self, max_expected: int = 4096) -> None:
        self._max_expected = max_expected
        self._dimension: int | None = None

    @property
    def dimension(self) -> int | None:
        """Dimension established for the run (None until the first vector)."""
        return self._dimension

    def validate(self, vector: Sequence[float] | np.ndarray, context: str | None = None) -> np.ndarray:
        """
        Validate a vector and return it as a float64 numpy array.

        Raises:
            InvalidInputError: Not 1-D or fewer than 2 components.
            ProviderError: Non-finite values (not retryable; the item is dropped).
            InconsistentDimensionError: Dimension differs from the run's dimension.
        """
        arr = np.asarray(vector, dtype=np.float64)
        if arr.ndim != 1:
            raise InvalidInputError(f"Embedding must be a 1-D vector, got shape {arr.shape}")

        dim = arr.shape[0]
        if dim < MIN_DIMENSION:
            raise InvalidInputError(
                f"Embedding dimension {dim} is below the minimum of {MIN_DIMENSION}"
            )
        if not np.all(np.isfinite(arr)):
            raise ProviderError(
                f"Embedding{' for ' + context if context else ''} contains NaN or Inf values",
                retryable=False,
            )

        if self._dimension is None:
            self._dimension = dim
            if dim > self._max_expected:
                logger.warning(
                    "Unusually large embedding dimension detected",
                    dimension=dim,
                    max_expected=self._max_expected,
                )
            else:
                logger.info("Embedding dimension detected", dimension=dim)
        elif dim != self._dimension:
            raise InconsistentDimensionError(self._dimension, dim, context)

        return arr


class EmbeddingService:
    """
    Embeds texts through a pluggable provider for one pipeline run.

    A fresh service (and DimensionGuard) is created per run; the in-memory
    cache may be per-run or long-lived and is always passed in explicitly.

    Usage:
        service = EmbeddingService(provider, cache=EmbeddingCache())
        vectors = await service.embed_many(["first text", "second text"])
        embedded, dropped = await service.embed_codes(codes)
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        config: EmbeddingConfig | None = None,
        cache: EmbeddingCache | None = None,
        redis_cache: RedisEmbeddingCache | None = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: Backend that embeds a single text
            config: Embedding configuration (uses defaults if None)
            cache: In-memory cache context (disabled if None or cache_enabled is off)
            redis_cache: Optional cross-run Redis cache
        """
        self._config = config or EmbeddingConfig()
        self._provider = provider
        self._cache = cache if self._config.cache_enabled else None
        self._redis_cache = redis_cache if self._config.cache_enabled else None
        self._guard = DimensionGuard(max_expected=self._config.max_expected_dimension)
        self._metrics = get_metrics()

        self._generated = 0
        self._cache_hits = 0
        self._failures = 0

        logger.info(
            "EmbeddingService created",
            model=provider.model_name,
            cache_enabled=self._cache is not None,
            redis_cache=self._redis_cache is not None,
            max_concurrency=self._config.max_concurrency,
        )

    @property
    def dimension(self) -> int | None:
        """Embedding dimension established for this run."""
        return self._guard.dimension

    @property
    def guard(self) -> DimensionGuard:
        return self._guard

    async def _cached(self, key: str) -> np.ndarray | None:
        if self._cache is not None:
            vector = await self._cache.get(key)
            if vector is not None:
                return vector
        if self._redis_cache is not None:
            vector = await self._redis_cache.get(key)
            if vector is not None and self._cache is not None:
                await self._cache.set(key, vector)
            return vector
        return None

    async def _store(self, key: str, vector: np.ndarray) -> None:
        if self._cache is not None:
            await self._cache.set(key, vector)
        if self._redis_cache is not None:
            await self._redis_cache.set(key, vector)

    async def _call_provider(self, text: str) -> Sequence[float]:
        try:
            return await asyncio.wait_for(
                self._provider.embed(text),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Embedding call timed out after {self._config.timeout_seconds}s",
                provider=self._provider.model_name,
            ) from e

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed a single text.

        Raises:
            ProviderError: Provider failed after all retries, text is empty, or the
                vector has NaN/Inf values.
            InvalidInputError / InconsistentDimensionError: Vector shape rejected by the guard.
        """
        if not text.strip():
            raise ProviderError("Cannot embed empty text", retryable=False)

        key = make_cache_key(text, self._provider.model_name)
        cached = await self._cached(key)
        self._metrics.record_cache_lookup(cached is not None)
        if cached is not None:
            self._cache_hits += 1
            return self._guard.validate(cached, context="cached embedding")

        raw = await retry_async(
            self._call_provider,
            text,
            max_retries=self._config.max_retries,
            backoff=ExponentialBackoff(
                base_delay=self._config.backoff_base_delay,
                max_delay=self._config.backoff_max_delay,
            ),
            retry_on=(ProviderError,),
            description="embedding",
        )
        vector = self._guard.validate(raw, context=f"text {text[:40]!r}")
        self._generated += 1
        await self._store(key, vector)
        return vector

    async def _embed_or_none(self, text: str) -> np.ndarray | None:
        try:
            return await self.embed(text)
        except ProviderError as e:
            self._failures += 1
            self._metrics.record_embedding_failure()
            logger.warning("Embedding failed; item skipped", error=str(e), text=text[:60])
            return None

    async def embed_many(
        self,
        texts: Sequence[str],
        cancel_token: CancellationToken | None = None,
    ) -> list[np.ndarray | None]:
        """
        Embed many texts with bounded concurrency.

        Identical texts are embedded once. Items whose embedding failed are
        returned as None. Dimension and input errors abort immediately and
        cancel outstanding calls.

        Args:
            texts: Texts to embed
            cancel_token: Optional run-wide cancellation signal

        Returns:
            Vectors aligned with ``texts`` (None where embedding failed)
        """
        if not texts:
            return []

        unique = list(dict.fromkeys(texts))
        vectors = await bounded_gather(
            self._embed_or_none,
            unique,
            limit=self._config.max_concurrency,
            cancel_token=cancel_token,
        )
        by_text = dict(zip(unique, vectors))
        return [by_text[text] for text in texts]

    async def embed_codes(
        self,
        codes: Sequence["Code"],
        cancel_token: CancellationToken | None = None,
    ) -> tuple[list["Code"], list["Code"]]:
        """
        Attach embeddings to codes.

        Returns:
            (embedded codes, codes dropped because their embedding failed)
        """
        vectors = await self.embed_many([code.embedding_text for code in codes], cancel_token)

        embedded: list["Code"] = []
        dropped: list["Code"] = []
        for code, vector in zip(codes, vectors):
            if vector is None:
                dropped.append(code)
            else:
                embedded.append(code.with_embedding(vector))

        if dropped:
            logger.warning(
                "Codes dropped after embedding failures",
                dropped=len(dropped),
                kept=len(embedded),
            )
            self._metrics.record_codes_dropped("embedding_failed", len(dropped))
        return embedded, dropped

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        stats: dict[str, Any] = {
            "model": self._provider.model_name,
            "dimension": self._guard.dimension,
            "generated": self._generated,
            "cache_hits": self._cache_hits,
            "failures": self._failures,
        }
        if self._cache is not None:
            stats["cache"] = self._cache.get_stats()
        return stats
