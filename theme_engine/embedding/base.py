"""Provider interface for embedding backends."""

from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can embed a single text.

    Implementations raise ProviderError on failure and know nothing about
    caching, retries or dimension checks.
    """

    @property
    def model_name(self) -> str:
        """Identifier of the underlying model (used in cache keys)."""
        ...

    async def embed(self, text: str) -> Sequence[float]:
        """Embed ``text``; raise ProviderError on failure."""
        ...
