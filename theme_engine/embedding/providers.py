"""
Embedding providers.

A provider turns one text into one vector and knows nothing about caching,
retries or dimension checks; those live in EmbeddingService. Two backends
are shipped:

- TransformerEmbeddingProvider: local HuggingFace encoder with masked mean
  pooling, lazy model loading and automatic device detection (CUDA > MPS > CPU)
- OpenAIEmbeddingProvider: OpenAI embeddings API via a lazily created
  async client
"""

import asyncio
import logging
import threading
from typing import Any

import torch
from transformers import AutoModel, AutoTokenizer

from theme_engine.embedding.config import EmbeddingConfig
from theme_engine.errors import ProviderError

logger = logging.getLogger(__name__)


def select_device(preference: str) -> torch.device:
    """Resolve ``auto`` to CUDA, then Apple MPS, then CPU."""
    if preference != "auto":
        return torch.device(preference)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def mean_pool(hidden: torch.Tensor, attention_mask: torch.Tensor) -> torch.Tensor:
    """Average token vectors, skipping padding positions."""
    weights = attention_mask.unsqueeze(-1).to(hidden.dtype)
    return (hidden * weights).sum(dim=1) / weights.sum(dim=1).clamp(min=1e-9)


class TransformerEmbeddingProvider:
    """
    Local HuggingFace encoder producing mean-pooled sentence embeddings.

    The model loads on the first embed call. Loading and forward passes
    run in worker threads under thread locks; a worker outlives an embed
    call that timed out.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self._tokenizer: Any = None
        self._model: Any = None
        self._device: torch.device | None = None
        self._load_lock = threading.Lock()
        self._infer_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._config.model_name

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def _load(self) -> None:
        cfg = self._config
        self._device = select_device(cfg.device)
        logger.info("Loading embedding model %s on %s", cfg.model_name, self._device)

        self._tokenizer = AutoTokenizer.from_pretrained(
            cfg.model_name, model_max_length=cfg.max_sequence_length
        )
        model = AutoModel.from_pretrained(cfg.model_name).to(self._device).eval()
        if cfg.use_fp16 and self._device.type == "cuda":
            model = model.half()
        self._model = model

    def _ensure_loaded(self) -> None:
        if self.loaded:
            return
        with self._load_lock:
            if not self.loaded:
                self._load()

    def _forward(self, text: str) -> list[float]:
        batch = self._tokenizer(
            text,
            return_tensors="pt",
            truncation=True,
            max_length=self._config.max_sequence_length,
        ).to(self._device)
        with torch.inference_mode():
            hidden = self._model(**batch).last_hidden_state
        pooled = mean_pool(hidden, batch["attention_mask"])
        return pooled[0].float().cpu().tolist()

    def _encode(self, text: str) -> list[float]:
        self._ensure_loaded()
        with self._infer_lock:
            return self._forward(text)

    async def embed(self, text: str) -> list[float]:
        try:
            return await asyncio.to_thread(self._encode, text)
        except (RuntimeError, OSError, ValueError) as e:
            raise ProviderError(
                f"Local embedding failed: {e}", provider="transformer"
            ) from e

    def close(self) -> None:
        with self._load_lock, self._infer_lock:
            self._model = None
            self._tokenizer = None


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API.

    SDK import is deferred to first use so the package imports cleanly
    without an API key configured.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        self._config = config or EmbeddingConfig()
        self._api_key = api_key
        self._client: Any = None

    @property
    def model_name(self) -> str:
        return self._config.openai_model

    def _get_client(self) -> Any:
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(
                api_key=self._api_key,
                timeout=self._config.timeout_seconds,
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        import openai

        client = self._get_client()
        try:
            response = await client.embeddings.create(
                model=self._config.openai_model,
                input=text,
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenAI embedding request failed ({e.status_code}): {e.message}",
                provider="openai",
                retryable=e.status_code == 429 or e.status_code >= 500,
            ) from e
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenAI embedding request failed: {e}", provider="openai") from e

        return list(response.data[0].embedding)

    async def close(self) -> None:
        """Close the SDK client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
