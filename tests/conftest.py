"""Pytest fixtures for theme-engine tests.

Provides deterministic stand-ins for the two external capabilities the
pipeline consumes: an embedding provider and a JSON-completion LLM client.
"""

from typing import Callable

import numpy as np
import pytest

from fakes import BagOfWordsEmbeddingProvider, FakeLLMClient, Handler, HashEmbeddingProvider, make_code
from theme_engine.coding.schemas import Code, Source


@pytest.fixture
def hash_provider() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(dim=64)


@pytest.fixture
def bow_provider() -> BagOfWordsEmbeddingProvider:
    return BagOfWordsEmbeddingProvider()


@pytest.fixture
def fake_llm() -> Callable[[Handler], FakeLLMClient]:
    """Factory: ``fake_llm(handler)`` -> FakeLLMClient."""
    return FakeLLMClient


@pytest.fixture
def code_factory() -> Callable[..., Code]:
    return make_code


@pytest.fixture
def sample_sources() -> list[Source]:
    """Three short research abstracts on distinct topics."""
    return [
        Source(
            id="s1",
            title="Remote work and wellbeing",
            text=(
                "Remote work reduced commuting stress for most participants. "
                "Several employees reported blurred boundaries between work and family life. "
                "Managers struggled to maintain team cohesion without shared office space."
            ),
        ),
        Source(
            id="s2",
            title="Climate adaptation in cities",
            text=(
                "Urban heat islands increase mortality during extreme summer heatwaves. "
                "Green roofs lowered surface temperatures in dense neighbourhoods. "
                "Municipal budgets rarely cover long term adaptation infrastructure."
            ),
        ),
        Source(
            id="s3",
            title="Learning with language models",
            text=(
                "Students used chat assistants to draft essays before seminars. "
                "Teachers worried that automated feedback weakens critical thinking skills. "
                "Assessment policies lag behind the pace of classroom technology adoption."
            ),
        ),
    ]


@pytest.fixture
def separable_embeddings() -> np.ndarray:
    """15x32 embeddings in 3 well-separated groups of 5 (rows 0-4, 5-9, 10-14)."""
    rng = np.random.default_rng(42)
    dim = 32
    centers = rng.standard_normal((3, dim))
    centers = centers / np.linalg.norm(centers, axis=1, keepdims=True)
    groups = []
    for center in centers:
        group = center + rng.standard_normal((5, dim)) * 0.05
        groups.append(group / np.linalg.norm(group, axis=1, keepdims=True))
    return np.vstack(groups)


@pytest.fixture
def separable_codes(separable_embeddings: np.ndarray) -> list[Code]:
    """Embedded codes matching ``separable_embeddings``; group g comes from source s{g}."""
    return [
        make_code(f"c{i:02d}", source_id=f"s{i // 5}", embedding=vector)
        for i, vector in enumerate(separable_embeddings)
    ]
