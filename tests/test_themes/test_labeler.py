"""Tests for theme labeling."""

import pytest

from fakes import FakeLLMClient, parse_cluster_ids
from theme_engine.clustering.schemas import Cluster
from theme_engine.errors import ProviderError
from theme_engine.llm.budget import LLMCallBudget
from theme_engine.themes.config import ThemeConfig
from theme_engine.themes.labeler import ThemeLabeler, apply_fallback_label


def label_all(prompt, response_model, operation):
    return {
        "themes": [
            {"clusterId": cid, "label": f"Theme {cid[-4:]}", "description": "Generated description."}
            for cid in parse_cluster_ids(prompt)
        ]
    }


@pytest.fixture
def clusters(separable_codes):
    return [Cluster.from_codes(separable_codes[i : i + 3]) for i in range(0, 15, 3)]


class TestFallbackLabel:
    def test_uses_representative_code(self, clusters):
        cluster = clusters[0]
        apply_fallback_label(cluster)
        representative = cluster.representative_code()
        assert cluster.label == representative.label
        assert cluster.description == representative.description


class TestThemeLabeler:
    """Test labeling calls, budget and fallback."""

    async def test_labels_every_cluster(self, clusters):
        llm = FakeLLMClient(label_all)
        budget = LLMCallBudget(10)
        result = await ThemeLabeler(llm, budget).label(clusters)

        assert result.labeled == 5
        assert result.fallback == 0
        assert budget.used == 1
        for cluster in clusters:
            assert cluster.label == f"Theme {cluster.cluster_id[-4:]}"
            assert cluster.description == "Generated description."

    async def test_batches_share_budget(self, clusters):
        llm = FakeLLMClient(label_all)
        budget = LLMCallBudget(10)
        config = ThemeConfig(labeling_batch_size=2)
        await ThemeLabeler(llm, budget, config).label(clusters)
        assert llm.calls_for("labeling") == 3
        assert budget.used == 3

    async def test_budget_exhaustion_falls_back(self, clusters):
        llm = FakeLLMClient(label_all)
        config = ThemeConfig(labeling_batch_size=2)
        result = await ThemeLabeler(llm, LLMCallBudget(1), config).label(clusters, max_concurrency=1)

        assert result.labeled == 2
        assert result.fallback == 3
        for cluster in clusters[2:]:
            assert cluster.label == cluster.representative_code().label

    async def test_provider_error_falls_back(self, clusters):
        llm = FakeLLMClient(lambda *args: ProviderError("quota exceeded"))
        result = await ThemeLabeler(llm, LLMCallBudget(5)).label(clusters)
        assert result.fallback == 5
        assert all(c.label for c in clusters)
        assert "quota exceeded" in result.errors[0]

    async def test_missing_cluster_falls_back(self, clusters):
        def handler(prompt, response_model, operation):
            ids = parse_cluster_ids(prompt)
            return {"themes": [{"clusterId": ids[0], "label": "Only one", "description": ""}]}

        result = await ThemeLabeler(FakeLLMClient(handler), LLMCallBudget(5)).label(clusters)

        assert result.labeled == 1
        assert result.fallback == 4
        assert clusters[0].label == "Only one"
        assert clusters[0].description == clusters[0].representative_code().description

    async def test_unparseable_response_falls_back(self, clusters):
        result = await ThemeLabeler(FakeLLMClient(lambda *args: None), LLMCallBudget(5)).label(clusters)
        assert result.fallback == 5

    async def test_without_llm(self, clusters):
        budget = LLMCallBudget(5)
        result = await ThemeLabeler(None, budget).label(clusters)
        assert result.fallback == 5
        assert budget.used == 0

    async def test_prompt_lists_codes_and_excerpts(self, clusters):
        llm = FakeLLMClient(label_all)
        await ThemeLabeler(llm, LLMCallBudget(5)).label(clusters[:1])
        _, prompt = llm.calls[0]
        assert clusters[0].cluster_id in prompt
        for code in clusters[0].codes:
            assert code.label in prompt
        assert '"an excerpt"' in prompt

    async def test_empty(self):
        result = await ThemeLabeler(None, LLMCallBudget(1)).label([])
        assert result.labeled == 0 and result.fallback == 0
