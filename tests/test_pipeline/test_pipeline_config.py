"""Tests for purpose presets and the extraction request model."""

import pytest
from pydantic import ValidationError

from theme_engine.clustering.schemas import ClusteringMode
from theme_engine.coding.schemas import Source
from theme_engine.pipeline.config import PURPOSE_PRESETS, ExtractionRequest, PipelineConfig, get_preset


@pytest.fixture
def sources():
    return [Source(id="a", text="First text."), Source(id="b", text="Second text.")]


class TestPresets:
    @pytest.mark.parametrize(
        "name,mode,min_themes,max_themes",
        [
            ("q_methodology", ClusteringMode.BREADTH, 30, 80),
            ("qualitative_analysis", ClusteringMode.DEPTH, 5, 20),
            ("literature_synthesis", ClusteringMode.BREADTH, 10, 25),
            ("hypothesis_generation", ClusteringMode.DEPTH, 8, 15),
            ("survey_construction", ClusteringMode.DEPTH, 5, 15),
        ],
    )
    def test_preset_values(self, name, mode, min_themes, max_themes):
        preset = get_preset(name)
        assert preset.mode is mode
        assert (preset.min_themes, preset.max_themes) == (min_themes, max_themes)

    def test_ranges_are_valid(self):
        for preset in PURPOSE_PRESETS.values():
            assert 1 <= preset.min_themes <= preset.max_themes

    def test_unknown(self):
        with pytest.raises(KeyError, match="q_methodology"):
            get_preset("astrology")


class TestExtractionRequest:
    """Test preset application and validation."""

    def test_preset_fills_unset_fields(self, sources):
        request = ExtractionRequest(sources=sources, purpose="q_methodology")
        assert request.mode is ClusteringMode.BREADTH
        assert (request.min_themes, request.max_themes) == (30, 80)
        assert request.min_coherence == 0.5

    def test_explicit_values_win(self, sources):
        request = ExtractionRequest(
            sources=sources,
            purpose="q_methodology",
            mode=ClusteringMode.DEPTH,
            max_themes=40,
        )
        assert request.mode is ClusteringMode.DEPTH
        assert (request.min_themes, request.max_themes) == (30, 40)

    def test_without_purpose_fields_stay_unset(self, sources):
        request = ExtractionRequest(sources=sources)
        assert request.mode is None
        assert request.min_themes is None

    def test_sources_from_dicts(self):
        request = ExtractionRequest(
            sources=[{"id": 1, "content": "Body text.", "title": "T"}],
            mode="depth",
        )
        assert request.sources[0] == Source(id="1", text="Body text.", title="T")
        assert request.mode is ClusteringMode.DEPTH

    def test_unknown_purpose(self, sources):
        with pytest.raises(ValidationError, match="Unknown purpose"):
            ExtractionRequest(sources=sources, purpose="astrology")

    def test_inverted_range(self, sources):
        with pytest.raises(ValidationError, match="must not exceed"):
            ExtractionRequest(sources=sources, min_themes=10, max_themes=5)

    def test_preset_range_conflict(self, sources):
        with pytest.raises(ValidationError):
            ExtractionRequest(sources=sources, purpose="q_methodology", max_themes=10)

    def test_duplicate_source_ids(self):
        with pytest.raises(ValidationError, match="unique"):
            ExtractionRequest(sources=[Source(id="a", text="x"), Source(id="a", text="y")])

    def test_bounds(self, sources):
        with pytest.raises(ValidationError):
            ExtractionRequest(sources=sources, max_themes=0)
        with pytest.raises(ValidationError):
            ExtractionRequest(sources=sources, diversity_threshold=1.5)


class TestPipelineConfig:
    def test_defaults(self):
        config = PipelineConfig()
        assert config.min_codes == 2
        assert config.default_mode is ClusteringMode.BREADTH
        assert config.llm_concurrency == 4

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_MIN_CODES", "7")
        monkeypatch.setenv("PIPELINE_DEFAULT_MODE", "depth")
        config = PipelineConfig()
        assert config.min_codes == 7
        assert config.default_mode is ClusteringMode.DEPTH
