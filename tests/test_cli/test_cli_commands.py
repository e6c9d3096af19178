"""Tests for the theme-engine CLI."""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from theme_engine.cli import load_sources, main
from theme_engine.clustering.schemas import ClusteringMode
from theme_engine.config.settings import get_settings
from theme_engine.errors import InsufficientDataError
from theme_engine.pipeline.service import ExtractionResult, RunParameters


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sources_file(tmp_path):
    path = tmp_path / "sources.json"
    path.write_text(
        json.dumps(
            [
                {"id": "s1", "title": "Remote work", "text": "Remote work reduced commuting stress."},
                {"id": "s2", "content": "Green roofs lowered surface temperatures."},
            ]
        ),
        encoding="utf-8",
    )
    return path


def _make_result() -> ExtractionResult:
    params = RunParameters(
        mode=ClusteringMode.DEPTH,
        min_themes=2,
        max_themes=4,
        diversity_threshold=0.7,
        min_coherence=0.5,
        llm_call_budget=0,
        embedding_concurrency=8,
        llm_concurrency=4,
        random_seed=42,
    )
    return ExtractionResult(
        run_id="abc123",
        parameters=params,
        sources_processed=2,
        codes_extracted=6,
        codes_after_enrichment=6,
        codes_embedded=6,
    )


def _mock_pipeline(result=None, error=None):
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=result, side_effect=error)
    return pipeline


class TestLoadSources:
    def test_list(self, sources_file):
        assert [s["id"] for s in load_sources(sources_file)] == ["s1", "s2"]

    def test_wrapped_object(self, tmp_path):
        path = tmp_path / "wrapped.json"
        path.write_text(json.dumps({"sources": [{"id": "a", "text": "x"}]}), encoding="utf-8")
        assert load_sources(path) == [{"id": "a", "text": "x"}]

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"documents": []}), encoding="utf-8")
        with pytest.raises(click.BadParameter):
            load_sources(path)


class TestPresetsCommand:
    def test_lists_presets(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["presets"])

        assert result.exit_code == 0, result.output
        assert "Purpose Presets:" in result.output
        assert "q_methodology: breadth, 30-80 themes" in result.output
        assert "survey_construction: depth, 5-15 themes" in result.output


class TestDebugFlag:
    def test_debug_raises_log_level(self, runner: CliRunner, monkeypatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        try:
            result = runner.invoke(main, ["--debug", "presets"])
            assert result.exit_code == 0, result.output
            assert os.environ["LOG_LEVEL"] == "DEBUG"
            assert get_settings().log_level == "DEBUG"
        finally:
            get_settings.cache_clear()


class TestExtractCommand:
    """Test the `extract` command with the pipeline mocked out."""

    def test_writes_output_file(self, runner: CliRunner, sources_file, tmp_path) -> None:
        out = tmp_path / "themes.json"
        pipeline = _mock_pipeline(_make_result())

        with patch("theme_engine.pipeline.service.ThemeExtractionPipeline", return_value=pipeline) as MockPipeline:
            with patch("theme_engine.embedding.providers.TransformerEmbeddingProvider") as MockProvider:
                result = runner.invoke(
                    main,
                    ["extract", str(sources_file), "--no-llm", "--mode", "depth", "--max-themes", "4", "-o", str(out)],
                )

        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["runId"] == "abc123"
        assert "Extraction Results:" in result.output
        assert "codes embedded: 6" in result.output

        assert MockPipeline.call_args.args[1] is None
        request = pipeline.run.call_args.args[0]
        assert request.mode is ClusteringMode.DEPTH
        assert request.max_themes == 4
        assert [s.id for s in request.sources] == ["s1", "s2"]
        MockProvider.return_value.close.assert_called_once()

    def test_prints_json_without_output(self, runner: CliRunner, sources_file) -> None:
        with patch("theme_engine.pipeline.service.ThemeExtractionPipeline", return_value=_mock_pipeline(_make_result())):
            with patch("theme_engine.embedding.providers.TransformerEmbeddingProvider"):
                result = runner.invoke(main, ["extract", str(sources_file), "--no-llm"])

        assert result.exit_code == 0, result.output
        assert '"runId": "abc123"' in result.output

    def test_purpose_and_llm_provider(self, runner: CliRunner, sources_file, tmp_path) -> None:
        llm_client = MagicMock()
        llm_client.close = AsyncMock()
        pipeline = _mock_pipeline(_make_result())

        with patch("theme_engine.pipeline.service.ThemeExtractionPipeline", return_value=pipeline):
            with patch("theme_engine.embedding.providers.TransformerEmbeddingProvider"):
                with patch("theme_engine.llm.client.LLMClient", return_value=llm_client) as MockClient:
                    result = runner.invoke(
                        main,
                        [
                            "extract",
                            str(sources_file),
                            "--purpose",
                            "qualitative_analysis",
                            "--provider",
                            "anthropic",
                            "-o",
                            str(tmp_path / "out.json"),
                        ],
                    )

        assert result.exit_code == 0, result.output
        assert MockClient.call_args.args[0].provider == "anthropic"
        llm_client.close.assert_awaited_once()
        request = pipeline.run.call_args.args[0]
        assert request.purpose == "qualitative_analysis"
        assert (request.min_themes, request.max_themes) == (5, 20)

    def test_pipeline_error_exits_1(self, runner: CliRunner, sources_file) -> None:
        pipeline = _mock_pipeline(error=InsufficientDataError("No code received a valid embedding"))

        with patch("theme_engine.pipeline.service.ThemeExtractionPipeline", return_value=pipeline):
            with patch("theme_engine.embedding.providers.TransformerEmbeddingProvider") as MockProvider:
                result = runner.invoke(main, ["extract", str(sources_file), "--no-llm"])

        assert result.exit_code == 1
        assert "Extraction failed: No code received a valid embedding" in result.output
        MockProvider.return_value.close.assert_called_once()

    def test_invalid_sources_file(self, runner: CliRunner, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"documents": []}), encoding="utf-8")
        result = runner.invoke(main, ["extract", str(path), "--no-llm"])
        assert result.exit_code == 2

    def test_duplicate_source_ids(self, runner: CliRunner, tmp_path) -> None:
        path = tmp_path / "dupes.json"
        path.write_text(json.dumps([{"id": "a", "text": "x"}, {"id": "a", "text": "y"}]), encoding="utf-8")
        result = runner.invoke(main, ["extract", str(path), "--no-llm"])
        assert result.exit_code == 2
        assert "unique" in result.output

    def test_inverted_range(self, runner: CliRunner, sources_file) -> None:
        result = runner.invoke(main, ["extract", str(sources_file), "--min-themes", "9", "--max-themes", "3"])
        assert result.exit_code == 2

    def test_unknown_purpose(self, runner: CliRunner, sources_file) -> None:
        result = runner.invoke(main, ["extract", str(sources_file), "--purpose", "astrology"])
        assert result.exit_code == 2
