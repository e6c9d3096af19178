"""
Command-line interface for theme-engine.

Usage:
    theme-engine extract sources.json --purpose q_methodology -o themes.json
    theme-engine extract sources.json --mode depth --max-themes 12 --no-llm
    theme-engine presets
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from theme_engine.config.settings import get_settings
from theme_engine.errors import ThemeEngineError
from theme_engine.observability.logging import setup_logging
from theme_engine.observability.metrics import get_metrics
from theme_engine.pipeline.config import PURPOSE_PRESETS
from theme_engine.pipeline.progress import ProgressEvent


def load_sources(path: Path) -> list[dict[str, Any]]:
    """
    Read sources from a JSON file.

    Accepts a list of source objects or an object with a ``sources`` list.

    Raises:
        click.BadParameter: The file does not hold a list of sources.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("sources")
    if not isinstance(data, list):
        raise click.BadParameter("expected a JSON list of sources or {\"sources\": [...]}")
    return data


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Theme Engine - Semantic theme extraction and clustering."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.argument("sources_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mode", type=click.Choice(["breadth", "depth"]), default=None, help="Clustering strategy")
@click.option("--purpose", type=click.Choice(sorted(PURPOSE_PRESETS)), default=None, help="Purpose preset")
@click.option("--min-themes", type=int, default=None, help="Minimum theme count")
@click.option("--max-themes", type=int, default=None, help="Maximum theme count")
@click.option("--budget", type=int, default=None, help="LLM call budget for enrichment and labeling")
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write result JSON here (default: stdout)")
@click.option("--provider", type=click.Choice(["openai", "anthropic"]), default=None, help="LLM provider")
@click.option("--embeddings", type=click.Choice(["transformer", "openai"]), default=None, help="Embedding backend")
@click.option("--no-llm", is_flag=True, help="Term-frequency extraction and fallback labels only")
@click.option("--metrics/--no-metrics", default=False, help="Expose Prometheus metrics while running")
def extract(
    sources_json: Path,
    mode: str | None,
    purpose: str | None,
    min_themes: int | None,
    max_themes: int | None,
    budget: int | None,
    seed: int | None,
    output: Path | None,
    provider: str | None,
    embeddings: str | None,
    no_llm: bool,
    metrics: bool,
) -> None:
    """Extract themes from a JSON file of sources."""
    from theme_engine.embedding.config import EmbeddingConfig
    from theme_engine.embedding.providers import OpenAIEmbeddingProvider, TransformerEmbeddingProvider
    from theme_engine.llm.client import LLMClient
    from theme_engine.llm.config import LLMConfig
    from theme_engine.pipeline.config import ExtractionRequest
    from theme_engine.pipeline.service import ThemeExtractionPipeline

    settings = get_settings()

    try:
        request = ExtractionRequest(
            sources=load_sources(sources_json),
            mode=mode,
            purpose=purpose,
            min_themes=min_themes,
            max_themes=max_themes,
            llm_call_budget=budget,
            random_seed=seed,
        )
    except (ValueError, KeyError) as e:
        raise click.BadParameter(str(e), param_hint="SOURCES_JSON") from e

    embedding_config = EmbeddingConfig()
    if embeddings:
        embedding_config = embedding_config.model_copy(update={"provider": embeddings})
    llm_config = LLMConfig()
    if provider:
        llm_config = llm_config.model_copy(update={"provider": provider})

    def on_progress(event: ProgressEvent) -> None:
        click.echo(
            f"[{event.percent_complete:5.1f}%] {event.stage_name.value}: {event.message}",
            err=True,
        )

    async def run():
        if metrics or settings.metrics_enabled:
            get_metrics().start_server()

        if embedding_config.provider == "openai":
            key = llm_config.openai_api_key
            embedder = OpenAIEmbeddingProvider(
                embedding_config, api_key=key.get_secret_value() if key else None
            )
        else:
            embedder = TransformerEmbeddingProvider(embedding_config)

        llm_client = None if no_llm else LLMClient(llm_config)

        redis_client = None
        redis_cache = None
        if settings.redis_cache_configured:
            import redis.asyncio as redis

            from theme_engine.embedding.cache import RedisEmbeddingCache

            redis_client = redis.from_url(str(settings.redis_url))
            redis_cache = RedisEmbeddingCache(
                redis_client,
                ttl_seconds=embedding_config.redis_cache_ttl_seconds,
                key_prefix=embedding_config.cache_key_prefix,
            )

        pipeline = ThemeExtractionPipeline(
            embedder,
            llm_client,
            embedding_config=embedding_config,
            llm_config=llm_config,
            redis_cache=redis_cache,
        )
        try:
            return await pipeline.run(request, progress_callback=on_progress)
        finally:
            if llm_client is not None:
                await llm_client.close()
            if isinstance(embedder, OpenAIEmbeddingProvider):
                await embedder.close()
            else:
                embedder.close()
            if redis_client is not None:
                await redis_client.aclose()

    try:
        result = asyncio.run(run())
    except ThemeEngineError as e:
        click.echo(click.style(f"Extraction failed: {e}", fg="red"), err=True)
        sys.exit(1)

    payload = json.dumps(result.to_dict(), indent=2)
    if output:
        output.write_text(payload, encoding="utf-8")
    else:
        click.echo(payload)

    click.echo("\nExtraction Results:", err=True)
    click.echo(f"  mode: {result.parameters.mode.value}", err=True)
    click.echo(f"  sources: {result.sources_processed}", err=True)
    click.echo(f"  codes extracted: {result.codes_extracted}", err=True)
    click.echo(f"  codes after enrichment: {result.codes_after_enrichment}", err=True)
    click.echo(f"  codes embedded: {result.codes_embedded}", err=True)
    click.echo(f"  themes: {len(result.themes)}", err=True)
    if result.rejected_themes:
        click.echo(f"  rejected (low coherence): {len(result.rejected_themes)}", err=True)
    click.echo(f"  llm calls used: {result.llm_calls_used}", err=True)
    click.echo(f"  elapsed: {result.elapsed_seconds:.2f}s", err=True)
    if result.errors:
        click.echo(click.style(f"  {len(result.errors)} recoverable errors", fg="yellow"), err=True)
    if output:
        click.echo(click.style(f"  ✓ Themes written to {output}", fg="green"), err=True)


@main.command()
def presets() -> None:
    """List purpose presets."""
    click.echo("\nPurpose Presets:")
    click.echo("-" * 60)
    for name in sorted(PURPOSE_PRESETS):
        preset = PURPOSE_PRESETS[name]
        click.echo(
            f"  {name}: {preset.mode.value}, {preset.min_themes}-{preset.max_themes} themes, "
            f"min coherence {preset.min_coherence}"
        )
        if preset.description:
            click.echo(f"      {preset.description}")
    click.echo("-" * 60)


if __name__ == "__main__":
    main()
