"""Theme extraction pipeline: sources in, labeled themes out.

Runs as one async unit of work per request:
1. Familiarization: validate the sources
2. Coding: LLM batch extraction (term-frequency fallback)
3. Enrichment: budgeted code splitting with grounding checks (conditional)
4. Embedding + clustering: breadth (adaptive k-means++) or depth (agglomerative)
5. Diversity enforcement and coherence validation
6. Labeling: budgeted LLM labels with representative-code fallback
7. Provenance: per-source influence weights per theme

Single-item failures (a source, a batch, an embedding) are recorded and the
run continues. Dimension mismatches, invalid input and too few valid codes
abort the run. A cancellation token aborts outstanding work between and
within stages.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.schemas import ClusteringMode
from theme_engine.clustering.service import ClusteringService
from theme_engine.coding.config import CodingConfig
from theme_engine.coding.enricher import CodeEnricher
from theme_engine.coding.extractor import CodeExtractor
from theme_engine.coding.schemas import Source
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.config.settings import get_settings
from theme_engine.embedding.base import EmbeddingProvider
from theme_engine.embedding.cache import EmbeddingCache, RedisEmbeddingCache
from theme_engine.embedding.config import EmbeddingConfig
from theme_engine.embedding.service import EmbeddingService
from theme_engine.errors import (
    InsufficientDataError,
    InvalidInputError,
    PipelineCancelledError,
)
from theme_engine.llm.budget import LLMCallBudget
from theme_engine.llm.client import JSONCompletionClient
from theme_engine.llm.config import LLMConfig
from theme_engine.observability.logging import bind_context, unbind_context
from theme_engine.observability.metrics import get_metrics
from theme_engine.pipeline.config import ExtractionRequest, PipelineConfig, get_preset
from theme_engine.pipeline.progress import PipelineStage, ProgressCallback, ProgressReporter
from theme_engine.themes.coherence import validate_coherence
from theme_engine.themes.config import ThemeConfig
from theme_engine.themes.diversity import diversity_metrics, enforce_diversity
from theme_engine.themes.labeler import ThemeLabeler, apply_fallback_label
from theme_engine.themes.provenance import annotate_provenance, source_weight
from theme_engine.themes.schemas import Theme

logger = logging.getLogger(__name__)


@dataclass
class RunParameters:
    """Request values after presets and defaults are applied."""

    mode: ClusteringMode
    min_themes: int
    max_themes: int
    diversity_threshold: float
    min_coherence: float
    llm_call_budget: int
    embedding_concurrency: int
    llm_concurrency: int
    random_seed: int
    purpose: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "min_themes": self.min_themes,
            "max_themes": self.max_themes,
            "diversity_threshold": self.diversity_threshold,
            "min_coherence": self.min_coherence,
            "llm_call_budget": self.llm_call_budget,
            "embedding_concurrency": self.embedding_concurrency,
            "llm_concurrency": self.llm_concurrency,
            "random_seed": self.random_seed,
            "purpose": self.purpose,
        }


@dataclass
class ExtractionResult:
    """Summary of a theme extraction run."""

    run_id: str
    parameters: RunParameters
    themes: list[Theme] = field(default_factory=list)
    rejected_themes: list[Theme] = field(default_factory=list)
    sources_processed: int = 0
    codes_extracted: int = 0
    codes_after_enrichment: int = 0
    codes_embedded: int = 0
    codes_dropped: int = 0
    enrichment_applied: bool = False
    llm_calls_used: int = 0
    dimension: int | None = None
    diversity_metrics: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "parameters": self.parameters.to_dict(),
            "themes": [t.to_dict() for t in self.themes],
            "rejectedThemes": [t.to_dict() for t in self.rejected_themes],
            "stats": {
                "sources_processed": self.sources_processed,
                "codes_extracted": self.codes_extracted,
                "codes_after_enrichment": self.codes_after_enrichment,
                "codes_embedded": self.codes_embedded,
                "codes_dropped": self.codes_dropped,
                "enrichment_applied": self.enrichment_applied,
                "llm_calls_used": self.llm_calls_used,
                "dimension": self.dimension,
                "elapsed_seconds": round(self.elapsed_seconds, 3),
            },
            "diversityMetrics": self.diversity_metrics,
            "errors": self.errors,
        }


class ThemeExtractionPipeline:
    """
    Orchestrates one theme extraction run per call to ``run()``.

    Constructor: ``(embedding_provider, llm_client?, *, configs..., embedding_cache?,
    redis_cache?)``. The embedding cache is an explicit context object: pass
    one long-lived EmbeddingCache to share vectors across runs, or leave it
    None for a fresh per-run cache. Each run gets its own EmbeddingService
    so the embedding dimension is established per run.

    Usage:
        pipeline = ThemeExtractionPipeline(provider, LLMClient())
        result = await pipeline.run(ExtractionRequest(sources=sources, purpose="q_methodology"))
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        llm_client: JSONCompletionClient | None = None,
        *,
        pipeline_config: PipelineConfig | None = None,
        embedding_config: EmbeddingConfig | None = None,
        llm_config: LLMConfig | None = None,
        coding_config: CodingConfig | None = None,
        clustering_config: ClusteringConfig | None = None,
        theme_config: ThemeConfig | None = None,
        embedding_cache: EmbeddingCache | None = None,
        redis_cache: RedisEmbeddingCache | None = None,
    ) -> None:
        self._provider = embedding_provider
        self._llm = llm_client
        self._config = pipeline_config or PipelineConfig()
        self._embedding_config = embedding_config or EmbeddingConfig()
        self._llm_config = llm_config or LLMConfig()
        self._coding_config = coding_config or CodingConfig()
        self._clustering_config = clustering_config or ClusteringConfig()
        self._theme_config = theme_config or ThemeConfig()
        self._embedding_cache = embedding_cache
        self._redis_cache = redis_cache
        self._extractor = CodeExtractor(llm_client, self._coding_config)
        self._clustering = ClusteringService(self._clustering_config)
        self._metrics = get_metrics()

    # ── Parameters ───────────────────────────────────────

    def resolve_parameters(self, request: ExtractionRequest) -> RunParameters:
        """Fill unset request values from the default purpose and component configs."""
        mode = request.mode
        min_themes = request.min_themes
        max_themes = request.max_themes
        min_coherence = request.min_coherence
        purpose = request.purpose

        default_purpose = get_settings().default_purpose
        if purpose is None and default_purpose:
            preset = get_preset(default_purpose)
            purpose = preset.name
            mode = mode or preset.mode
            min_themes = min_themes if min_themes is not None else preset.min_themes
            max_themes = max_themes if max_themes is not None else preset.max_themes
            min_coherence = min_coherence if min_coherence is not None else preset.min_coherence

        if max_themes is None:
            max_themes = max(self._config.default_max_themes, min_themes or 1)
        if min_themes is None:
            min_themes = min(self._config.default_min_themes, max_themes)
        if min_themes > max_themes:
            raise InvalidInputError(
                f"min_themes ({min_themes}) must not exceed max_themes ({max_themes})"
            )

        def _pick(value: Any, default: Any) -> Any:
            return default if value is None else value

        return RunParameters(
            mode=mode or self._config.default_mode,
            min_themes=min_themes,
            max_themes=max_themes,
            diversity_threshold=_pick(request.diversity_threshold, self._theme_config.diversity_threshold),
            min_coherence=_pick(min_coherence, self._theme_config.min_coherence),
            llm_call_budget=_pick(request.llm_call_budget, self._llm_config.call_budget),
            embedding_concurrency=_pick(request.embedding_concurrency, self._config.embedding_concurrency),
            llm_concurrency=_pick(request.llm_concurrency, self._config.llm_concurrency),
            random_seed=_pick(request.random_seed, self._config.random_seed),
            purpose=purpose,
        )

    def _embedding_service(self, params: RunParameters) -> EmbeddingService:
        config = self._embedding_config.model_copy(
            update={"max_concurrency": params.embedding_concurrency}
        )
        cache = self._embedding_cache
        if cache is None and config.cache_enabled:
            cache = EmbeddingCache(
                max_entries=config.cache_max_entries,
                ttl=config.cache_ttl_seconds,
            )
        return EmbeddingService(self._provider, config, cache=cache, redis_cache=self._redis_cache)

    def _record_stage(self, stage: PipelineStage, started: float) -> None:
        self._metrics.record_stage(stage.value, time.monotonic() - started)

    # ── Run ──────────────────────────────────────────────

    async def run(
        self,
        request: ExtractionRequest,
        progress_callback: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExtractionResult:
        """
        Run the full pipeline for one request.

        Args:
            request: Sources and run parameters.
            progress_callback: Optional sync or async receiver of ProgressEvents.
            cancel_token: Optional cancellation signal for the whole run.

        Returns:
            ExtractionResult with themes ordered by code count (desc), then id.

        Raises:
            InsufficientDataError: Too few valid codes remain to cluster.
            InconsistentDimensionError: Embedding dimensions differ within the run.
            InvalidInputError: Invalid embeddings or parameters.
            PipelineCancelledError: The run was cancelled.
        """
        run_id = uuid.uuid4().hex[:12]
        params = self.resolve_parameters(request)
        bind_context(run_id=run_id)
        try:
            result = await self._run(run_id, request.sources, params, progress_callback, cancel_token)
        except PipelineCancelledError:
            self._metrics.record_run(params.mode.value, "cancelled")
            logger.warning("Run %s cancelled", run_id)
            raise
        except Exception:
            self._metrics.record_run(params.mode.value, "failed")
            logger.exception("Run %s failed", run_id)
            raise
        finally:
            unbind_context("run_id")

        self._metrics.record_run(params.mode.value, "success", len(result.themes))
        return result

    async def _run(
        self,
        run_id: str,
        sources: list[Source],
        params: RunParameters,
        progress_callback: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> ExtractionResult:
        token = cancel_token or CancellationToken()
        reporter = ProgressReporter(progress_callback)
        result = ExtractionResult(run_id=run_id, parameters=params)
        start_time = time.monotonic()
        budget = LLMCallBudget(params.llm_call_budget)
        embeddings = self._embedding_service(params)

        logger.info(
            "Run %s started: %d sources, mode=%s, themes=[%d, %d], budget=%d",
            run_id,
            len(sources),
            params.mode.value,
            params.min_themes,
            params.max_themes,
            params.llm_call_budget,
        )

        # Phase 1: Familiarization
        started = time.monotonic()
        await reporter.emit(PipelineStage.FAMILIARIZATION, f"Reviewing {len(sources)} sources")
        valid_sources = []
        for source in sources:
            if source.text.strip():
                valid_sources.append(source)
            else:
                result.errors.append(f"source:{source.id}: empty text")
        if not valid_sources:
            raise InsufficientDataError("No sources with text to extract codes from", 0, 1)
        result.sources_processed = len(valid_sources)
        self._record_stage(PipelineStage.FAMILIARIZATION, started)
        token.raise_if_cancelled()

        # Phase 2: Coding
        started = time.monotonic()
        await reporter.emit(PipelineStage.CODING, "Extracting codes")
        extraction = await self._extractor.extract(valid_sources, token, params.llm_concurrency)
        result.codes_extracted = len(extraction.codes)
        result.codes_dropped += extraction.codes_dropped
        result.errors.extend(extraction.errors)
        result.errors.extend(f"source:{sid}: skipped after extraction failure" for sid in extraction.skipped_sources)
        await reporter.emit(PipelineStage.CODING, f"Extracted {result.codes_extracted} codes", 1.0)
        self._record_stage(PipelineStage.CODING, started)
        token.raise_if_cancelled()

        if not extraction.codes:
            raise InsufficientDataError("No codes could be extracted from the sources", 0, self._config.min_codes)

        # Phase 3: Enrichment
        started = time.monotonic()
        await reporter.emit(PipelineStage.ENRICHMENT, "Checking code count against target")
        enricher = CodeEnricher(self._llm, embeddings, budget, self._coding_config)
        enrichment = await enricher.enrich(
            extraction.codes,
            valid_sources,
            target=params.max_themes,
            cancel_token=token,
            max_concurrency=params.llm_concurrency,
        )
        codes = enrichment.codes
        result.enrichment_applied = enrichment.applied
        result.codes_after_enrichment = len(codes)
        result.errors.extend(enrichment.errors)
        await reporter.emit(
            PipelineStage.ENRICHMENT,
            f"{len(codes)} codes after enrichment" if enrichment.applied else "Enrichment not applied",
            1.0,
        )
        self._record_stage(PipelineStage.ENRICHMENT, started)
        token.raise_if_cancelled()

        # Phase 4: Embedding + clustering
        started = time.monotonic()
        await reporter.emit(PipelineStage.CLUSTERING, f"Embedding {len(codes)} codes")
        embedded, dropped = await embeddings.embed_codes(codes, token)
        result.codes_embedded = len(embedded)
        result.codes_dropped += len(dropped)
        result.dimension = embeddings.dimension
        result.errors.extend(f"code:{code.id}: embedding failed" for code in dropped)

        if not embedded:
            raise InsufficientDataError("No code received a valid embedding", 0, self._config.min_codes)
        if len(embedded) < self._config.min_codes:
            raise InsufficientDataError(
                f"Only {len(embedded)} codes have valid embeddings; at least "
                f"{self._config.min_codes} are needed",
                len(embedded),
                self._config.min_codes,
            )
        token.raise_if_cancelled()

        await reporter.emit(PipelineStage.CLUSTERING, f"Clustering {len(embedded)} codes", 0.5)
        clustering = self._clustering.cluster(
            embedded,
            params.mode,
            min_themes=params.min_themes,
            max_themes=params.max_themes,
            seed=params.random_seed,
        )
        await reporter.emit(PipelineStage.CLUSTERING, f"{clustering.cluster_count} candidate themes", 1.0)
        self._record_stage(PipelineStage.CLUSTERING, started)
        token.raise_if_cancelled()

        # Phase 5: Diversity enforcement + coherence
        started = time.monotonic()
        await reporter.emit(PipelineStage.DIVERSITY_ENFORCEMENT, "Merging near-duplicate themes")
        diversity = enforce_diversity(clustering.clusters, params.diversity_threshold)
        coherence = validate_coherence(
            diversity.clusters,
            params.min_coherence,
            self._theme_config.coherence_policy,
        )
        clusters = coherence.clusters
        await reporter.emit(
            PipelineStage.DIVERSITY_ENFORCEMENT,
            f"{len(clusters)} themes after merging {diversity.merges} duplicates "
            f"({coherence.flagged} below coherence)",
            1.0,
        )
        self._record_stage(PipelineStage.DIVERSITY_ENFORCEMENT, started)
        token.raise_if_cancelled()

        # Phase 6: Labeling
        started = time.monotonic()
        await reporter.emit(PipelineStage.LABELING, f"Labeling {len(clusters)} themes")
        labeler = ThemeLabeler(self._llm, budget, self._theme_config)
        labeling = await labeler.label(clusters, token, params.llm_concurrency)
        result.errors.extend(labeling.errors)
        for cluster in coherence.rejected:
            apply_fallback_label(cluster)
        await reporter.emit(
            PipelineStage.LABELING,
            f"{labeling.labeled} labeled by model, {labeling.fallback} by representative code",
            1.0,
        )
        self._record_stage(PipelineStage.LABELING, started)
        token.raise_if_cancelled()

        # Phase 7: Provenance
        started = time.monotonic()
        await reporter.emit(PipelineStage.PROVENANCE, "Computing source provenance")
        total_sources = len(valid_sources)
        annotate_provenance(
            clusters + coherence.rejected,
            embedded,
            self._theme_config.provenance_normalization,
            self._theme_config.softmax_temperature,
        )
        result.themes = sorted(
            (Theme.from_cluster(c, source_weight(c, total_sources)) for c in clusters),
            key=lambda t: (-t.code_count, t.id),
        )
        result.rejected_themes = [
            Theme.from_cluster(c, source_weight(c, total_sources)) for c in coherence.rejected
        ]
        result.diversity_metrics = diversity_metrics(clusters, params.diversity_threshold, total_sources)
        result.llm_calls_used = budget.used
        await reporter.emit(PipelineStage.PROVENANCE, f"Produced {len(result.themes)} themes", 1.0)
        self._record_stage(PipelineStage.PROVENANCE, started)

        result.elapsed_seconds = time.monotonic() - start_time
        logger.info(
            "Run %s complete: sources=%d codes=%d enriched=%d embedded=%d themes=%d "
            "rejected=%d llm_calls=%d errors=%d elapsed=%.2fs",
            run_id,
            result.sources_processed,
            result.codes_extracted,
            result.codes_after_enrichment,
            result.codes_embedded,
            len(result.themes),
            len(result.rejected_themes),
            result.llm_calls_used,
            len(result.errors),
            result.elapsed_seconds,
        )
        return result
