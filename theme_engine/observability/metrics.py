"""
Prometheus metrics for monitoring theme extraction runs.

Defines and exposes metrics for:
- Stage latency across the pipeline
- Language-model call volume and outcomes
- Embedding cache effectiveness
- Codes dropped along the way
- Themes produced per run

Metrics are exposed via HTTP endpoint for Prometheus scraping when the
CLI is started with metrics enabled.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from theme_engine.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for stage latency histograms (in seconds)
STAGE_BUCKETS = (0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the theme-engine pipeline.

    Usage:
        metrics = get_metrics()
        metrics.record_stage("clustering", 1.42)
        metrics.record_llm_call("enrichment", "success")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.stage_latency = Histogram(
            "theme_engine_stage_latency_seconds",
            "Time spent in each pipeline stage",
            ["stage"],
            buckets=STAGE_BUCKETS,
        )

        self.llm_calls = Counter(
            "theme_engine_llm_calls_total",
            "Language-model calls issued",
            ["operation", "status"],  # status: success, error, budget_exhausted
        )

        self.embedding_cache = Counter(
            "theme_engine_embedding_cache_total",
            "Embedding cache lookups",
            ["result"],  # hit, miss
        )

        self.embedding_failures = Counter(
            "theme_engine_embedding_failures_total",
            "Embeddings that failed after all retries",
        )

        self.codes_dropped = Counter(
            "theme_engine_codes_dropped_total",
            "Codes dropped before clustering",
            ["reason"],  # not_grounded, embedding_failed, ungrounded_split
        )

        self.themes_produced = Histogram(
            "theme_engine_themes_per_run",
            "Number of themes produced per run",
            ["mode"],
            buckets=(1, 5, 10, 20, 40, 60, 80, 120, 200),
        )

        self.runs = Counter(
            "theme_engine_runs_total",
            "Pipeline runs by outcome",
            ["mode", "status"],  # status: success, failed, cancelled
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    # Convenience methods

    def record_stage(self, stage: str, latency: float) -> None:
        """
        Record how long a pipeline stage took.

        Args:
            stage: Stage name (e.g., "clustering")
            latency: Duration in seconds
        """
        self.stage_latency.labels(stage=stage).observe(latency)

    def record_llm_call(self, operation: str, status: str) -> None:
        """
        Record a language-model call outcome.

        Args:
            operation: extraction, enrichment or labeling
            status: success, error or budget_exhausted
        """
        self.llm_calls.labels(operation=operation, status=status).inc()

    def record_cache_lookup(self, hit: bool) -> None:
        """Record an embedding cache hit or miss."""
        self.embedding_cache.labels(result="hit" if hit else "miss").inc()

    def record_embedding_failure(self, count: int = 1) -> None:
        """Record embeddings that could not be produced."""
        self.embedding_failures.inc(count)

    def record_codes_dropped(self, reason: str, count: int = 1) -> None:
        """
        Record codes dropped before clustering.

        Args:
            reason: Why the codes were dropped
            count: Number of codes
        """
        if count > 0:
            self.codes_dropped.labels(reason=reason).inc(count)

    def record_run(self, mode: str, status: str, themes: int = 0) -> None:
        """
        Record a finished pipeline run.

        Args:
            mode: Clustering mode used for the run
            status: success, failed or cancelled
            themes: Number of themes produced (successful runs only)
        """
        self.runs.labels(mode=mode, status=status).inc()
        if status == "success":
            self.themes_produced.labels(mode=mode).observe(themes)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
