"""
Per-theme source provenance.

Each source is represented by the mean embedding of all its codes in the
run. A theme's provenance compares that aggregate with the theme centroid
for every source contributing at least one member code, and normalizes the
similarities into weights in [0, 1] that sum to 1. Sources are referenced
by ID only.
"""

import logging
from typing import Sequence

import numpy as np

from theme_engine.clustering.metrics import cosine_similarity_matrix
from theme_engine.clustering.schemas import Cluster
from theme_engine.coding.schemas import Code

logger = logging.getLogger(__name__)


def source_aggregates(codes: Sequence[Code]) -> dict[str, np.ndarray]:
    """Mean code embedding per source ID (codes without embeddings are ignored)."""
    grouped: dict[str, list[np.ndarray]] = {}
    for code in codes:
        if code.embedding is not None:
            grouped.setdefault(code.source_id, []).append(code.embedding)
    return {sid: np.mean(np.vstack(vectors), axis=0) for sid, vectors in grouped.items()}


def normalize_weights(
    similarities: np.ndarray,
    method: str = "sum",
    temperature: float = 0.1,
) -> np.ndarray:
    """
    Turn similarities into weights in [0, 1] summing to 1.

    ``sum`` clips negatives to zero and divides by the total (uniform when
    everything is zero); ``softmax`` applies a temperature-scaled softmax.
    """
    n = len(similarities)
    if n == 0:
        return similarities
    if method == "softmax":
        scaled = (similarities - np.max(similarities)) / temperature
        exp = np.exp(scaled)
        return exp / exp.sum()
    if method != "sum":
        raise ValueError(f"Unknown normalization: {method}")

    clipped = np.clip(similarities, 0.0, None)
    total = clipped.sum()
    if total <= 0:
        return np.full(n, 1.0 / n)
    return clipped / total


def compute_provenance(
    cluster: Cluster,
    aggregates: dict[str, np.ndarray],
    method: str = "sum",
    temperature: float = 0.1,
) -> dict[str, float]:
    """
    Provenance weights for one cluster.

    Args:
        cluster: Cluster with member codes and centroid.
        aggregates: Source ID -> aggregate embedding (see source_aggregates).
        method: "sum" or "softmax".
        temperature: Softmax temperature.

    Returns:
        Source ID -> weight for each contributing source.
    """
    source_ids = [sid for sid in cluster.source_ids if sid in aggregates]
    if not source_ids:
        return {}
    matrix = np.vstack([aggregates[sid] for sid in source_ids])
    sims = cosine_similarity_matrix(matrix, cluster.centroid[None, :])[:, 0]
    weights = normalize_weights(sims, method, temperature)
    return {sid: float(w) for sid, w in zip(source_ids, weights)}


def source_weight(cluster: Cluster, total_sources: int) -> float:
    """Share of all sources that contribute at least one code to ``cluster``."""
    if total_sources <= 0:
        return 0.0
    return len(cluster.source_ids) / total_sources


def annotate_provenance(
    clusters: Sequence[Cluster],
    codes: Sequence[Code],
    method: str = "sum",
    temperature: float = 0.1,
) -> None:
    """Set ``provenance`` on every cluster from the run's embedded codes."""
    aggregates = source_aggregates(codes)
    for cluster in clusters:
        cluster.provenance = compute_provenance(cluster, aggregates, method, temperature)
    logger.debug("Provenance computed for %d clusters over %d sources", len(clusters), len(aggregates))
