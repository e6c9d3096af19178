"""
Adaptive choice of the cluster count for breadth mode.

Candidate k values are sampled across [k_min, k_max] at a coarse stride.
Each candidate gets a reduced-iteration k-means run scored by inertia,
silhouette and Davies-Bouldin. The inertia elbow, the best-silhouette k and
the best-Davies-Bouldin k are combined by weighted vote.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.kmeans import kmeans
from theme_engine.clustering.metrics import elbow_index, safe_davies_bouldin, safe_silhouette

logger = logging.getLogger(__name__)


@dataclass
class KSelection:
    """Chosen k with the evidence behind it."""

    k: int
    candidates: list[int] = field(default_factory=list)
    inertias: dict[int, float] = field(default_factory=dict)
    silhouettes: dict[int, float] = field(default_factory=dict)
    davies_bouldin: dict[int, float] = field(default_factory=dict)
    elbow_k: int | None = None
    silhouette_k: int | None = None
    davies_bouldin_k: int | None = None


def candidate_ks(k_min: int, k_max: int, min_stride: int = 5, divisor: int = 10) -> list[int]:
    """Coarse grid of k values from k_min to k_max, always including k_max."""
    if k_max <= k_min:
        return [k_min]
    stride = max(min_stride, (k_max - k_min) // divisor)
    ks = list(range(k_min, k_max + 1, stride))
    if ks[-1] != k_max:
        ks.append(k_max)
    return ks


def select_k(
    data: np.ndarray,
    k_min: int,
    k_max: int,
    config: ClusteringConfig | None = None,
    rng: np.random.Generator | None = None,
) -> KSelection:
    """
    Choose a cluster count in [k_min, min(k_max, n)].

    With fewer points than k_min every point becomes its own cluster
    (k = n). Failed or unscorable trials drop out of the vote; if every
    signal is missing the midpoint of the range is used.

    Args:
        data: (n, dim) embeddings.
        k_min: Smallest acceptable k (>= 1).
        k_max: Largest acceptable k (>= k_min).
        config: Clustering configuration.
        rng: Random generator for the trial runs.

    Returns:
        KSelection with the chosen k.
    """
    config = config or ClusteringConfig()
    rng = rng or np.random.default_rng(config.random_seed)
    n = len(data)

    if k_min < 1 or k_max < k_min:
        raise ValueError(f"Invalid k range [{k_min}, {k_max}]")
    if n < k_min:
        logger.info("Only %d codes for k_min=%d; using k=%d", n, k_min, n)
        return KSelection(k=n)

    upper = min(k_max, n)
    if upper == k_min:
        return KSelection(k=k_min, candidates=[k_min])

    selection = KSelection(k=(k_min + upper) // 2)
    selection.candidates = candidate_ks(k_min, upper, config.min_stride, config.stride_divisor)

    for k in selection.candidates:
        try:
            result = kmeans(
                data,
                k,
                max_iterations=config.selection_max_iterations,
                tolerance=config.tolerance,
                rng=rng,
                warn_on_nonconvergence=False,
            )
        except ValueError as e:
            logger.debug("k=%d trial failed: %s", k, e)
            continue

        selection.inertias[k] = result.inertia
        silhouette = safe_silhouette(data, result.labels)
        if silhouette is not None:
            selection.silhouettes[k] = silhouette
        db = safe_davies_bouldin(data, result.labels)
        if db is not None:
            selection.davies_bouldin[k] = db

    scored_ks = [k for k in selection.candidates if k in selection.inertias]
    elbow = elbow_index([selection.inertias[k] for k in scored_ks])
    if elbow is not None:
        selection.elbow_k = scored_ks[elbow]
    if selection.silhouettes:
        selection.silhouette_k = max(selection.silhouettes, key=lambda k: (selection.silhouettes[k], -k))
    if selection.davies_bouldin:
        selection.davies_bouldin_k = min(selection.davies_bouldin, key=lambda k: (selection.davies_bouldin[k], k))

    votes = [
        (selection.elbow_k, config.elbow_weight),
        (selection.silhouette_k, config.silhouette_weight),
        (selection.davies_bouldin_k, config.davies_bouldin_weight),
    ]
    votes = [(k, w) for k, w in votes if k is not None and w > 0]
    total_weight = sum(w for _, w in votes)

    if total_weight > 0:
        voted = round(sum(k * w for k, w in votes) / total_weight)
        selection.k = int(min(max(voted, k_min), upper))
    else:
        logger.warning("No k-selection signal available; using midpoint k=%d", selection.k)

    logger.info(
        "Selected k=%d from %d candidates (elbow=%s, silhouette=%s, davies_bouldin=%s)",
        selection.k,
        len(selection.candidates),
        selection.elbow_k,
        selection.silhouette_k,
        selection.davies_bouldin_k,
    )
    return selection
