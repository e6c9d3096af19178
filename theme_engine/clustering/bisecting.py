"""
Adaptive bisecting for breadth mode.

When k-means settles on noticeably fewer clusters than the target, the
loosest large cluster (highest size x variance) is split with a two-way
k-means. A split is kept only if the Davies-Bouldin index of the whole
clustering does not degrade beyond a tolerance; otherwise that cluster is
marked unsplittable and the next candidate is tried.
"""

import logging
from dataclasses import dataclass

import numpy as np

from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.kmeans import kmeans
from theme_engine.clustering.metrics import safe_davies_bouldin
from theme_engine.clustering.schemas import Cluster

logger = logging.getLogger(__name__)


@dataclass
class BisectStats:
    attempts: int = 0
    accepted: int = 0
    rejected: int = 0


def clustering_davies_bouldin(clusters: list[Cluster]) -> float | None:
    """Davies-Bouldin index of a clustering over all member embeddings."""
    data = np.vstack([c.embeddings() for c in clusters])
    labels = np.concatenate([np.full(c.size, i) for i, c in enumerate(clusters)])
    return safe_davies_bouldin(data, labels)


def _split(cluster: Cluster, config: ClusteringConfig, rng: np.random.Generator) -> tuple[Cluster, Cluster] | None:
    result = kmeans(
        cluster.embeddings(),
        2,
        max_iterations=config.bisect_split_iterations,
        tolerance=config.tolerance,
        rng=rng,
        warn_on_nonconvergence=False,
    )
    left = [code for code, label in zip(cluster.codes, result.labels) if label == 0]
    right = [code for code, label in zip(cluster.codes, result.labels) if label == 1]
    if not left or not right:
        return None
    return Cluster.from_codes(left), Cluster.from_codes(right)


def bisect_clusters(
    clusters: list[Cluster],
    target: int,
    k_max: int,
    config: ClusteringConfig | None = None,
    rng: np.random.Generator | None = None,
) -> tuple[list[Cluster], BisectStats]:
    """
    Split clusters toward ``target`` without exceeding ``k_max``.

    Runs only when ``len(clusters) < target * bisect_trigger_ratio``.

    Args:
        clusters: Current clustering.
        target: Desired cluster count.
        k_max: Hard upper bound on the cluster count.
        config: Clustering configuration.
        rng: Random generator for the two-way splits.

    Returns:
        (new clustering, bisect statistics)
    """
    config = config or ClusteringConfig()
    rng = rng or np.random.default_rng(config.random_seed)
    stats = BisectStats()

    if len(clusters) >= target * config.bisect_trigger_ratio:
        return clusters, stats

    limit = min(target, k_max)
    max_attempts = target * config.max_bisect_attempts_factor
    unsplittable: set[str] = set()
    current = list(clusters)

    while len(current) < limit and stats.attempts < max_attempts:
        candidates = [
            c for c in current if c.size >= 2 and c.cluster_id not in unsplittable
        ]
        scored = [(c.size * c.variance(), c) for c in candidates]
        scored = [(score, c) for score, c in scored if score > 0]
        if not scored:
            break

        _, candidate = max(scored, key=lambda item: (item[0], item[1].cluster_id))
        stats.attempts += 1

        halves = _split(candidate, config, rng)
        if halves is None:
            unsplittable.add(candidate.cluster_id)
            stats.rejected += 1
            continue

        proposed = [c for c in current if c is not candidate] + list(halves)
        old_db = clustering_davies_bouldin(current)
        new_db = clustering_davies_bouldin(proposed)

        if old_db is None or new_db is None or old_db == 0 or new_db <= old_db * config.bisect_db_tolerance:
            current = proposed
            stats.accepted += 1
            logger.debug(
                "Split %s (size %d): DB %s -> %s",
                candidate.cluster_id,
                candidate.size,
                old_db,
                new_db,
            )
        else:
            unsplittable.add(candidate.cluster_id)
            stats.rejected += 1

    logger.info(
        "Bisecting: %d -> %d clusters (%d attempts, %d accepted)",
        len(clusters),
        len(current),
        stats.attempts,
        stats.accepted,
    )
    return current, stats
