"""
Agglomerative merging by centroid cosine similarity.

Depth mode starts from one cluster per code and repeatedly merges the two
clusters whose centroids are most similar until at most ``max_clusters``
remain. The same routine merges an overshooting breadth clustering down to
k_max. The similarity matrix is kept between merges and only the merged
cluster's row is recomputed, which makes each step O(n * d) after an
O(n^2) argmax; the whole pass is O(n^3) worst case.
"""

import logging

import numpy as np

from theme_engine.clustering.metrics import cosine_similarity_matrix
from theme_engine.clustering.schemas import Cluster

logger = logging.getLogger(__name__)


def agglomerative_merge(
    clusters: list[Cluster],
    max_clusters: int,
    warn_above: int | None = None,
) -> list[Cluster]:
    """
    Merge the most similar pair of clusters until ``len <= max_clusters``.

    Args:
        clusters: Starting clusters (not modified).
        max_clusters: Target maximum (>= 1).
        warn_above: Log a scalability warning when starting from more clusters.

    Returns:
        Merged clusters, in the order of their first surviving member.
    """
    if max_clusters < 1:
        raise ValueError(f"max_clusters must be >= 1, got {max_clusters}")
    if len(clusters) <= max_clusters:
        return list(clusters)

    n = len(clusters)
    if warn_above is not None and n > warn_above:
        logger.warning(
            "Agglomerative merging over %d clusters is O(n^3); consider an approximate "
            "nearest-neighbour index for inputs this large",
            n,
        )

    current: list[Cluster] = list(clusters)
    centroids = np.vstack([c.centroid for c in current])
    sim = cosine_similarity_matrix(centroids)
    np.fill_diagonal(sim, -np.inf)
    active = np.ones(n, dtype=bool)
    remaining = n

    while remaining > max_clusters:
        flat = int(np.argmax(sim))
        i, j = divmod(flat, n)
        if i > j:
            i, j = j, i

        current[i] = current[i].merge(current[j])
        active[j] = False
        sim[j, :] = -np.inf
        sim[:, j] = -np.inf
        remaining -= 1

        centroids[i] = current[i].centroid
        row = cosine_similarity_matrix(centroids[i][None, :], centroids)[0]
        row[~active] = -np.inf
        row[i] = -np.inf
        sim[i, :] = row
        sim[:, i] = row

    merged = [current[idx] for idx in range(n) if active[idx]]
    logger.info("Agglomerative merging: %d -> %d clusters", n, len(merged))
    return merged
