"""
Diversity enforcement: merging near-duplicate clusters.

Clusters form an undirected graph with an edge wherever two centroids have
cosine similarity at or above the diversity threshold. Cliques are grown
greedily from the highest-degree seeds, and each clique collapses into one
cluster. Merging moves centroids, so the pass repeats until the graph has
no edges left; afterwards every pair of clusters is below the threshold.
"""

import logging
from dataclasses import dataclass
from functools import reduce
from typing import Any

import numpy as np

from theme_engine.clustering.bisecting import clustering_davies_bouldin
from theme_engine.clustering.metrics import cosine_similarity_matrix
from theme_engine.clustering.schemas import Cluster

logger = logging.getLogger(__name__)


@dataclass
class DiversityResult:
    clusters: list[Cluster]
    merges: int = 0
    rounds: int = 0


def similarity_graph(clusters: list[Cluster], threshold: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Centroid similarity matrix and boolean adjacency (no self-loops).

    Returns:
        (similarity, adjacency), both (n, n).
    """
    centroids = np.vstack([c.centroid for c in clusters])
    sim = cosine_similarity_matrix(centroids)
    adjacency = sim >= threshold
    np.fill_diagonal(adjacency, False)
    return sim, adjacency


def find_cliques(sim: np.ndarray, adjacency: np.ndarray) -> list[list[int]]:
    """
    Greedy grow-from-seed cliques of size >= 2.

    Seeds are visited by descending degree. A clique grows by the unassigned
    vertex adjacent to every current member with the highest mean similarity
    to them. Each vertex joins at most one clique.
    """
    n = len(adjacency)
    degree = adjacency.sum(axis=1)
    order = sorted(range(n), key=lambda i: (-int(degree[i]), i))
    assigned = np.zeros(n, dtype=bool)
    cliques: list[list[int]] = []

    for seed in order:
        if assigned[seed] or degree[seed] == 0:
            continue
        clique = [seed]
        while True:
            candidates = ~assigned & adjacency[:, clique].all(axis=1)
            candidates[clique] = False
            if not candidates.any():
                break
            idx = np.flatnonzero(candidates)
            scores = sim[np.ix_(idx, clique)].mean(axis=1)
            clique.append(int(idx[int(np.argmax(scores))]))

        if len(clique) >= 2:
            assigned[clique] = True
            cliques.append(sorted(clique))
    return cliques


def enforce_diversity(clusters: list[Cluster], threshold: float) -> DiversityResult:
    """
    Merge clusters until no two centroids reach ``threshold`` similarity.

    Args:
        clusters: Candidate clusters (not modified).
        threshold: Cosine similarity at or above which clusters are redundant.

    Returns:
        DiversityResult with the merged clusters.
    """
    result = DiversityResult(clusters=list(clusters))

    while len(result.clusters) >= 2:
        sim, adjacency = similarity_graph(result.clusters, threshold)
        if not adjacency.any():
            break

        cliques = find_cliques(sim, adjacency)
        result.rounds += 1
        merged_into: dict[int, Cluster] = {}
        absorbed: set[int] = set()
        for clique in cliques:
            members = [result.clusters[i] for i in clique]
            merged_into[clique[0]] = reduce(lambda a, b: a.merge(b), members)
            absorbed.update(clique[1:])
            result.merges += len(clique) - 1

        result.clusters = [
            merged_into.get(i, cluster)
            for i, cluster in enumerate(result.clusters)
            if i not in absorbed
        ]

    if result.merges:
        logger.info(
            "Diversity enforcement merged %d clusters in %d rounds (%d remain)",
            result.merges,
            result.rounds,
            len(result.clusters),
        )
    return result


def diversity_metrics(
    clusters: list[Cluster],
    threshold: float,
    total_sources: int,
) -> dict[str, Any]:
    """
    Summary of how distinct a set of clusters is.

    Returns:
        Dict with theme_count, avg/max pairwise centroid similarity,
        redundant_pairs (at or above threshold), davies_bouldin (None when
        undefined) and source_coverage (% of sources represented).
    """
    metrics: dict[str, Any] = {
        "theme_count": len(clusters),
        "avg_pairwise_similarity": 0.0,
        "max_pairwise_similarity": 0.0,
        "redundant_pairs": 0,
        "davies_bouldin": None,
        "source_coverage": 0.0,
    }
    if not clusters:
        return metrics

    if len(clusters) >= 2:
        sim, adjacency = similarity_graph(clusters, threshold)
        upper = sim[np.triu_indices(len(clusters), k=1)]
        metrics["avg_pairwise_similarity"] = float(np.mean(upper))
        metrics["max_pairwise_similarity"] = float(np.max(upper))
        metrics["redundant_pairs"] = int(np.triu(adjacency, k=1).sum())
        metrics["davies_bouldin"] = clustering_davies_bouldin(clusters)

    covered = {sid for c in clusters for sid in c.source_ids}
    if total_sources > 0:
        metrics["source_coverage"] = round(100.0 * len(covered) / total_sources, 2)
    return metrics
