"""
Coherence scoring for clusters.

Coherence is the mean cosine similarity over all C(n, 2) member pairs. The
quadratic cost per cluster is acceptable at typical theme sizes (tens of
codes). A single-member cluster scores 1.0.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from theme_engine.clustering.metrics import cosine_similarity_matrix
from theme_engine.clustering.schemas import Cluster

logger = logging.getLogger(__name__)


@dataclass
class CoherenceResult:
    clusters: list[Cluster]
    rejected: list[Cluster] = field(default_factory=list)
    flagged: int = 0


def coherence_score(embeddings: np.ndarray) -> float:
    """Mean pairwise cosine similarity of the rows of ``embeddings``."""
    n = len(embeddings)
    if n < 2:
        return 1.0
    sim = cosine_similarity_matrix(embeddings)
    return float(sim[np.triu_indices(n, k=1)].mean())


def validate_coherence(
    clusters: list[Cluster],
    min_coherence: float,
    policy: str = "flag",
) -> CoherenceResult:
    """
    Score every cluster and apply the low-coherence policy.

    Args:
        clusters: Clusters to score (annotated in place).
        min_coherence: Minimum acceptable coherence.
        policy: "flag" keeps low-coherence clusters with ``below_coherence``
            set; "reject" moves them to ``rejected``.

    Returns:
        CoherenceResult with kept and rejected clusters.
    """
    if policy not in ("flag", "reject"):
        raise ValueError(f"Unknown coherence policy: {policy}")

    result = CoherenceResult(clusters=[])
    for cluster in clusters:
        cluster.coherence_score = coherence_score(cluster.embeddings())
        cluster.below_coherence = cluster.coherence_score < min_coherence

        if not cluster.below_coherence:
            result.clusters.append(cluster)
            continue

        result.flagged += 1
        if policy == "reject":
            result.rejected.append(cluster)
        else:
            result.clusters.append(cluster)
        logger.warning(
            "Cluster %s below coherence threshold (%.3f < %.3f, %d codes)%s",
            cluster.cluster_id,
            cluster.coherence_score,
            min_coherence,
            cluster.size,
            "; rejected" if policy == "reject" else "",
        )
    return result
