"""
k-means with k-means++ seeding.

Seeding picks the first centroid uniformly and each further centroid with
probability proportional to its squared distance from the nearest chosen
centroid. Lloyd iteration then alternates assignment and mean update until
the mean centroid displacement drops below the tolerance. Empty clusters
are refilled from a random member of the currently largest cluster.
"""

import logging
import warnings
from dataclasses import dataclass

import numpy as np

from theme_engine.clustering.metrics import inertia as compute_inertia
from theme_engine.errors import ConvergenceWarning

logger = logging.getLogger(__name__)


@dataclass
class KMeansResult:
    """Final assignment of a k-means run."""

    labels: np.ndarray
    centroids: np.ndarray
    inertia: float
    iterations: int
    converged: bool

    @property
    def k(self) -> int:
        return len(self.centroids)


def _squared_distances(data: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """(n, k) squared Euclidean distances without materializing (n, k, d)."""
    data_sq = np.sum(data * data, axis=1)[:, None]
    cen_sq = np.sum(centroids * centroids, axis=1)[None, :]
    return np.maximum(data_sq - 2.0 * data @ centroids.T + cen_sq, 0.0)


def kmeans_plus_plus(data: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    Choose ``k`` initial centroids with k-means++ seeding.

    Args:
        data: (n, dim) points.
        k: Number of centroids (1 <= k <= n).
        rng: Random generator.

    Returns:
        (k, dim) centroid matrix (copies of data points).
    """
    n = len(data)
    chosen = [int(rng.integers(n))]
    closest = _squared_distances(data, data[chosen[0]][None, :])[:, 0]

    while len(chosen) < k:
        total = closest.sum()
        if total <= 0:
            # Remaining points coincide with chosen centroids
            remaining = np.setdiff1d(np.arange(n), chosen)
            idx = int(rng.choice(remaining))
        else:
            idx = int(rng.choice(n, p=closest / total))
        chosen.append(idx)
        closest = np.minimum(closest, _squared_distances(data, data[idx][None, :])[:, 0])

    return data[chosen].copy()


def _fill_empty_clusters(labels: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """Move a random member of the largest cluster into each empty cluster."""
    counts = np.bincount(labels, minlength=k)
    for j in np.flatnonzero(counts == 0):
        largest = int(np.argmax(counts))
        if counts[largest] <= 1:
            break
        members = np.flatnonzero(labels == largest)
        pick = int(rng.choice(members))
        labels[pick] = j
        counts[largest] -= 1
        counts[j] += 1
        logger.debug("Reseeded empty cluster %d from cluster %d", j, largest)
    return labels


def _update_centroids(data: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    centroids = np.zeros((k, data.shape[1]), dtype=np.float64)
    np.add.at(centroids, labels, data)
    counts = np.bincount(labels, minlength=k).astype(np.float64)
    counts[counts == 0] = 1.0
    return centroids / counts[:, None]


def kmeans(
    data: np.ndarray,
    k: int,
    *,
    max_iterations: int = 100,
    tolerance: float = 1e-3,
    rng: np.random.Generator | None = None,
    warn_on_nonconvergence: bool = True,
) -> KMeansResult:
    """
    Cluster ``data`` into ``k`` groups.

    Args:
        data: (n, dim) points.
        k: Requested cluster count; reduced to n when larger.
        max_iterations: Lloyd iteration cap.
        tolerance: Converged when mean centroid displacement < tolerance.
        rng: Random generator (a fresh unseeded one if None).
        warn_on_nonconvergence: Emit ConvergenceWarning when the cap is hit.

    Returns:
        KMeansResult with labels, centroids (member means) and inertia.

    Raises:
        ValueError: If data is empty or k < 1.
    """
    if len(data) == 0:
        raise ValueError("Cannot cluster an empty dataset")
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")

    rng = rng or np.random.default_rng()
    data = np.asarray(data, dtype=np.float64)
    k = min(k, len(data))

    centroids = kmeans_plus_plus(data, k, rng)
    labels = np.zeros(len(data), dtype=np.int64)
    converged = False
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        labels = np.argmin(_squared_distances(data, centroids), axis=1)
        labels = _fill_empty_clusters(labels, k, rng)
        updated = _update_centroids(data, labels, k)
        shift = float(np.mean(np.linalg.norm(updated - centroids, axis=1)))
        centroids = updated
        if shift < tolerance:
            converged = True
            break

    if not converged:
        message = f"k-means (k={k}) did not converge within {max_iterations} iterations"
        if warn_on_nonconvergence:
            warnings.warn(message, ConvergenceWarning, stacklevel=2)
            logger.warning("%s; using best available assignment", message)
        else:
            logger.debug(message)

    return KMeansResult(
        labels=labels,
        centroids=centroids,
        inertia=compute_inertia(data, labels, centroids),
        iterations=iterations,
        converged=converged,
    )
