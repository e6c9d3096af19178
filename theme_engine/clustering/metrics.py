"""
Vector math and cluster-quality metrics.

Cosine similarity is computed by normalized matrix multiply. Silhouette and
Davies-Bouldin come from scikit-learn; they are only defined for
2 <= n_labels <= n_samples - 1, and outside that range this module returns
None instead of raising.
"""

import numpy as np
from sklearn.metrics import davies_bouldin_score, silhouette_score


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize each row; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1.0, norms)
    return matrix / norms


def cosine_similarity_matrix(a: np.ndarray, b: np.ndarray | None = None) -> np.ndarray:
    """
    Pairwise cosine similarity between the rows of ``a`` and ``b``.

    Args:
        a: (n, dim) matrix.
        b: (m, dim) matrix; defaults to ``a``.

    Returns:
        (n, m) similarity matrix with values in [-1, 1].
    """
    a_normalized = normalize_rows(a)
    b_normalized = a_normalized if b is None else normalize_rows(b)
    return np.clip(a_normalized @ b_normalized.T, -1.0, 1.0)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity between two vectors (0.0 if either is zero)."""
    a_norm = np.linalg.norm(a)
    b_norm = np.linalg.norm(b)
    if a_norm == 0 or b_norm == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / (a_norm * b_norm), -1.0, 1.0))


def inertia(data: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> float:
    """Within-cluster sum of squared Euclidean distances."""
    diffs = data - centroids[labels]
    return float(np.sum(diffs * diffs))


def _valid_label_count(data: np.ndarray, labels: np.ndarray) -> bool:
    n_labels = len(np.unique(labels))
    return 2 <= n_labels <= len(data) - 1


def safe_silhouette(data: np.ndarray, labels: np.ndarray) -> float | None:
    """Mean silhouette coefficient, or None when undefined."""
    if not _valid_label_count(data, labels):
        return None
    return float(silhouette_score(data, labels, metric="euclidean"))


def safe_davies_bouldin(data: np.ndarray, labels: np.ndarray) -> float | None:
    """Davies-Bouldin index, or None when undefined."""
    if not _valid_label_count(data, labels):
        return None
    return float(davies_bouldin_score(data, labels))


def elbow_index(values: list[float]) -> int | None:
    """
    Index of the point with the largest absolute second discrete difference.

    Returns None with fewer than three points.
    """
    if len(values) < 3:
        return None
    second = np.abs(np.diff(np.asarray(values, dtype=np.float64), n=2))
    # diff(n=2)[i] is centred on values[i + 1]
    return int(np.argmax(second)) + 1
