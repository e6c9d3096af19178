"""
Clustering engine: groups embedded codes into candidate themes.

Two strategies, chosen per run with ClusteringMode:

- BREADTH: adaptive k selection over [min_themes, max_themes], a full
  k-means++ run at the chosen k, then adaptive bisecting when the result
  falls well short of the target. Never exceeds max_themes: any overshoot
  is merged down first, and bisecting stops at max_themes.
- DEPTH: agglomerative merging from one cluster per code down to
  max_themes, favouring tight clusters over count.

All math is synchronous, in-memory and deterministic for a fixed seed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from theme_engine.clustering.bisecting import BisectStats, bisect_clusters
from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.hierarchical import agglomerative_merge
from theme_engine.clustering.kmeans import kmeans
from theme_engine.clustering.schemas import Cluster, ClusteringMode
from theme_engine.clustering.selection import KSelection, select_k
from theme_engine.coding.schemas import Code
from theme_engine.errors import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class ClusteringResult:
    """Clusters produced by one clustering pass."""

    clusters: list[Cluster]
    mode: ClusteringMode
    selection: KSelection | None = None
    bisect: BisectStats = field(default_factory=BisectStats)
    converged: bool = True
    iterations: int = 0

    @property
    def cluster_count(self) -> int:
        return len(self.clusters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "cluster_count": self.cluster_count,
            "selected_k": self.selection.k if self.selection else None,
            "bisect_attempts": self.bisect.attempts,
            "bisect_accepted": self.bisect.accepted,
            "converged": self.converged,
            "iterations": self.iterations,
        }


def clusters_from_labels(codes: Sequence[Code], labels: np.ndarray) -> list[Cluster]:
    """Group codes by label into clusters, skipping empty labels."""
    groups: dict[int, list[Code]] = {}
    for code, label in zip(codes, labels):
        groups.setdefault(int(label), []).append(code)
    return [Cluster.from_codes(groups[label]) for label in sorted(groups)]


class ClusteringService:
    """
    Clusters embedded codes in breadth or depth mode.

    Usage:
        service = ClusteringService()
        result = service.cluster(codes, ClusteringMode.BREADTH, min_themes=30, max_themes=80)
    """

    def __init__(self, config: ClusteringConfig | None = None):
        self._config = config or ClusteringConfig()

    @property
    def config(self) -> ClusteringConfig:
        return self._config

    def _validate(self, codes: Sequence[Code], min_themes: int, max_themes: int) -> np.ndarray:
        if not codes:
            raise InvalidInputError("No embedded codes to cluster")
        if min_themes < 1 or max_themes < min_themes:
            raise InvalidInputError(f"Invalid theme range [{min_themes}, {max_themes}]")
        missing = [c.id for c in codes if c.embedding is None]
        if missing:
            raise InvalidInputError(f"{len(missing)} codes have no embedding (e.g. {missing[0]})")
        dims = {c.embedding.shape[0] for c in codes}
        if len(dims) != 1:
            raise InvalidInputError(f"Codes carry embeddings of several dimensions: {sorted(dims)}")
        return np.vstack([c.embedding for c in codes])

    def _cluster_breadth(
        self,
        codes: Sequence[Code],
        data: np.ndarray,
        min_themes: int,
        max_themes: int,
        rng: np.random.Generator,
    ) -> ClusteringResult:
        selection = select_k(data, min_themes, max_themes, self._config, rng)
        km = kmeans(
            data,
            selection.k,
            max_iterations=self._config.max_iterations,
            tolerance=self._config.tolerance,
            rng=rng,
        )
        clusters = clusters_from_labels(codes, km.labels)
        result = ClusteringResult(
            clusters=clusters,
            mode=ClusteringMode.BREADTH,
            selection=selection,
            converged=km.converged,
            iterations=km.iterations,
        )

        if len(clusters) > max_themes:
            result.clusters = agglomerative_merge(clusters, max_themes)
        elif self._config.bisect_enabled:
            result.clusters, result.bisect = bisect_clusters(
                clusters,
                target=max_themes,
                k_max=max_themes,
                config=self._config,
                rng=rng,
            )
        return result

    def _cluster_depth(self, codes: Sequence[Code], max_themes: int) -> ClusteringResult:
        singletons = [Cluster.from_codes([code]) for code in codes]
        clusters = agglomerative_merge(
            singletons,
            max_themes,
            warn_above=self._config.ann_warning_threshold,
        )
        return ClusteringResult(clusters=clusters, mode=ClusteringMode.DEPTH)

    def cluster(
        self,
        codes: Sequence[Code],
        mode: ClusteringMode = ClusteringMode.BREADTH,
        min_themes: int | None = None,
        max_themes: int | None = None,
        seed: int | None = None,
    ) -> ClusteringResult:
        """
        Cluster embedded codes.

        Args:
            codes: Codes with embeddings of one shared dimension.
            mode: BREADTH or DEPTH.
            min_themes: Lower end of the theme-count range (default config.k_min).
            max_themes: Upper end of the theme-count range (default config.k_max).
            seed: Random seed (default config.random_seed).

        Returns:
            ClusteringResult; every code is in exactly one cluster.

        Raises:
            InvalidInputError: No codes, missing embeddings or a bad range.
        """
        min_themes = min_themes if min_themes is not None else self._config.k_min
        max_themes = max_themes if max_themes is not None else self._config.k_max
        data = self._validate(codes, min_themes, max_themes)
        mode = ClusteringMode(mode)

        logger.info(
            "Clustering %d codes (mode=%s, range=[%d, %d])",
            len(codes),
            mode.value,
            min_themes,
            max_themes,
        )

        if mode is ClusteringMode.DEPTH:
            result = self._cluster_depth(codes, max_themes)
        else:
            rng = np.random.default_rng(self._config.random_seed if seed is None else seed)
            result = self._cluster_breadth(codes, data, min_themes, max_themes, rng)

        logger.info("Clustering produced %d clusters", result.cluster_count)
        return result

    def get_stats(self) -> dict[str, Any]:
        return {
            "k_min": self._config.k_min,
            "k_max": self._config.k_max,
            "random_seed": self._config.random_seed,
            "bisect_enabled": self._config.bisect_enabled,
        }
