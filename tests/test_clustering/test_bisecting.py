"""Tests for adaptive bisecting."""

import numpy as np

from theme_engine.clustering.bisecting import bisect_clusters, clustering_davies_bouldin
from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.schemas import Cluster


class TestClusteringDaviesBouldin:
    def test_single_cluster_undefined(self, separable_codes):
        assert clustering_davies_bouldin([Cluster.from_codes(separable_codes)]) is None

    def test_separated_clusters_score_low(self, separable_codes):
        clusters = [Cluster.from_codes(separable_codes[i : i + 5]) for i in (0, 5, 10)]
        mixed = [
            Cluster.from_codes(separable_codes[0:3] + separable_codes[5:7]),
            Cluster.from_codes(separable_codes[3:5] + separable_codes[10:13]),
            Cluster.from_codes(separable_codes[7:10] + separable_codes[13:15]),
        ]
        assert clustering_davies_bouldin(clusters) < clustering_davies_bouldin(mixed)


class TestBisectClusters:
    """Test splitting toward the target."""

    def test_splits_merged_groups(self, separable_codes):
        clusters, stats = bisect_clusters(
            [Cluster.from_codes(separable_codes)], target=3, k_max=3, rng=np.random.default_rng(0)
        )
        assert len(clusters) == 3
        assert stats.accepted == 2
        assert sum(c.size for c in clusters) == 15
        for cluster in clusters:
            assert len(cluster.source_ids) == 1

    def test_not_triggered_near_target(self, separable_codes):
        start = [Cluster.from_codes(separable_codes[i : i + 5]) for i in (0, 5, 10)]
        clusters, stats = bisect_clusters(start, target=3, k_max=3)
        assert [c.cluster_id for c in clusters] == [c.cluster_id for c in start]
        assert stats.attempts == 0

    def test_never_exceeds_k_max(self, separable_codes):
        clusters, _ = bisect_clusters([Cluster.from_codes(separable_codes)], target=10, k_max=4)
        assert len(clusters) <= 4
        assert sorted(code.id for c in clusters for code in c.codes) == sorted(c.id for c in separable_codes)

    def test_singletons_are_not_split(self, separable_codes):
        start = [Cluster.from_codes([code]) for code in separable_codes[:2]]
        clusters, stats = bisect_clusters(start, target=10, k_max=10)
        assert len(clusters) == 2
        assert stats.attempts == 0

    def test_zero_variance_cluster_skipped(self, code_factory):
        codes = [code_factory(f"c{i}", embedding=[1.0, 0.0, 0.0]) for i in range(4)]
        clusters, stats = bisect_clusters([Cluster.from_codes(codes)], target=5, k_max=5)
        assert len(clusters) == 1
        assert stats.attempts == 0

    def test_strict_tolerance_rejects_degrading_splits(self, separable_codes):
        start = [Cluster.from_codes(separable_codes[i : i + 5]) for i in (0, 5, 10)]
        config = ClusteringConfig(bisect_db_tolerance=1.0)
        clusters, stats = bisect_clusters(start, target=10, k_max=10, config=config)
        # Splitting a tight group only adds noise-level structure
        assert len(clusters) == 3
        assert stats.rejected == 3
        assert stats.accepted == 0
