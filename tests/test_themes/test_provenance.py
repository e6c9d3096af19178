"""Tests for source provenance."""

import numpy as np
import pytest

from theme_engine.clustering.schemas import Cluster
from theme_engine.themes.provenance import (
    annotate_provenance,
    compute_provenance,
    normalize_weights,
    source_aggregates,
    source_weight,
)


class TestNormalizeWeights:
    def test_sum(self):
        np.testing.assert_allclose(normalize_weights(np.array([0.6, 0.2])), [0.75, 0.25])

    def test_negatives_clipped(self):
        np.testing.assert_allclose(normalize_weights(np.array([0.5, -0.5])), [1.0, 0.0])

    def test_all_zero_is_uniform(self):
        np.testing.assert_allclose(normalize_weights(np.array([0.0, -0.2, 0.0, 0.0])), [0.25] * 4)

    def test_softmax(self):
        weights = normalize_weights(np.array([0.9, 0.5, 0.1]), "softmax", temperature=0.1)
        assert weights.sum() == pytest.approx(1.0)
        assert weights[0] > weights[1] > weights[2]
        assert np.all((weights >= 0) & (weights <= 1))

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            normalize_weights(np.array([1.0]), "max")


class TestProvenance:
    @pytest.fixture
    def codes(self, code_factory):
        return [
            code_factory("a1", source_id="s1", embedding=[1.0, 0.0]),
            code_factory("a2", source_id="s1", embedding=[0.9, 0.1]),
            code_factory("b1", source_id="s2", embedding=[0.5, 0.5]),
            code_factory("c1", source_id="s3", embedding=[0.0, 1.0]),
        ]

    def test_source_aggregates(self, codes, code_factory):
        aggregates = source_aggregates(codes + [code_factory("bare", source_id="s9")])
        np.testing.assert_allclose(aggregates["s1"], [0.95, 0.05])
        assert set(aggregates) == {"s1", "s2", "s3"}

    def test_weights_cover_contributing_sources(self, codes):
        cluster = Cluster.from_codes(codes[:3])
        provenance = compute_provenance(cluster, source_aggregates(codes))
        assert set(provenance) == {"s1", "s2"}
        assert sum(provenance.values()) == pytest.approx(1.0)
        assert all(0.0 <= w <= 1.0 for w in provenance.values())

    def test_closer_source_weighs_more(self, codes):
        cluster = Cluster.from_codes(codes[:2] + codes[3:])
        provenance = compute_provenance(cluster, source_aggregates(codes))
        assert provenance["s1"] > provenance["s3"]

    def test_single_source(self, codes):
        cluster = Cluster.from_codes(codes[:2])
        assert compute_provenance(cluster, source_aggregates(codes)) == {"s1": pytest.approx(1.0)}

    def test_annotate(self, codes):
        clusters = [Cluster.from_codes(codes[:2]), Cluster.from_codes(codes[2:])]
        annotate_provenance(clusters, codes, method="softmax", temperature=0.5)
        assert set(clusters[1].provenance) == {"s2", "s3"}
        assert sum(clusters[1].provenance.values()) == pytest.approx(1.0)

    def test_source_weight(self, codes):
        cluster = Cluster.from_codes(codes[:3])
        assert source_weight(cluster, 4) == 0.5
        assert source_weight(cluster, 0) == 0.0
