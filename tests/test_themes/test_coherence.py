"""Tests for coherence scoring and policies."""

import numpy as np
import pytest

from theme_engine.clustering.schemas import Cluster
from theme_engine.themes.coherence import coherence_score, validate_coherence


@pytest.fixture
def tight(code_factory):
    return Cluster.from_codes(
        [code_factory("t1", embedding=[1.0, 0.0]), code_factory("t2", embedding=[0.99, 0.1])]
    )


@pytest.fixture
def loose(code_factory):
    return Cluster.from_codes(
        [code_factory("l1", embedding=[1.0, 0.0]), code_factory("l2", embedding=[0.0, 1.0])]
    )


class TestCoherenceScore:
    def test_singleton(self):
        assert coherence_score(np.array([[0.3, 0.4]])) == 1.0

    def test_identical(self):
        assert coherence_score(np.array([[1.0, 2.0], [2.0, 4.0]])) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert coherence_score(np.eye(3)) == pytest.approx(0.0)

    def test_mean_over_pairs(self):
        embeddings = np.array([[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        assert coherence_score(embeddings) == pytest.approx(1.0 / 3.0)


class TestValidateCoherence:
    def test_flag_policy_keeps_clusters(self, tight, loose):
        result = validate_coherence([tight, loose], 0.5, policy="flag")
        assert [c.cluster_id for c in result.clusters] == [tight.cluster_id, loose.cluster_id]
        assert result.rejected == []
        assert result.flagged == 1
        assert loose.below_coherence is True
        assert tight.below_coherence is False
        assert tight.coherence_score > 0.9

    def test_reject_policy_moves_clusters(self, tight, loose):
        result = validate_coherence([tight, loose], 0.5, policy="reject")
        assert [c.cluster_id for c in result.clusters] == [tight.cluster_id]
        assert [c.cluster_id for c in result.rejected] == [loose.cluster_id]

    def test_unknown_policy(self, tight):
        with pytest.raises(ValueError):
            validate_coherence([tight], 0.5, policy="drop")
