"""Tests for the Theme output schema."""

import pytest

from theme_engine.clustering.schemas import Cluster
from theme_engine.themes.schemas import Theme


@pytest.fixture
def cluster(code_factory):
    cluster = Cluster.from_codes(
        [
            code_factory("a", source_id="s1", embedding=[1.0, 0.0]),
            code_factory("b", source_id="s2", embedding=[0.9, 0.1]),
        ]
    )
    cluster.label = "Commuting"
    cluster.description = "Less travel."
    cluster.coherence_score = 0.9938079899999065
    cluster.provenance = {"s1": 0.5012345678, "s2": 0.4987654322}
    return cluster


class TestTheme:
    def test_from_cluster(self, cluster):
        theme = Theme.from_cluster(cluster, source_weight=0.5)
        assert theme.id == cluster.cluster_id
        assert theme.label == "Commuting"
        assert theme.code_count == 2
        assert all(code.embedding is None for code in theme.codes)
        assert cluster.codes[0].embedding is not None

    def test_unlabeled_cluster_uses_representative(self, cluster):
        cluster.label = None
        cluster.description = None
        theme = Theme.from_cluster(cluster)
        assert theme.label == cluster.representative_code().label

    def test_to_dict_shape(self, cluster):
        data = Theme.from_cluster(cluster, source_weight=2 / 3).to_dict()
        assert set(data) == {
            "id",
            "label",
            "description",
            "codes",
            "coherenceScore",
            "belowCoherenceThreshold",
            "provenance",
            "sourceWeight",
        }
        assert data["coherenceScore"] == 0.993808
        assert data["provenance"] == {"s1": 0.501235, "s2": 0.498765}
        assert data["sourceWeight"] == 0.666667
        assert data["codes"][0]["sourceId"] == "s1"

    def test_from_dict(self, cluster):
        theme = Theme.from_cluster(cluster)
        restored = Theme.from_dict(theme.to_dict())
        assert restored.id == theme.id
        assert [c.id for c in restored.codes] == ["a", "b"]
        assert restored.coherence_score == pytest.approx(theme.coherence_score, abs=1e-6)

    def test_from_dict_missing_field(self):
        with pytest.raises(KeyError):
            Theme.from_dict({"id": "x", "label": "y"})
