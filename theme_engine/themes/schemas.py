"""Schema definitions for final themes.

A Theme is the output record of a run: a labeled cluster of codes with its
coherence score and per-source provenance. It holds no embeddings.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from theme_engine.clustering.schemas import Cluster
from theme_engine.coding.schemas import Code


@dataclass
class Theme:
    """
    A labeled, evidence-grounded theme.

    Attributes:
        id: Cluster ID the theme was built from (cluster_{hash}).
        label: Human-readable label.
        description: One to three sentences describing the theme.
        codes: Member codes (without embeddings).
        coherence_score: Mean pairwise cosine similarity of members.
        below_coherence_threshold: True when coherence is under the configured minimum.
        provenance: Source ID -> influence weight; weights sum to 1.
        source_weight: Share of all run sources contributing to the theme.

    Example:
        >>> theme = Theme.from_cluster(cluster)
        >>> theme.to_dict()["coherenceScore"]
        0.71
    """

    id: str
    label: str
    description: str
    codes: list[Code]
    coherence_score: float
    below_coherence_threshold: bool = False
    provenance: dict[str, float] = field(default_factory=dict)
    source_weight: float = 0.0

    @property
    def code_count(self) -> int:
        return len(self.codes)

    @classmethod
    def from_cluster(cls, cluster: Cluster, source_weight: float = 0.0) -> "Theme":
        """Build the output record from an annotated cluster."""
        representative = cluster.representative_code()
        return cls(
            id=cluster.cluster_id,
            label=cluster.label or representative.label,
            description=cluster.description or representative.description,
            codes=[replace(c, embedding=None) for c in cluster.codes],
            coherence_score=cluster.coherence_score if cluster.coherence_score is not None else 0.0,
            below_coherence_threshold=cluster.below_coherence,
            provenance=dict(cluster.provenance),
            source_weight=source_weight,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the public JSON shape (camelCase keys)."""
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "codes": [c.to_dict() for c in self.codes],
            "coherenceScore": round(self.coherence_score, 6),
            "belowCoherenceThreshold": self.below_coherence_threshold,
            "provenance": {k: round(v, 6) for k, v in self.provenance.items()},
            "sourceWeight": round(self.source_weight, 6),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Theme":
        """
        Create a Theme from its JSON shape.

        Raises:
            KeyError: If required fields are missing.
        """
        return cls(
            id=data["id"],
            label=data["label"],
            description=data.get("description", ""),
            codes=[Code.from_dict(c) for c in data.get("codes", [])],
            coherence_score=float(data["coherenceScore"]),
            below_coherence_threshold=bool(data.get("belowCoherenceThreshold", False)),
            provenance={k: float(v) for k, v in data.get("provenance", {}).items()},
            source_weight=float(data.get("sourceWeight", 0.0)),
        )
