"""Schema definitions for clusters of codes.

A Cluster is a candidate theme: a non-empty group of embedded codes sharing
a centroid. Clusters are created by the clustering engine, merged by the
diversity enforcer and annotated (coherence, label, provenance) by later
stages. Provenance refers to sources by ID only.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import numpy as np

from theme_engine.coding.schemas import Code


class ClusteringMode(str, Enum):
    """Clustering strategy chosen at run start."""

    BREADTH = "breadth"
    DEPTH = "depth"


@dataclass
class Cluster:
    """
    A group of embedded codes with a shared centroid.

    The centroid is always the arithmetic mean of the members' embeddings;
    every method that changes membership recomputes it.

    Attributes:
        cluster_id: Deterministic ID derived from member code IDs (cluster_{hash}).
        codes: Member codes (at least one, each with an embedding).
        centroid: Mean embedding of the members.
        coherence_score: Mean pairwise member similarity (set by the coherence validator).
        below_coherence: True when coherence_score is under the configured minimum.
        label: Theme label (set by the labeler).
        description: Theme description (set by the labeler).
        provenance: Source ID -> influence weight in [0, 1].
        metadata: Additional information (e.g. ``merged_from``).

    Example:
        >>> cluster = Cluster.from_codes(codes)
        >>> cluster.size
        3
    """

    cluster_id: str
    codes: list[Code]
    centroid: np.ndarray
    coherence_score: float | None = None
    below_coherence: bool = False
    label: str | None = None
    description: str | None = None
    provenance: dict[str, float] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def generate_cluster_id(code_ids: Sequence[str]) -> str:
        """
        Generate a deterministic cluster ID from member code IDs.

        Returns:
            ID string in format "cluster_{hash[:12]}".
        """
        digest = hashlib.sha256(",".join(sorted(code_ids)).encode()).hexdigest()
        return f"cluster_{digest[:12]}"

    @classmethod
    def from_codes(cls, codes: Sequence[Code]) -> "Cluster":
        """
        Build a cluster from embedded codes.

        Raises:
            ValueError: If ``codes`` is empty or a code has no embedding.
        """
        if not codes:
            raise ValueError("A cluster needs at least one code")
        members = list(codes)
        return cls(
            cluster_id=cls.generate_cluster_id([c.id for c in members]),
            codes=members,
            centroid=cls._mean(members),
        )

    @staticmethod
    def _mean(codes: Sequence[Code]) -> np.ndarray:
        for code in codes:
            if code.embedding is None:
                raise ValueError(f"Code {code.id} has no embedding")
        return np.mean(np.vstack([c.embedding for c in codes]), axis=0)

    @property
    def size(self) -> int:
        return len(self.codes)

    @property
    def code_ids(self) -> list[str]:
        return [c.id for c in self.codes]

    @property
    def source_ids(self) -> list[str]:
        """Contributing source IDs in first-seen order."""
        return list(dict.fromkeys(c.source_id for c in self.codes))

    def embeddings(self) -> np.ndarray:
        """Member embeddings as an (n, d) matrix."""
        return np.vstack([c.embedding for c in self.codes])

    def recompute_centroid(self) -> None:
        self.centroid = self._mean(self.codes)

    def variance(self) -> float:
        """Mean squared Euclidean distance of members to the centroid."""
        diffs = self.embeddings() - self.centroid
        return float(np.mean(np.sum(diffs * diffs, axis=1)))

    def merge(self, other: "Cluster") -> "Cluster":
        """Return a new cluster holding the members of both."""
        merged = Cluster.from_codes(self.codes + other.codes)
        merged.metadata["merged_from"] = sorted(
            self.metadata.get("merged_from", [self.cluster_id])
            + other.metadata.get("merged_from", [other.cluster_id])
        )
        return merged

    def representative_code(self) -> Code:
        """Member whose embedding is closest (cosine) to the centroid."""
        matrix = self.embeddings()
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(self.centroid)
        norms[norms == 0] = 1.0
        sims = matrix @ self.centroid / norms
        return self.codes[int(np.argmax(sims))]

    def to_dict(self) -> dict[str, Any]:
        """
        Convert cluster to dictionary for JSON serialization.

        The centroid ndarray is converted to a plain list.
        """
        return {
            "cluster_id": self.cluster_id,
            "codes": [c.to_dict() for c in self.codes],
            "centroid": self.centroid.tolist(),
            "coherence_score": self.coherence_score,
            "below_coherence": self.below_coherence,
            "label": self.label,
            "description": self.description,
            "provenance": self.provenance,
            "metadata": self.metadata,
        }
