"""Schema definitions for sources and codes.

A Source is one input document, owned by the caller and never modified.
A Code is an atomic, source-grounded concept statement extracted from a
source (or split out of another code during enrichment). Codes are
immutable apart from attaching an embedding, which produces a new Code.
"""

import hashlib
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np


@dataclass(frozen=True)
class Source:
    """
    An input document.

    Attributes:
        id: Caller-assigned unique identifier.
        text: Full text the codes are extracted from.
        title: Optional human-readable title (used in prompts and fallbacks).
        metadata: Free-form caller metadata (year, authors, url, ...).
    """

    id: str
    text: str
    title: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Source":
        """
        Create a Source from a dictionary.

        Accepts ``text`` or ``content`` for the body.

        Raises:
            KeyError: If id or text are missing.
        """
        text = data["text"] if "text" in data else data["content"]
        return cls(
            id=str(data["id"]),
            text=text,
            title=data.get("title") or "",
            metadata=data.get("metadata", {}),
        )


@dataclass(frozen=True)
class Code:
    """
    An atomic concept statement grounded in a source.

    Attributes:
        id: Unique code ID (code_{hash}, code_local_{hex} or split_{hex}).
        label: Short name of the concept.
        description: One or two sentences explaining the concept.
        excerpts: Verbatim substrings of the originating source (at least one).
        source_id: ID of the originating Source.
        embedding: Embedding vector, attached after extraction/enrichment.
        metadata: Extra information (e.g. ``split_from`` for enriched codes).
    """

    id: str
    label: str
    description: str
    excerpts: tuple[str, ...]
    source_id: str
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @staticmethod
    def generate_code_id(source_id: str, label: str) -> str:
        """
        Generate a deterministic code ID from its source and label.

        Returns:
            ID string in format "code_{hash[:12]}".
        """
        digest = hashlib.sha256(f"{source_id}\x00{label.strip().lower()}".encode()).hexdigest()
        return f"code_{digest[:12]}"

    @staticmethod
    def generate_split_id(original_code_id: str, label: str) -> str:
        """Generate a deterministic ID for a code split out of ``original_code_id``."""
        digest = hashlib.sha256(f"{original_code_id}\x00{label.strip().lower()}".encode()).hexdigest()
        return f"split_{digest[:12]}"

    @property
    def embedding_text(self) -> str:
        """Text embedded to place the code in vector space."""
        if self.description:
            return f"{self.label}\n{self.description}"
        return self.label

    def with_embedding(self, embedding: np.ndarray) -> "Code":
        """Return a copy of this code with ``embedding`` attached."""
        return replace(self, embedding=embedding)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the code to the public output shape.

        The embedding is not included.
        """
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "excerpts": list(self.excerpts),
            "sourceId": self.source_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Code":
        """Create a Code from its output dictionary (``sourceId`` or ``source_id``)."""
        embedding = data.get("embedding")
        return cls(
            id=data["id"],
            label=data["label"],
            description=data.get("description", ""),
            excerpts=tuple(data.get("excerpts", ())),
            source_id=data["sourceId"] if "sourceId" in data else data["source_id"],
            embedding=np.asarray(embedding, dtype=np.float64) if embedding is not None else None,
            metadata=data.get("metadata", {}),
        )
