"""
Theme post-processing configuration.

Parameter Tuning Guide:
    - diversity_threshold: Clusters whose centroids are at least this
      similar are merged. 0.7 merges clear near-duplicates; 0.8-0.9 keeps
      more fine-grained themes apart.
    - min_coherence: Mean pairwise member similarity below which a theme is
      flagged (or rejected). Sentence-embedding models typically give
      0.4-0.7 for a sensible theme.
    - provenance_normalization: "sum" keeps weights proportional to raw
      similarity; "softmax" sharpens them (lower temperature = sharper).
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThemeConfig(BaseSettings):
    """
    Configuration for diversity enforcement, coherence, labeling and provenance.

    All settings can be overridden via environment variables prefixed with THEMES_.

    Example:
        THEMES_DIVERSITY_THRESHOLD=0.8
        THEMES_COHERENCE_POLICY=reject
    """

    model_config = SettingsConfigDict(
        env_prefix="THEMES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Diversity
    diversity_threshold: float = Field(
        default=0.7,
        ge=-1.0,
        le=1.0,
        description="Centroid cosine similarity at or above which clusters are merged",
    )

    # Coherence
    min_coherence: float = Field(
        default=0.5,
        ge=-1.0,
        le=1.0,
        description="Minimum mean pairwise member similarity",
    )
    coherence_policy: Literal["flag", "reject"] = Field(
        default="flag",
        description="flag: keep low-coherence themes with a warning; reject: drop them",
    )

    # Labeling
    labeling_batch_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Clusters per labeling call",
    )
    label_codes_per_cluster: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Member codes shown to the model per cluster (nearest the centroid first)",
    )
    label_excerpts_per_code: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Excerpts shown per code in labeling prompts",
    )

    # Provenance
    provenance_normalization: Literal["sum", "softmax"] = Field(
        default="sum",
        description="How source similarities are normalized into weights",
    )
    softmax_temperature: float = Field(
        default=0.1,
        gt=0.0,
        le=10.0,
        description="Temperature for softmax normalization",
    )
