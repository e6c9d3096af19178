"""
Clustering engine configuration.

Parameter Tuning Guide:
    - k_min / k_max: Default theme-count range for breadth mode when a run
      does not supply one. Purpose presets narrow it (e.g. 30-80 for
      Q-methodology concourses, 5-20 for qualitative analysis).
    - selection_max_iterations: Lloyd iterations per candidate k during
      selection. Candidate runs only need a rough fit; 50 is plenty.
    - *_weight: Weighted vote between the inertia elbow, best silhouette
      and best Davies-Bouldin k. Silhouette and elbow dominate by default.
    - bisect_db_tolerance: A split is kept when the Davies-Bouldin index
      does not grow by more than this factor. 1.1 allows 10% degradation;
      1.0 only accepts splits that keep or improve separation.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClusteringConfig(BaseSettings):
    """
    Configuration for the clustering engine.

    All settings can be overridden via environment variables prefixed with CLUSTERING_.

    Example:
        CLUSTERING_K_MIN=10
        CLUSTERING_BISECT_DB_TOLERANCE=1.05
    """

    model_config = SettingsConfigDict(
        env_prefix="CLUSTERING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Theme-count range
    k_min: int = Field(
        default=5,
        ge=1,
        description="Default minimum number of clusters",
    )
    k_max: int = Field(
        default=20,
        ge=1,
        description="Default maximum number of clusters",
    )

    # k-means
    max_iterations: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum Lloyd iterations for the final clustering",
    )
    tolerance: float = Field(
        default=1e-3,
        gt=0.0,
        description="Converged when mean centroid displacement falls below this",
    )
    random_seed: int = Field(
        default=42,
        description="Seed for k-means++ initialization and empty-cluster reseeding",
    )

    # Adaptive k selection
    selection_max_iterations: int = Field(
        default=50,
        ge=1,
        le=1_000,
        description="Lloyd iterations per candidate k",
    )
    min_stride: int = Field(
        default=5,
        ge=1,
        description="Smallest step between candidate k values",
    )
    stride_divisor: int = Field(
        default=10,
        ge=1,
        description="Candidate stride is (k_max - k_min) // stride_divisor (at least min_stride)",
    )
    elbow_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    silhouette_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    davies_bouldin_weight: float = Field(default=0.2, ge=0.0, le=1.0)

    # Adaptive bisecting
    bisect_enabled: bool = Field(
        default=True,
        description="Split large, loose clusters when breadth mode falls short of the target",
    )
    bisect_trigger_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Bisect when cluster count < target * ratio",
    )
    bisect_db_tolerance: float = Field(
        default=1.1,
        ge=1.0,
        le=2.0,
        description="Accept a split when new DB <= old DB * tolerance",
    )
    bisect_split_iterations: int = Field(
        default=50,
        ge=1,
        le=1_000,
        description="Lloyd iterations for each two-way split",
    )
    max_bisect_attempts_factor: int = Field(
        default=2,
        ge=1,
        description="Bisecting stops after target * factor split attempts",
    )

    # Depth mode
    ann_warning_threshold: int = Field(
        default=500,
        ge=2,
        description="Log a scalability warning when agglomerative merging starts from more codes than this",
    )
