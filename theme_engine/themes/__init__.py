"""
Theme post-processing: diversity, coherence, labels and provenance.

Components:
- enforce_diversity: clique-based merging of near-duplicate clusters
- diversity_metrics: pairwise similarity, redundancy and coverage summary
- validate_coherence: mean pairwise similarity with flag/reject policy
- ThemeLabeler: budgeted LLM labeling with representative-code fallback
- annotate_provenance: per-source influence weights per theme
- Theme: final output record
- ThemeConfig: thresholds, policies and normalization settings
"""

from theme_engine.themes.coherence import CoherenceResult, coherence_score, validate_coherence
from theme_engine.themes.config import ThemeConfig
from theme_engine.themes.diversity import (
    DiversityResult,
    diversity_metrics,
    enforce_diversity,
    find_cliques,
    similarity_graph,
)
from theme_engine.themes.labeler import LabelingResult, ThemeLabeler, apply_fallback_label
from theme_engine.themes.provenance import (
    annotate_provenance,
    compute_provenance,
    normalize_weights,
    source_aggregates,
    source_weight,
)
from theme_engine.themes.schemas import Theme

__all__ = [
    "Theme",
    "ThemeConfig",
    "enforce_diversity",
    "diversity_metrics",
    "similarity_graph",
    "find_cliques",
    "DiversityResult",
    "coherence_score",
    "validate_coherence",
    "CoherenceResult",
    "ThemeLabeler",
    "LabelingResult",
    "apply_fallback_label",
    "annotate_provenance",
    "compute_provenance",
    "normalize_weights",
    "source_aggregates",
    "source_weight",
]
