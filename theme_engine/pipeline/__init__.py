"""
End-to-end theme extraction.

Components:
- ThemeExtractionPipeline: orchestrates coding, enrichment, clustering,
  diversity, coherence, labeling and provenance for one request
- ExtractionRequest / ExtractionResult: run input and output
- PipelineConfig: run defaults (PIPELINE_ prefix)
- PURPOSE_PRESETS: mode, theme range and coherence per research purpose
- ProgressReporter / ProgressEvent / PipelineStage: ordered stage events
"""

from theme_engine.pipeline.config import (
    PURPOSE_PRESETS,
    ExtractionRequest,
    PipelineConfig,
    PurposePreset,
    get_preset,
)
from theme_engine.pipeline.progress import PipelineStage, ProgressEvent, ProgressReporter
from theme_engine.pipeline.service import ExtractionResult, RunParameters, ThemeExtractionPipeline

__all__ = [
    "ThemeExtractionPipeline",
    "ExtractionRequest",
    "ExtractionResult",
    "RunParameters",
    "PipelineConfig",
    "PurposePreset",
    "PURPOSE_PRESETS",
    "get_preset",
    "PipelineStage",
    "ProgressEvent",
    "ProgressReporter",
]
