"""
Code extraction and enrichment.

Components:
- Source, Code: input documents and the atomic statements extracted from them
- CodeExtractor: LLM batch extraction with verbatim excerpt validation
- LocalCodeExtractor: term-frequency extraction used as a fallback
- CodeEnricher: budgeted code splitting with embedding-based grounding checks
- CodingConfig: batch sizes, fallback and grounding parameters
"""

from theme_engine.coding.config import CodingConfig
from theme_engine.coding.enricher import CodeEnricher, EnrichmentResult, splits_per_code
from theme_engine.coding.extractor import CodeExtractionResult, CodeExtractor
from theme_engine.coding.local import LocalCodeExtractor
from theme_engine.coding.schemas import Code, Source

__all__ = [
    "Code",
    "Source",
    "CodingConfig",
    "CodeExtractor",
    "CodeExtractionResult",
    "LocalCodeExtractor",
    "CodeEnricher",
    "EnrichmentResult",
    "splits_per_code",
]
