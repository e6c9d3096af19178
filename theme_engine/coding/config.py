"""
Code extraction and enrichment configuration.

Parameter Tuning Guide:
    - extraction_batch_size: Sources per extraction call. Larger batches
      cost fewer calls but produce longer prompts; 3-8 works well for
      abstracts, 1-2 for full texts.
    - enrichment_trigger_ratio: Enrichment runs when the code count is
      below target * ratio. 0.8 leaves headroom for clustering to merge.
    - max_splits_per_code: Caps atomization of a single code. Higher values
      risk splitting one idea into near-duplicates.
    - grounding_threshold: Cosine similarity a generated statement must
      exceed against some excerpt of its source. Raise it to reject more
      loosely supported statements.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CodingConfig(BaseSettings):
    """
    Configuration for the Code Extractor and Code Enricher.

    All settings can be overridden via environment variables prefixed with CODING_.

    Example:
        CODING_EXTRACTION_BATCH_SIZE=3
        CODING_GROUNDING_THRESHOLD=0.7
    """

    model_config = SettingsConfigDict(
        env_prefix="CODING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Extraction
    extraction_batch_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Sources per extraction call",
    )
    max_codes_per_source: int = Field(
        default=12,
        ge=1,
        le=100,
        description="Upper bound on codes requested per source",
    )
    max_source_chars: int = Field(
        default=12_000,
        ge=500,
        description="Source text is clipped to this many characters in prompts",
    )
    local_fallback: bool = Field(
        default=True,
        description="Use term-frequency extraction for sources whose LLM batch failed",
    )

    # Local (term-frequency) extraction
    local_min_sentence_length: int = Field(default=20, ge=1)
    local_min_word_length: int = Field(default=4, ge=1)
    local_top_bigrams: int = Field(default=5, ge=0, le=50)
    local_top_keywords: int = Field(default=3, ge=0, le=50)
    local_excerpts_per_code: int = Field(default=3, ge=1, le=10)
    local_max_excerpt_chars: int = Field(default=300, ge=40)

    # Enrichment
    enrichment_trigger_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Enrich when code count < target * ratio",
    )
    max_splits_per_code: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum atomic statements requested per code",
    )
    split_batch_size: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Codes per split request",
    )
    grounding_threshold: float = Field(
        default=0.65,
        ge=-1.0,
        le=1.0,
        description="Statement-to-excerpt cosine similarity a split must exceed",
    )
    grounding_excerpts_per_source: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Source excerpts compared against each generated statement",
    )
