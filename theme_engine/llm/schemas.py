"""Response models for language-model calls.

Each prompt in ``theme_engine.llm.prompts`` has a matching model here. The
JSON keys use camelCase (as requested in the prompts) and are mapped to
snake_case attributes through field aliases.
"""

from pydantic import BaseModel, ConfigDict, Field


class _LLMModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Code Extraction ────────────────────────────────────────


class ExtractedCode(_LLMModel):
    """One code proposed by the model for one source."""

    source_id: str = Field(alias="sourceId", min_length=1)
    label: str = Field(min_length=1)
    description: str = ""
    excerpts: list[str] = Field(default_factory=list)


class CodeExtractionResponse(_LLMModel):
    codes: list[ExtractedCode] = Field(default_factory=list)


# ── Code Splitting ─────────────────────────────────────────


class AtomicStatement(_LLMModel):
    """A finer-grained statement split out of an existing code."""

    label: str = Field(min_length=1)
    description: str = ""
    grounding_excerpt: str = Field(default="", alias="groundingExcerpt")


class CodeSplit(_LLMModel):
    original_code_id: str = Field(alias="originalCodeId", min_length=1)
    atomic_statements: list[AtomicStatement] = Field(
        default_factory=list, alias="atomicStatements"
    )


class CodeSplitResponse(_LLMModel):
    splits: list[CodeSplit] = Field(default_factory=list)


# ── Theme Labeling ─────────────────────────────────────────


class ThemeLabel(_LLMModel):
    cluster_id: str = Field(alias="clusterId", min_length=1)
    label: str = Field(min_length=1, max_length=200)
    description: str = ""


class ThemeLabelResponse(_LLMModel):
    themes: list[ThemeLabel] = Field(default_factory=list)
