"""
Pipeline configuration, purpose presets and the extraction request model.

Purpose presets bundle a clustering mode, a theme-count range and a
coherence minimum for common research uses. Values given explicitly in a
request always win over the preset; the preset fills the rest, and
component defaults fill whatever the preset leaves open.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from theme_engine.clustering.schemas import ClusteringMode
from theme_engine.coding.schemas import Source


class PurposePreset(BaseModel):
    """Defaults for one research purpose."""

    model_config = ConfigDict(frozen=True)

    name: str
    mode: ClusteringMode
    min_themes: int
    max_themes: int
    min_coherence: float
    description: str = ""


PURPOSE_PRESETS: dict[str, PurposePreset] = {
    preset.name: preset
    for preset in (
        PurposePreset(
            name="q_methodology",
            mode=ClusteringMode.BREADTH,
            min_themes=30,
            max_themes=80,
            min_coherence=0.5,
            description="Broad concourse of distinct statements for Q-sorts",
        ),
        PurposePreset(
            name="qualitative_analysis",
            mode=ClusteringMode.DEPTH,
            min_themes=5,
            max_themes=20,
            min_coherence=0.6,
            description="Few, tight themes for reflexive thematic analysis",
        ),
        PurposePreset(
            name="literature_synthesis",
            mode=ClusteringMode.BREADTH,
            min_themes=10,
            max_themes=25,
            min_coherence=0.7,
            description="Distinct research themes across a literature corpus",
        ),
        PurposePreset(
            name="hypothesis_generation",
            mode=ClusteringMode.DEPTH,
            min_themes=8,
            max_themes=15,
            min_coherence=0.6,
            description="Coherent conceptual groupings to derive hypotheses from",
        ),
        PurposePreset(
            name="survey_construction",
            mode=ClusteringMode.DEPTH,
            min_themes=5,
            max_themes=15,
            min_coherence=0.7,
            description="Tight constructs suitable for survey items",
        ),
    )
}


def get_preset(name: str) -> PurposePreset:
    """
    Look up a purpose preset by name.

    Raises:
        KeyError: Unknown preset (message lists the known ones).
    """
    try:
        return PURPOSE_PRESETS[name]
    except KeyError:
        raise KeyError(
            f"Unknown purpose {name!r}; expected one of {', '.join(sorted(PURPOSE_PRESETS))}"
        ) from None


class PipelineConfig(BaseSettings):
    """
    Run-level defaults for the theme extraction pipeline.

    All settings can be overridden via environment variables prefixed with PIPELINE_.

    Example:
        PIPELINE_MIN_CODES=5
        PIPELINE_DEFAULT_MODE=depth
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    min_codes: int = Field(
        default=2,
        ge=1,
        description="Fewer embedded codes than this aborts the run with InsufficientDataError",
    )
    default_mode: ClusteringMode = Field(default=ClusteringMode.BREADTH)
    default_min_themes: int = Field(default=5, ge=1)
    default_max_themes: int = Field(default=20, ge=1)
    embedding_concurrency: int = Field(default=8, ge=1, le=256)
    llm_concurrency: int = Field(default=4, ge=1, le=64)
    random_seed: int = Field(default=42)


class ExtractionRequest(BaseModel):
    """
    Input of one pipeline run.

    Unset fields (None) are filled from the purpose preset, then from
    component configuration at run time.

    Example:
        >>> request = ExtractionRequest(sources=sources, purpose="q_methodology")
        >>> request.mode
        <ClusteringMode.BREADTH: 'breadth'>
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sources: list[Source]
    mode: ClusteringMode | None = None
    purpose: str | None = None
    min_themes: int | None = Field(default=None, ge=1)
    max_themes: int | None = Field(default=None, ge=1)
    diversity_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    min_coherence: float | None = Field(default=None, ge=-1.0, le=1.0)
    llm_call_budget: int | None = Field(default=None, ge=0)
    embedding_concurrency: int | None = Field(default=None, ge=1)
    llm_concurrency: int | None = Field(default=None, ge=1)
    random_seed: int | None = None

    @field_validator("sources", mode="before")
    @classmethod
    def _coerce_sources(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [Source.from_dict(v) if isinstance(v, dict) else v for v in value]
        return value

    @field_validator("purpose")
    @classmethod
    def _known_purpose(cls, value: str | None) -> str | None:
        if value is not None and value not in PURPOSE_PRESETS:
            raise ValueError(
                f"Unknown purpose {value!r}; expected one of {', '.join(sorted(PURPOSE_PRESETS))}"
            )
        return value

    @model_validator(mode="after")
    def _apply_preset(self) -> "ExtractionRequest":
        if self.purpose is not None:
            preset = PURPOSE_PRESETS[self.purpose]
            if self.mode is None:
                self.mode = preset.mode
            if self.min_themes is None:
                self.min_themes = preset.min_themes
            if self.max_themes is None:
                self.max_themes = preset.max_themes
            if self.min_coherence is None:
                self.min_coherence = preset.min_coherence

        if (
            self.min_themes is not None
            and self.max_themes is not None
            and self.min_themes > self.max_themes
        ):
            raise ValueError(
                f"min_themes ({self.min_themes}) must not exceed max_themes ({self.max_themes})"
            )

        ids = [s.id for s in self.sources]
        if len(ids) != len(set(ids)):
            raise ValueError("Source ids must be unique")
        return self
