"""
Code extraction: sources to atomic, source-grounded codes.

Sources are batched into JSON-mode language-model calls. Every returned
excerpt is checked against its source text and kept only when it occurs
verbatim; codes without a surviving excerpt are dropped. A batch whose call
fails falls back to term-frequency extraction for its sources.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from theme_engine.coding.config import CodingConfig
from theme_engine.coding.local import LocalCodeExtractor
from theme_engine.coding.schemas import Code, Source
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.concurrency.pool import bounded_gather
from theme_engine.errors import ProviderError
from theme_engine.llm.client import JSONCompletionClient
from theme_engine.llm.prompts import CODE_EXTRACTION_PROMPT, SOURCE_BLOCK_TEMPLATE
from theme_engine.llm.schemas import CodeExtractionResponse, ExtractedCode
from theme_engine.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class CodeExtractionResult:
    """Codes extracted from a set of sources, with bookkeeping."""

    codes: list[Code] = field(default_factory=list)
    batches: int = 0
    failed_batches: int = 0
    local_fallback_sources: list[str] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    excerpts_dropped: int = 0
    codes_dropped: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class _BatchOutcome:
    codes: list[Code] = field(default_factory=list)
    failed: bool = False
    local_sources: list[str] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    excerpts_dropped: int = 0
    codes_dropped: int = 0
    error: str | None = None


class CodeExtractor:
    """
    Turns sources into codes through a language model.

    Constructor: ``(llm_client?, config?, local_extractor?)``. Without an
    LLM client every source goes through the LocalCodeExtractor.

    Usage:
        extractor = CodeExtractor(llm_client)
        result = await extractor.extract(sources, max_concurrency=4)
        codes = result.codes
    """

    def __init__(
        self,
        llm_client: JSONCompletionClient | None = None,
        config: CodingConfig | None = None,
        local_extractor: LocalCodeExtractor | None = None,
    ) -> None:
        self._llm = llm_client
        self._config = config or CodingConfig()
        self._local = local_extractor or LocalCodeExtractor(self._config)
        self._metrics = get_metrics()

    # ── Prompt Building ──────────────────────────────────

    def _build_prompt(self, batch: Sequence[Source]) -> str:
        blocks = []
        for source in batch:
            blocks.append(
                SOURCE_BLOCK_TEMPLATE.format(
                    source_id=source.id,
                    title=source.title.replace('"', "'"),
                    text=source.text[: self._config.max_source_chars],
                )
            )
        return CODE_EXTRACTION_PROMPT.format(
            max_codes_per_source=self._config.max_codes_per_source,
            sources_block="\n\n".join(blocks),
        )

    # ── Validation ───────────────────────────────────────

    def _to_codes(
        self,
        extracted: Sequence[ExtractedCode],
        batch: Sequence[Source],
        outcome: _BatchOutcome,
    ) -> None:
        """Validate model output against the batch's sources into ``outcome``."""
        by_id = {source.id: source for source in batch}
        per_source: dict[str, int] = {}

        for item in extracted:
            source = by_id.get(item.source_id)
            if source is None:
                logger.debug("Dropping code for unknown source %s", item.source_id)
                outcome.codes_dropped += 1
                continue

            excerpts: list[str] = []
            for excerpt in item.excerpts:
                excerpt = excerpt.strip()
                if excerpt and excerpt in source.text:
                    if excerpt not in excerpts:
                        excerpts.append(excerpt)
                else:
                    outcome.excerpts_dropped += 1

            if not excerpts:
                outcome.codes_dropped += 1
                continue
            if per_source.get(source.id, 0) >= self._config.max_codes_per_source:
                outcome.codes_dropped += 1
                continue

            label = item.label.strip()
            outcome.codes.append(
                Code(
                    id=Code.generate_code_id(source.id, label),
                    label=label,
                    description=item.description.strip(),
                    excerpts=tuple(excerpts),
                    source_id=source.id,
                    metadata={"extraction": "llm"},
                )
            )
            per_source[source.id] = per_source.get(source.id, 0) + 1

    def _fallback(self, batch: Sequence[Source], outcome: _BatchOutcome) -> None:
        if not self._config.local_fallback:
            outcome.skipped_sources.extend(source.id for source in batch)
            return
        for source in batch:
            outcome.codes.extend(self._local.extract(source))
            outcome.local_sources.append(source.id)

    # ── Extraction ───────────────────────────────────────

    async def _extract_batch(self, batch: Sequence[Source]) -> _BatchOutcome:
        outcome = _BatchOutcome()

        if self._llm is None:
            for source in batch:
                outcome.codes.extend(self._local.extract(source))
                outcome.local_sources.append(source.id)
            return outcome

        try:
            response = await self._llm.complete_json(
                self._build_prompt(batch),
                CodeExtractionResponse,
                operation="extraction",
            )
        except ProviderError as e:
            self._metrics.record_llm_call("extraction", "error")
            logger.warning(
                "Extraction batch of %d sources failed: %s", len(batch), e
            )
            outcome.failed = True
            outcome.error = f"extraction batch [{', '.join(s.id for s in batch)}]: {e}"
            self._fallback(batch, outcome)
            return outcome

        self._metrics.record_llm_call("extraction", "success")
        if response is None:
            logger.warning("Extraction batch returned no parseable codes")
            outcome.failed = True
            outcome.error = f"extraction batch [{', '.join(s.id for s in batch)}]: unparseable response"
            self._fallback(batch, outcome)
            return outcome

        self._to_codes(response.codes, batch, outcome)
        return outcome

    async def extract(
        self,
        sources: Sequence[Source],
        cancel_token: CancellationToken | None = None,
        max_concurrency: int = 4,
    ) -> CodeExtractionResult:
        """
        Extract codes from all sources.

        Args:
            sources: Input sources (read-only).
            cancel_token: Optional run-wide cancellation signal.
            max_concurrency: Extraction calls in flight at once.

        Returns:
            CodeExtractionResult with deduplicated codes in source order.
        """
        result = CodeExtractionResult()
        if not sources:
            return result

        size = self._config.extraction_batch_size
        batches = [list(sources[i : i + size]) for i in range(0, len(sources), size)]
        result.batches = len(batches)

        outcomes = await bounded_gather(
            self._extract_batch,
            batches,
            limit=max_concurrency,
            cancel_token=cancel_token,
        )

        seen: set[str] = set()
        for outcome in outcomes:
            for code in outcome.codes:
                if code.id in seen:
                    result.duplicates += 1
                    continue
                seen.add(code.id)
                result.codes.append(code)
            if outcome.failed:
                result.failed_batches += 1
            if outcome.error:
                result.errors.append(outcome.error)
            result.local_fallback_sources.extend(outcome.local_sources)
            result.skipped_sources.extend(outcome.skipped_sources)
            result.excerpts_dropped += outcome.excerpts_dropped
            result.codes_dropped += outcome.codes_dropped

        self._metrics.record_codes_dropped("not_grounded", result.codes_dropped)
        logger.info(
            "Extracted %d codes from %d sources (%d batches, %d failed, %d excerpts dropped)",
            len(result.codes),
            len(sources),
            result.batches,
            result.failed_batches,
            result.excerpts_dropped,
        )
        return result

    def get_stats(self) -> dict[str, Any]:
        return {
            "llm_enabled": self._llm is not None,
            "batch_size": self._config.extraction_batch_size,
            "local_fallback": self._config.local_fallback,
        }
