"""
Code enrichment: splitting codes into finer atomic statements.

Runs only when extraction produced too few codes for the target theme
count. Each proposed statement is embedded and compared against excerpts of
its originating source; statements without a close enough excerpt are
discarded as unsupported. Every split request is charged to the shared
per-run LLM call budget, and codes whose batch could not be processed pass
through unchanged.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from theme_engine.coding.config import CodingConfig
from theme_engine.coding.schemas import Code, Source
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.concurrency.pool import bounded_gather
from theme_engine.embedding.service import EmbeddingService
from theme_engine.errors import BudgetExhaustedError, GroundingValidationError, ProviderError
from theme_engine.llm.budget import LLMCallBudget
from theme_engine.llm.client import JSONCompletionClient
from theme_engine.llm.prompts import CODE_BLOCK_TEMPLATE, CODE_SPLIT_PROMPT
from theme_engine.llm.schemas import AtomicStatement, CodeSplitResponse
from theme_engine.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    """Outcome of an enrichment pass."""

    codes: list[Code] = field(default_factory=list)
    applied: bool = False
    splits_per_code: int = 0
    codes_split: int = 0
    statements_accepted: int = 0
    statements_rejected: int = 0
    batches_failed: int = 0
    batches_unbudgeted: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class _SplitBatchOutcome:
    codes: list[Code]
    codes_split: int = 0
    accepted: int = 0
    rejected: int = 0
    failed: bool = False
    unbudgeted: bool = False
    error: str | None = None


def splits_per_code(current: int, target: int, cap: int) -> int:
    """Statements to request per code: ``min(ceil((target - current) / current), cap)``."""
    if current <= 0 or target <= current:
        return 0
    return min(math.ceil((target - current) / current), cap)


def _max_cosine(vector: np.ndarray, matrix: np.ndarray) -> float:
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    norms[norms == 0] = 1.0
    return float(np.max(matrix @ vector / norms))


class CodeEnricher:
    """
    Splits codes into atomic statements with grounding validation.

    Constructor: ``(llm_client, embedding_service, budget, config?)``.

    Usage:
        enricher = CodeEnricher(llm_client, embedding_service, LLMCallBudget(50))
        result = await enricher.enrich(codes, sources, target=60)
    """

    def __init__(
        self,
        llm_client: JSONCompletionClient | None,
        embedding_service: EmbeddingService,
        budget: LLMCallBudget,
        config: CodingConfig | None = None,
    ) -> None:
        self._llm = llm_client
        self._embeddings = embedding_service
        self._budget = budget
        self._config = config or CodingConfig()
        self._metrics = get_metrics()

    def should_enrich(self, code_count: int, target: int) -> bool:
        """Whether ``code_count`` codes fall short of ``target`` enough to enrich."""
        return 0 < code_count < target * self._config.enrichment_trigger_ratio

    # ── Prompt Building ──────────────────────────────────

    def _build_prompt(self, batch: Sequence[Code], per_code: int) -> str:
        blocks = []
        for code in batch:
            excerpts = "\n".join(f'- "{excerpt}"' for excerpt in code.excerpts)
            blocks.append(
                CODE_BLOCK_TEMPLATE.format(
                    code_id=code.id,
                    label=code.label,
                    description=code.description,
                    excerpts=excerpts,
                )
            )
        return CODE_SPLIT_PROMPT.format(
            splits_per_code=per_code,
            codes_block="\n\n".join(blocks),
        )

    # ── Grounding ────────────────────────────────────────

    def _source_excerpts(self, codes: Sequence[Code]) -> dict[str, list[str]]:
        """Unique excerpts per source, capped at ``grounding_excerpts_per_source``."""
        limit = self._config.grounding_excerpts_per_source
        excerpts: dict[str, list[str]] = {}
        for code in codes:
            bucket = excerpts.setdefault(code.source_id, [])
            for excerpt in code.excerpts:
                if len(bucket) >= limit:
                    break
                if excerpt not in bucket:
                    bucket.append(excerpt)
        return excerpts

    async def _excerpt_matrix(self, excerpts: Sequence[str]) -> np.ndarray | None:
        vectors = await self._embeddings.embed_many(list(excerpts))
        usable = [v for v in vectors if v is not None]
        if not usable:
            return None
        return np.vstack(usable)

    def _validate_grounding(
        self,
        statement: AtomicStatement,
        source_id: str,
        vector: np.ndarray | None,
        excerpt_matrix: np.ndarray | None,
        has_excerpts: bool,
    ) -> None:
        """
        Check that a statement is supported by an excerpt of its source.

        Raises:
            GroundingValidationError: No excerpt is similar enough.
        """
        threshold = self._config.grounding_threshold
        if not has_excerpts:
            return
        if vector is None or excerpt_matrix is None:
            raise GroundingValidationError(statement.label, source_id, float("nan"), threshold)

        best = _max_cosine(vector, excerpt_matrix)
        if best <= threshold:
            raise GroundingValidationError(statement.label, source_id, best, threshold)

    # ── Splitting ────────────────────────────────────────

    def _make_split(self, original: Code, statement: AtomicStatement, source: Source | None) -> Code:
        label = statement.label.strip()
        grounding = statement.grounding_excerpt.strip()
        if grounding and source is not None and grounding in source.text:
            excerpts: tuple[str, ...] = (grounding,)
        else:
            excerpts = original.excerpts
        return Code(
            id=Code.generate_split_id(original.id, label),
            label=label,
            description=statement.description.strip(),
            excerpts=excerpts,
            source_id=original.source_id,
            metadata={**original.metadata, "split_from": original.id},
        )

    async def _split_code(
        self,
        code: Code,
        statements: Sequence[AtomicStatement],
        sources: dict[str, Source],
        excerpts: list[str],
        outcome: _SplitBatchOutcome,
    ) -> list[Code]:
        """Grounded splits for one code, or the code itself when none survive."""
        excerpt_matrix = await self._excerpt_matrix(excerpts) if excerpts else None
        texts = [
            f"{s.label.strip()}\n{s.description.strip()}" if s.description.strip() else s.label.strip()
            for s in statements
        ]
        vectors = await self._embeddings.embed_many(texts)

        accepted: list[Code] = []
        seen: set[str] = set()
        for statement, vector in zip(statements, vectors):
            try:
                self._validate_grounding(
                    statement, code.source_id, vector, excerpt_matrix, bool(excerpts)
                )
            except GroundingValidationError as e:
                outcome.rejected += 1
                logger.debug("Discarding split of %s: %s", code.id, e)
                continue

            split = self._make_split(code, statement, sources.get(code.source_id))
            if split.id in seen:
                continue
            seen.add(split.id)
            accepted.append(split)

        if not accepted:
            return [code]
        outcome.accepted += len(accepted)
        outcome.codes_split += 1
        return accepted

    async def _enrich_batch(
        self,
        batch: list[Code],
        per_code: int,
        sources: dict[str, Source],
        excerpts: dict[str, list[str]],
    ) -> _SplitBatchOutcome:
        outcome = _SplitBatchOutcome(codes=list(batch))

        try:
            await self._budget.acquire("enrichment")
        except BudgetExhaustedError:
            self._metrics.record_llm_call("enrichment", "budget_exhausted")
            outcome.unbudgeted = True
            return outcome

        try:
            response = await self._llm.complete_json(
                self._build_prompt(batch, per_code),
                CodeSplitResponse,
                operation="enrichment",
            )
        except ProviderError as e:
            self._metrics.record_llm_call("enrichment", "error")
            logger.warning("Split batch of %d codes failed: %s", len(batch), e)
            outcome.failed = True
            outcome.error = f"enrichment batch: {e}"
            return outcome

        self._metrics.record_llm_call("enrichment", "success")
        if response is None:
            outcome.failed = True
            outcome.error = "enrichment batch: unparseable response"
            return outcome

        statements: dict[str, list[AtomicStatement]] = {}
        for split in response.splits:
            statements.setdefault(split.original_code_id, []).extend(split.atomic_statements)

        codes: list[Code] = []
        for code in batch:
            # Repeated entries for one code share its cap
            proposed = statements.get(code.id, [])[:per_code]
            if not proposed:
                codes.append(code)
                continue
            codes.extend(
                await self._split_code(
                    code, proposed, sources, excerpts.get(code.source_id, []), outcome
                )
            )
        outcome.codes = codes
        return outcome

    async def enrich(
        self,
        codes: Sequence[Code],
        sources: Sequence[Source],
        target: int,
        cancel_token: CancellationToken | None = None,
        max_concurrency: int = 4,
    ) -> EnrichmentResult:
        """
        Split codes into finer statements when there are too few of them.

        Args:
            codes: Extracted codes.
            sources: Sources the codes came from (for verbatim excerpt checks).
            target: Target theme count.
            cancel_token: Optional run-wide cancellation signal.
            max_concurrency: Split requests in flight at once.

        Returns:
            EnrichmentResult; ``codes`` equals the input when nothing was applied.
        """
        result = EnrichmentResult(codes=list(codes))
        n = len(codes)

        if not self.should_enrich(n, target):
            logger.info("Enrichment not needed: %d codes for target %d", n, target)
            return result
        if self._llm is None or self._budget.limit == 0 or self._budget.exhausted:
            logger.info(
                "Enrichment skipped: %s",
                "no language model configured" if self._llm is None else "no LLM call budget",
            )
            return result

        per_code = splits_per_code(n, target, self._config.max_splits_per_code)
        result.splits_per_code = per_code
        size = self._config.split_batch_size
        batches = [list(codes[i : i + size]) for i in range(0, n, size)]
        source_map = {source.id: source for source in sources}
        excerpts = self._source_excerpts(codes)

        logger.info(
            "Enriching %d codes toward target %d: %d splits per code, %d batches",
            n,
            target,
            per_code,
            len(batches),
        )

        async def _run(batch: list[Code]) -> _SplitBatchOutcome:
            return await self._enrich_batch(batch, per_code, source_map, excerpts)

        outcomes = await bounded_gather(
            _run, batches, limit=max_concurrency, cancel_token=cancel_token
        )

        enriched: list[Code] = []
        seen: set[str] = set()
        for outcome in outcomes:
            for code in outcome.codes:
                if code.id not in seen:
                    seen.add(code.id)
                    enriched.append(code)
            result.codes_split += outcome.codes_split
            result.statements_accepted += outcome.accepted
            result.statements_rejected += outcome.rejected
            result.batches_failed += int(outcome.failed)
            result.batches_unbudgeted += int(outcome.unbudgeted)
            if outcome.error:
                result.errors.append(outcome.error)

        result.codes = enriched
        result.applied = result.codes_split > 0
        self._metrics.record_codes_dropped("ungrounded_split", result.statements_rejected)

        logger.info(
            "Enrichment: %d -> %d codes (%d statements accepted, %d rejected, %d batches failed, %d unbudgeted)",
            n,
            len(enriched),
            result.statements_accepted,
            result.statements_rejected,
            result.batches_failed,
            result.batches_unbudgeted,
        )
        return result
