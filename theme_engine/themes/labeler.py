"""
Theme labeling via the language model, with a representative-code fallback.

Clusters are labeled in small batches. Each call shows the model the codes
nearest to each centroid together with their excerpts. Calls are charged to
the shared per-run LLM budget. When a call is not made (no client, budget
exhausted), fails, or omits a cluster, that cluster takes the label and
description of its most representative code.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from theme_engine.clustering.metrics import cosine_similarity_matrix
from theme_engine.clustering.schemas import Cluster
from theme_engine.coding.schemas import Code
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.concurrency.pool import bounded_gather
from theme_engine.errors import BudgetExhaustedError, ProviderError
from theme_engine.llm.budget import LLMCallBudget
from theme_engine.llm.client import JSONCompletionClient
from theme_engine.llm.prompts import CLUSTER_BLOCK_TEMPLATE, THEME_LABEL_PROMPT
from theme_engine.llm.schemas import ThemeLabelResponse
from theme_engine.observability.metrics import get_metrics
from theme_engine.themes.config import ThemeConfig

logger = logging.getLogger(__name__)


@dataclass
class LabelingResult:
    labeled: int = 0
    fallback: int = 0
    errors: list[str] = field(default_factory=list)


def apply_fallback_label(cluster: Cluster) -> None:
    """Label a cluster after its most representative code."""
    representative = cluster.representative_code()
    cluster.label = representative.label
    cluster.description = representative.description


class ThemeLabeler:
    """
    Assigns labels and descriptions to clusters.

    Usage:
        labeler = ThemeLabeler(llm_client, budget)
        result = await labeler.label(clusters)
    """

    def __init__(
        self,
        llm_client: JSONCompletionClient | None,
        budget: LLMCallBudget,
        config: ThemeConfig | None = None,
    ) -> None:
        self._llm = llm_client
        self._budget = budget
        self._config = config or ThemeConfig()
        self._metrics = get_metrics()

    def _prompt_codes(self, cluster: Cluster) -> list[Code]:
        """Members ordered by similarity to the centroid, capped for the prompt."""
        sims = cosine_similarity_matrix(cluster.embeddings(), cluster.centroid[None, :])[:, 0]
        order = np.argsort(-sims, kind="stable")[: self._config.label_codes_per_cluster]
        return [cluster.codes[int(i)] for i in order]

    def _build_prompt(self, batch: Sequence[Cluster]) -> str:
        blocks = []
        for cluster in batch:
            lines = []
            for code in self._prompt_codes(cluster):
                line = f"- {code.label}: {code.description}"
                excerpts = code.excerpts[: self._config.label_excerpts_per_code]
                if excerpts:
                    line += "\n  " + "\n  ".join(f'"{e}"' for e in excerpts)
                lines.append(line)
            blocks.append(CLUSTER_BLOCK_TEMPLATE.format(cluster_id=cluster.cluster_id, codes="\n".join(lines)))
        return THEME_LABEL_PROMPT.format(clusters_block="\n\n".join(blocks))

    async def _label_batch(self, batch: list[Cluster]) -> LabelingResult:
        outcome = LabelingResult()

        def _fallback_all() -> None:
            for cluster in batch:
                apply_fallback_label(cluster)
            outcome.fallback += len(batch)

        if self._llm is None:
            _fallback_all()
            return outcome

        try:
            await self._budget.acquire("labeling")
        except BudgetExhaustedError:
            self._metrics.record_llm_call("labeling", "budget_exhausted")
            _fallback_all()
            return outcome

        try:
            response = await self._llm.complete_json(
                self._build_prompt(batch),
                ThemeLabelResponse,
                operation="labeling",
            )
        except ProviderError as e:
            self._metrics.record_llm_call("labeling", "error")
            logger.warning("Labeling batch of %d clusters failed: %s", len(batch), e)
            outcome.errors.append(f"labeling batch: {e}")
            _fallback_all()
            return outcome

        self._metrics.record_llm_call("labeling", "success")
        labels = {item.cluster_id: item for item in response.themes} if response else {}
        for cluster in batch:
            item = labels.get(cluster.cluster_id)
            if item is None or not item.label.strip():
                apply_fallback_label(cluster)
                outcome.fallback += 1
                continue
            cluster.label = item.label.strip()
            cluster.description = item.description.strip() or cluster.representative_code().description
            outcome.labeled += 1
        return outcome

    async def label(
        self,
        clusters: Sequence[Cluster],
        cancel_token: CancellationToken | None = None,
        max_concurrency: int = 4,
    ) -> LabelingResult:
        """
        Label every cluster in place.

        Args:
            clusters: Clusters to label.
            cancel_token: Optional run-wide cancellation signal.
            max_concurrency: Labeling calls in flight at once.

        Returns:
            LabelingResult with counts of model and fallback labels.
        """
        result = LabelingResult()
        if not clusters:
            return result

        size = self._config.labeling_batch_size
        batches = [list(clusters[i : i + size]) for i in range(0, len(clusters), size)]
        outcomes = await bounded_gather(
            self._label_batch, batches, limit=max_concurrency, cancel_token=cancel_token
        )
        for outcome in outcomes:
            result.labeled += outcome.labeled
            result.fallback += outcome.fallback
            result.errors.extend(outcome.errors)

        logger.info(
            "Labeled %d clusters (%d by model, %d fallback)",
            len(clusters),
            result.labeled,
            result.fallback,
        )
        return result
