"""Ordered stage progress events for an external notification channel."""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Stages of a run, in execution order."""

    FAMILIARIZATION = "familiarization"
    CODING = "coding"
    ENRICHMENT = "enrichment"
    CLUSTERING = "clustering"
    DIVERSITY_ENFORCEMENT = "diversity_enforcement"
    LABELING = "labeling"
    PROVENANCE = "provenance"


STAGE_ORDER: tuple[PipelineStage, ...] = tuple(PipelineStage)


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update."""

    stage_name: PipelineStage
    percent_complete: float
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "stageName": self.stage_name.value,
            "percentComplete": round(self.percent_complete, 1),
            "message": self.message,
        }


ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class ProgressReporter:
    """
    Emits progress events to a sync or async callback.

    Percentages never decrease within a run. A failing callback is logged
    and ignored; notification problems do not affect the run.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._last_percent = 0.0
        self._events: list[ProgressEvent] = []

    @property
    def events(self) -> list[ProgressEvent]:
        return list(self._events)

    def stage_percent(self, stage: PipelineStage, fraction: float = 0.0) -> float:
        """Overall percentage at ``fraction`` of the way through ``stage``."""
        index = STAGE_ORDER.index(stage)
        fraction = min(max(fraction, 0.0), 1.0)
        return 100.0 * (index + fraction) / len(STAGE_ORDER)

    async def emit(self, stage: PipelineStage, message: str, fraction: float = 0.0) -> None:
        percent = max(self.stage_percent(stage, fraction), self._last_percent)
        self._last_percent = percent
        event = ProgressEvent(stage_name=stage, percent_complete=percent, message=message)
        self._events.append(event)
        logger.debug("Progress %.1f%% [%s] %s", percent, stage.value, message)

        if self._callback is None:
            return
        try:
            outcome = self._callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Progress callback failed at %s: %s", stage.value, e)
