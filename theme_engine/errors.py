"""
Error taxonomy for theme extraction.

Two groups of failures exist. Recoverable ones (ProviderError,
GroundingValidationError, BudgetExhaustedError) are handled where they
occur: the affected item is skipped or falls back, and the run goes on.
Fatal ones (InconsistentDimensionError, InvalidInputError,
InsufficientDataError) abort the whole run, since continuing would corrupt
or trivialize the output. ConvergenceWarning is a warning category, not an
exception a caller needs to handle.
"""


class ThemeEngineError(Exception):
    """Base exception for all theme-engine errors."""


class ProviderError(ThemeEngineError):
    """An embedding or language-model call failed.

    Raised after the provider's own retries are exhausted. Callers skip the
    affected item (code, source or batch) and log it.
    """

    def __init__(self, message: str, provider: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class CircuitOpenError(ProviderError):
    """Raised when calling through an open circuit breaker."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message, provider=provider, retryable=False)


class InconsistentDimensionError(ThemeEngineError):
    """An embedding's dimension differs from the one established for the run."""

    def __init__(self, expected: int, actual: int, context: str | None = None):
        where = f" for {context}" if context else ""
        super().__init__(
            f"Embedding dimension mismatch{where}: expected {expected}, got {actual}. "
            "All embeddings within a run must come from the same model; check that "
            "the embedding provider and any shared cache were not switched mid-run."
        )
        self.expected = expected
        self.actual = actual
        self.context = context


class InvalidInputError(ThemeEngineError):
    """Input cannot be processed (dimension < 2, non-finite values, bad request)."""


class GroundingValidationError(ThemeEngineError):
    """A generated statement is not supported by any excerpt of its source."""

    def __init__(self, label: str, source_id: str, best_similarity: float, threshold: float):
        super().__init__(
            f"Statement {label!r} from source {source_id} not grounded: "
            f"best excerpt similarity {best_similarity:.3f} does not exceed {threshold:.3f}"
        )
        self.label = label
        self.source_id = source_id
        self.best_similarity = best_similarity
        self.threshold = threshold


class InsufficientDataError(ThemeEngineError):
    """Too few valid codes remain to form a meaningful set of clusters."""

    def __init__(self, message: str, available: int = 0, required: int = 0):
        super().__init__(message)
        self.available = available
        self.required = required


class BudgetExhaustedError(ThemeEngineError):
    """The per-run language-model call budget has been used up."""

    def __init__(self, budget: int):
        super().__init__(f"Language-model call budget of {budget} exhausted")
        self.budget = budget


class PipelineCancelledError(ThemeEngineError):
    """The run was cancelled through its cancellation token."""


class ConvergenceWarning(UserWarning):
    """Clustering stopped at its iteration limit before converging."""
