"""
Language-model access for extraction, enrichment and labeling.

Components:
- LLMConfig: API keys, model selection, timeouts, retries, budget
- LLMClient: OpenAI/Anthropic JSON-completion client with circuit breaker
- JSONCompletionClient: protocol the pipeline stages depend on
- LLMCallBudget: per-run call cap shared by enrichment and labeling
- GenericCircuitBreaker: CLOSED/OPEN/HALF_OPEN provider guard
"""

from theme_engine.llm.budget import LLMCallBudget
from theme_engine.llm.circuit_breaker import CircuitState, GenericCircuitBreaker
from theme_engine.llm.client import JSONCompletionClient, LLMClient
from theme_engine.llm.config import LLMConfig

__all__ = [
    "LLMConfig",
    "LLMClient",
    "JSONCompletionClient",
    "LLMCallBudget",
    "GenericCircuitBreaker",
    "CircuitState",
]
