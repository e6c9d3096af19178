"""Language-model access for code extraction, splitting and labeling.

Every stage asks for one thing: send a prompt, get back a reply validated
against a Pydantic model. LLMClient does that over OpenAI (JSON mode) or
Anthropic (forced tool call), with a per-call timeout, jittered retries
and a circuit breaker shared by all requests of the client.

The provider SDK is imported and constructed on the first request, so a
run that never reaches the model needs neither the package nor a key.
"""

import asyncio
import json
import logging
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from theme_engine.concurrency.backoff import ExponentialBackoff, retry_async
from theme_engine.errors import ProviderError
from theme_engine.llm.circuit_breaker import GenericCircuitBreaker
from theme_engine.llm.config import LLMConfig
from theme_engine.llm.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class JSONCompletionClient(Protocol):
    """What the extraction stages need from a language model."""

    async def complete_json(
        self,
        prompt: str,
        response_model: type[M],
        operation: str = "completion",
    ) -> M | None:
        """Return the validated response, None if unparseable; raise ProviderError on failure."""
        ...


class LLMClient:
    """JSON completions against the configured provider.

    ``complete_json`` returns None when the reply is empty or does not fit
    the response model, and raises ProviderError when the provider keeps
    failing or the circuit is open. Callers treat both as "use the
    fallback" but only the latter counts toward the breaker.

    Args:
        config: Provider choice, credentials, models and retry knobs.
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        self._config = config or LLMConfig()
        self._sdk: Any = None
        self._breaker = GenericCircuitBreaker(
            failure_threshold=self._config.circuit_failure_threshold,
            recovery_timeout=self._config.circuit_recovery_timeout,
            name=self._config.provider,
        )
        self._calls = 0
        self._failures = 0
        self._parse_failures = 0

    def _sdk_client(self) -> Any:
        if self._sdk is not None:
            return self._sdk
        cfg = self._config
        if cfg.provider == "anthropic":
            import anthropic

            key = cfg.anthropic_api_key.get_secret_value() if cfg.anthropic_api_key else None
            self._sdk = anthropic.AsyncAnthropic(api_key=key, timeout=cfg.llm_timeout, max_retries=0)
        else:
            import openai

            key = cfg.openai_api_key.get_secret_value() if cfg.openai_api_key else None
            self._sdk = openai.AsyncOpenAI(api_key=key, timeout=cfg.llm_timeout, max_retries=0)
        return self._sdk

    @property
    def breaker(self) -> GenericCircuitBreaker:
        return self._breaker

    async def _request_openai(self, prompt: str, response_model: type[BaseModel]) -> str | None:
        import openai

        try:
            completion = await self._sdk_client().chat.completions.create(
                model=self._config.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._config.temperature,
                max_tokens=self._config.max_output_tokens,
                response_format={"type": "json_object"},
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenAI request failed ({e.status_code}): {e.message}",
                provider="openai",
                retryable=e.status_code == 429 or e.status_code >= 500,
            ) from e
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenAI request failed: {e}", provider="openai") from e

        return completion.choices[0].message.content

    async def _request_anthropic(self, prompt: str, response_model: type[BaseModel]) -> str | None:
        import anthropic

        submit_tool = {
            "name": "submit_result",
            "description": "Submit the structured result of the task",
            "input_schema": response_model.model_json_schema(by_alias=True),
        }
        try:
            message = await self._sdk_client().messages.create(
                model=self._config.anthropic_model,
                max_tokens=self._config.max_output_tokens,
                temperature=self._config.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                tools=[submit_tool],
                tool_choice={"type": "tool", "name": "submit_result"},
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Anthropic request failed ({e.status_code}): {e.message}",
                provider="anthropic",
                retryable=e.status_code == 429 or e.status_code >= 500,
            ) from e
        except anthropic.AnthropicError as e:
            raise ProviderError(f"Anthropic request failed: {e}", provider="anthropic") from e

        tool_inputs = [
            block.input
            for block in message.content
            if block.type == "tool_use" and block.name == "submit_result"
        ]
        if not tool_inputs:
            logger.warning("Anthropic reply had no submit_result call")
            return None
        return json.dumps(tool_inputs[0])

    async def _request(self, prompt: str, response_model: type[BaseModel]) -> str | None:
        if self._config.provider == "anthropic":
            request = self._request_anthropic(prompt, response_model)
        else:
            request = self._request_openai(prompt, response_model)
        try:
            return await asyncio.wait_for(request, timeout=self._config.llm_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{self._config.provider} request timed out after {self._config.llm_timeout}s",
                provider=self._config.provider,
            ) from e

    async def complete_json(
        self,
        prompt: str,
        response_model: type[M],
        operation: str = "completion",
    ) -> M | None:
        """Send a prompt and validate the JSON reply.

        Args:
            prompt: User prompt (the system prompt is added automatically).
            response_model: Pydantic model the reply must satisfy.
            operation: Label for logs (extraction, enrichment, labeling).

        Returns:
            Parsed model, or None if the reply could not be parsed/validated.

        Raises:
            ProviderError: The call failed after all retries, or the circuit is open.
        """
        self._calls += 1
        try:
            raw = await retry_async(
                self._breaker.call,
                self._request,
                prompt,
                response_model,
                max_retries=self._config.max_retries,
                backoff=ExponentialBackoff(
                    base_delay=self._config.backoff_base_delay,
                    max_delay=self._config.backoff_max_delay,
                ),
                retry_on=(ProviderError,),
                description=f"{operation} request",
            )
        except ProviderError:
            self._failures += 1
            raise
        return self._parse_response(raw, response_model, operation)

    def _parse_response(self, raw: str | None, response_model: type[M], operation: str) -> M | None:
        if raw:
            try:
                return response_model.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("Discarding unusable %s reply: %s", operation, e)
        else:
            logger.warning("Empty %s reply", operation)
        self._parse_failures += 1
        return None

    def get_stats(self) -> dict[str, Any]:
        return {
            "provider": self._config.provider,
            "model": self._config.active_model,
            "calls": self._calls,
            "failures": self._failures,
            "parse_failures": self._parse_failures,
            "circuit": self._breaker.get_stats(),
        }

    async def close(self) -> None:
        if self._sdk is None:
            return
        sdk, self._sdk = self._sdk, None
        await sdk.close()
