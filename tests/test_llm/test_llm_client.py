"""Tests for LLMClient with mocked SDK clients."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from theme_engine.errors import CircuitOpenError, ProviderError
from theme_engine.llm.circuit_breaker import CircuitState
from theme_engine.llm.client import LLMClient
from theme_engine.llm.config import LLMConfig
from theme_engine.llm.schemas import CodeExtractionResponse, ThemeLabelResponse

VALID_LABELS = json.dumps({"themes": [{"clusterId": "cluster_a", "label": "Commuting", "description": "d"}]})


@pytest.fixture
def config():
    return LLMConfig(max_retries=0, backoff_base_delay=0.0, backoff_max_delay=0.0)


def _openai_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestCompleteJson:
    """Test validation and error handling around _request."""

    async def test_valid_response(self, config):
        client = LLMClient(config)
        client._request = AsyncMock(return_value=VALID_LABELS)
        result = await client.complete_json("prompt", ThemeLabelResponse, operation="labeling")
        assert isinstance(result, ThemeLabelResponse)
        assert result.themes[0].label == "Commuting"

    async def test_invalid_json_returns_none(self, config):
        client = LLMClient(config)
        client._request = AsyncMock(return_value="not json {")
        assert await client.complete_json("prompt", ThemeLabelResponse) is None
        assert client.get_stats()["parse_failures"] == 1

    async def test_schema_mismatch_returns_none(self, config):
        client = LLMClient(config)
        client._request = AsyncMock(return_value=json.dumps({"codes": [{"label": "no source"}]}))
        assert await client.complete_json("prompt", CodeExtractionResponse) is None

    async def test_empty_reply_returns_none(self, config):
        client = LLMClient(config)
        client._request = AsyncMock(return_value=None)
        assert await client.complete_json("prompt", ThemeLabelResponse) is None

    async def test_provider_error_raised(self, config):
        client = LLMClient(config)
        client._request = AsyncMock(side_effect=ProviderError("rate limited"))
        with pytest.raises(ProviderError):
            await client.complete_json("prompt", ThemeLabelResponse)
        assert client.get_stats()["failures"] == 1

    async def test_retries_retryable_errors(self):
        config = LLMConfig(max_retries=2, backoff_base_delay=0.0, backoff_max_delay=0.0)
        client = LLMClient(config)
        client._request = AsyncMock(side_effect=[ProviderError("500"), VALID_LABELS])
        result = await client.complete_json("prompt", ThemeLabelResponse)
        assert result is not None
        assert client._request.await_count == 2

    async def test_circuit_opens_after_repeated_failures(self):
        config = LLMConfig(max_retries=0, circuit_failure_threshold=2)
        client = LLMClient(config)
        client._request = AsyncMock(side_effect=ProviderError("down"))
        for _ in range(2):
            with pytest.raises(ProviderError):
                await client.complete_json("prompt", ThemeLabelResponse)
        assert client.breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await client.complete_json("prompt", ThemeLabelResponse)
        assert client._request.await_count == 2


class TestOpenAIBackend:
    async def test_sends_json_mode_request(self, config):
        client = LLMClient(config)
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(return_value=_openai_response(VALID_LABELS))
        client._sdk = sdk

        result = await client.complete_json("label these", ThemeLabelResponse)

        assert result.themes[0].cluster_id == "cluster_a"
        kwargs = sdk.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == config.openai_model
        assert kwargs["messages"][1] == {"role": "user", "content": "label these"}

    async def test_sdk_error_becomes_provider_error(self, config):
        import openai

        client = LLMClient(config)
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("connection reset"))
        client._sdk = sdk

        with pytest.raises(ProviderError) as exc_info:
            await client.complete_json("prompt", ThemeLabelResponse)
        assert exc_info.value.provider == "openai"


class TestAnthropicBackend:
    async def test_reads_tool_use_block(self):
        config = LLMConfig(provider="anthropic", max_retries=0)
        client = LLMClient(config)
        block = SimpleNamespace(
            type="tool_use",
            name="submit_result",
            input={"themes": [{"clusterId": "cluster_a", "label": "Heat", "description": ""}]},
        )
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(return_value=SimpleNamespace(content=[block]))
        client._sdk = sdk

        result = await client.complete_json("prompt", ThemeLabelResponse)

        assert result.themes[0].label == "Heat"
        kwargs = sdk.messages.create.await_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "submit_result"}

    async def test_missing_tool_block_returns_none(self):
        config = LLMConfig(provider="anthropic", max_retries=0)
        client = LLMClient(config)
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(type="text", name=None, input=None)])
        )
        client._sdk = sdk
        assert await client.complete_json("prompt", ThemeLabelResponse) is None


class TestLifecycle:
    async def test_close_releases_clients(self, config):
        client = LLMClient(config)
        sdk = MagicMock()
        sdk.close = AsyncMock()
        client._sdk = sdk
        await client.close()
        sdk.close.assert_awaited_once()
        assert client._sdk is None

    def test_stats(self, config):
        stats = LLMClient(config).get_stats()
        assert stats["provider"] == "openai"
        assert stats["model"] == config.openai_model
        assert stats["circuit"]["state"] == "closed"
