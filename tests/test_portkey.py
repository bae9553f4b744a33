"""Tests for the Portkey provider (no network)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from convo_context.llm.portkey import ANTHROPIC_DEFAULT_MAX_TOKENS, PortkeyLLMProvider
from convo_context.llm.types import LLMProviderError, Message


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PORTKEY_API_KEY", "PORTKEY_VIRTUAL_KEY", "PORTKEY_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def _response(content="hello"):
    return SimpleNamespace(
        id="chatcmpl-1",
        model="gpt-4o-mini",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=2, total_tokens=12),
    )


def _client(create):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


class TestConstruction:
    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="API key"):
            PortkeyLLMProvider(virtual_key="vk-openai")

    def test_requires_virtual_key_or_config(self):
        with pytest.raises(ValueError, match="virtual_key or config"):
            PortkeyLLMProvider(api_key="pk-test")

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("PORTKEY_API_KEY", "pk-env")
        monkeypatch.setenv("PORTKEY_VIRTUAL_KEY", "vk-env")
        provider = PortkeyLLMProvider()
        assert provider.api_key == "pk-env"
        assert provider._get_virtual_key_for_provider("openai") == "vk-env"

    def test_virtual_key_fallback(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_keys={"openai": "vk-o", "gemini": "vk-g"})
        assert provider._get_virtual_key_for_provider("google") == "vk-g"
        assert provider._get_virtual_key_for_provider("anthropic") == "vk-o"

    def test_model_info(self):
        provider = PortkeyLLMProvider(api_key="pk-test", config="cfg-1", model="gpt-4o", default_max_tokens=512)
        info = provider.get_model_info()
        assert info["model"] == "gpt-4o"
        assert info["provider"] == "Portkey"
        assert info["default_max_tokens"] == 512


class TestBuildParams:
    def test_anthropic_gets_default_max_tokens(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        params = provider._build_params("claude-3-5-haiku", [], None, None, None)
        assert params["max_tokens"] == ANTHROPIC_DEFAULT_MAX_TOKENS
        assert params["temperature"] == 0.7

    def test_gpt5_uses_max_completion_tokens(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        params = provider._build_params("gpt-5", [], 0.2, 100, ["END"])
        assert params["max_completion_tokens"] == 100
        assert "max_tokens" not in params
        assert params["stop"] == ["END"]


class TestCompletion:
    @pytest.mark.asyncio
    async def test_completion(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        create = AsyncMock(return_value=_response("SUMMARY: ok"))

        with patch.object(provider, "_create_client_for_provider", return_value=_client(create)):
            response = await provider.completion(
                [Message(role="user", content="hi")],
                model="gpt-4o",
                response_format={"type": "json_object"},
            )

        assert response.content == "SUMMARY: ok"
        assert response.usage["total_tokens"] == 12
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_response_carries_text_only(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        create = AsyncMock(return_value=_response("SUMMARY: ok"))

        with patch.object(provider, "_create_client_for_provider", return_value=_client(create)):
            response = await provider.completion([Message(role="user", content="hi")], model="gpt-4o")

        assert set(response.model_dump()) == {"content", "role", "finish_reason", "model", "id", "usage"}
        assert response.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        create = AsyncMock(side_effect=RuntimeError("gateway down"))

        with patch.object(provider, "_create_client_for_provider", return_value=_client(create)):
            with pytest.raises(LLMProviderError) as exc_info:
                await provider.completion([Message(role="user", content="hi")])

        assert exc_info.value.provider == "Portkey"
        assert isinstance(exc_info.value.original_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_empty_messages_rejected(self):
        provider = PortkeyLLMProvider(api_key="pk-test", virtual_key="vk")
        with pytest.raises(ValueError):
            await provider.completion([])
