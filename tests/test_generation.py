"""Tests for the generation boundary."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from convo_context.llm.context_compaction.generation import (
    Err,
    LLMProviderGenerator,
    Ok,
    extract_json,
    run_with_deadline,
)
from convo_context.llm.context_compaction.types import Importance, ImportanceAssessment
from convo_context.llm.types import CompletionResponse, LLMProviderError

from conftest import never_finishes


async def _value(value):
    return value


async def _fail():
    raise LLMProviderError("rate limited", status_code=429, provider="Portkey")


class TestRunWithDeadline:
    @pytest.mark.asyncio
    async def test_success(self):
        result = await run_with_deadline(_value("done"), timeout=1.0)
        assert result == Ok("done")
        assert result.ok

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await run_with_deadline(never_finishes(), timeout=0.01)
        assert isinstance(result, Err)
        assert "timed out" in result.reason

    @pytest.mark.asyncio
    async def test_exception_becomes_err(self):
        result = await run_with_deadline(_fail(), timeout=1.0)
        assert not result.ok
        assert result.reason.startswith("LLMProviderError")

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        event = asyncio.Event()
        event.set()
        result = await run_with_deadline(never_finishes(), timeout=1.0, cancel_event=event)
        assert result == Err("cancelled")

    @pytest.mark.asyncio
    async def test_cancelled_while_running(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)
        result = await run_with_deadline(never_finishes(), timeout=5.0, cancel_event=event)
        assert result == Err("cancelled")


class TestExtractJson:
    def test_plain(self):
        assert extract_json(' {"a": 1} ') == '{"a": 1}'

    def test_fenced(self):
        assert extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'


def _provider(content):
    provider = AsyncMock()
    provider.completion.return_value = CompletionResponse(content=content, model="gpt-4o-mini")
    return provider


class TestLLMProviderGenerator:
    @pytest.mark.asyncio
    async def test_generate_text(self):
        provider = _provider("SUMMARY: ok\nKEY_POINTS:")
        generator = LLMProviderGenerator(provider, model="claude-3-5-haiku")

        result = await generator.generate_text("summarize this", "be concise", timeout=1.0)

        assert result == Ok("SUMMARY: ok\nKEY_POINTS:")
        messages = provider.completion.call_args.args[0]
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[1].content == "summarize this"
        assert provider.completion.call_args.kwargs["model"] == "claude-3-5-haiku"
        assert provider.completion.call_args.kwargs["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_empty_content_is_err(self):
        generator = LLMProviderGenerator(_provider(None))
        result = await generator.generate_text("prompt", "system", timeout=1.0)
        assert not result.ok

    @pytest.mark.asyncio
    async def test_provider_error_is_err(self):
        provider = AsyncMock()
        provider.completion.side_effect = LLMProviderError("boom", provider="Portkey")
        result = await LLMProviderGenerator(provider).generate_text("prompt", "system", timeout=1.0)
        assert not result.ok

    @pytest.mark.asyncio
    async def test_generate_structured(self):
        provider = _provider(
            '```json\n{"importance": "high", "reasoning": "prod change", "topics": ["deploy"], '
            '"has_configuration_changes": true, "confidence": 0.8}\n```'
        )

        result = await LLMProviderGenerator(provider).generate_structured(
            "User: deploy it", ImportanceAssessment, timeout=1.0
        )

        assert result.ok
        assert result.value.importance == Importance.HIGH
        assert result.value.topics == ["deploy"]
        assert provider.completion.call_args.kwargs["response_format"] == {"type": "json_object"}
        system_message = provider.completion.call_args.args[0][0]
        assert "importance" in system_message.content

    @pytest.mark.asyncio
    async def test_invalid_record_is_err(self):
        provider = _provider('{"importance": "urgent"}')
        result = await LLMProviderGenerator(provider).generate_structured(
            "User: hi", ImportanceAssessment, timeout=1.0
        )
        assert isinstance(result, Err)
        assert "ImportanceAssessment" in result.reason

    @pytest.mark.asyncio
    async def test_out_of_range_confidence_is_err(self):
        provider = _provider('{"importance": "low", "confidence": 1.5}')
        result = await LLMProviderGenerator(provider).generate_structured(
            "User: hi", ImportanceAssessment, timeout=1.0
        )
        assert not result.ok
