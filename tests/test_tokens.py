"""Tests for token estimation."""

from convo_context.llm.context_compaction.tokens import (
    MESSAGE_BOUNDARY_TOKENS,
    calculate_remaining_context,
    detect_model_family,
    estimate_conversation_tokens,
    estimate_message_tokens,
    estimate_tokens,
    find_truncation_point,
    get_token_stats,
    message_cost,
    would_exceed_context,
)


class TestModelFamily:
    def test_openai_models(self):
        assert detect_model_family("gpt-4o") == "gpt"
        assert detect_model_family("openai/gpt-4o-mini") == "gpt"

    def test_anthropic_models(self):
        assert detect_model_family("claude-sonnet-4") == "claude"
        assert detect_model_family("anthropic/claude-3-5-haiku") == "claude"

    def test_unknown_models_are_generic(self):
        assert detect_model_family("llama-3-70b") == "generic"
        assert detect_model_family(None) == "generic"
        assert detect_model_family("") == "generic"


class TestEstimateTokens:
    def test_empty_text(self):
        estimate = estimate_tokens("")
        assert estimate.tokens == 0
        assert estimate.characters == 0

    def test_none_counts_as_empty(self):
        assert estimate_tokens(None).tokens == 0

    def test_plain_text_uses_family_ratio(self):
        assert estimate_tokens("a" * 400, "gpt-4o").tokens == 100
        assert estimate_tokens("a" * 380, "claude-sonnet-4").tokens == 100
        assert estimate_tokens("a" * 420, "generic").tokens == 100

    def test_method_reports_family(self):
        assert estimate_tokens("hello", "gpt-4o").method == "gpt"

    def test_system_prompt_multiplier(self):
        plain = estimate_tokens("a" * 400, "gpt-4o").tokens
        system = estimate_tokens("a" * 400, "gpt-4o", is_system_prompt=True).tokens
        assert system == 105
        assert system > plain

    def test_code_blocks_cost_more(self):
        prose = "a" * 60
        code = "```" + "a" * 54 + "```"
        assert estimate_tokens(code, "gpt-4o").tokens > estimate_tokens(prose, "gpt-4o").tokens

    def test_json_heavy_text_costs_more(self):
        plain = "a" * 40
        json_like = '{"a":"b","c":["d"]}' + "a" * 21
        assert len(json_like) == len(plain)
        assert estimate_tokens(json_like, "gpt-4o").tokens > estimate_tokens(plain, "gpt-4o").tokens

    def test_non_ascii_costs_more(self):
        assert estimate_tokens("é" * 40, "gpt-4o").tokens > estimate_tokens("e" * 40, "gpt-4o").tokens

    def test_monotonic_in_length(self):
        previous = 0
        for length in range(0, 200, 7):
            tokens = estimate_tokens("word " * length, "generic").tokens
            assert tokens >= previous
            previous = tokens

    def test_non_string_is_estimated_as_json(self):
        assert estimate_tokens({"key": "value"}).tokens > 0


class TestMessageEstimates:
    def test_role_token_is_counted(self):
        message = {"role": "user", "content": "a" * 400}
        assert estimate_message_tokens(message, "gpt-4o").tokens == 101

    def test_none_message(self):
        assert estimate_message_tokens(None).tokens == 0
        assert message_cost(None) == 0

    def test_structured_content_parts(self):
        message = {
            "role": "user",
            "content": [{"type": "text", "text": "hello"}, None, "plain part"],
        }
        assert estimate_message_tokens(message, "gpt-4o").tokens > 1

    def test_tool_calls_add_overhead(self):
        plain = {"role": "assistant", "content": "checking"}
        with_tool = dict(plain, tool_calls=[
            {"id": "call_1", "type": "function", "function": {"name": "ls", "arguments": "{}"}}
        ])
        assert estimate_message_tokens(with_tool, "gpt-4o").tokens > estimate_message_tokens(plain, "gpt-4o").tokens

    def test_message_cost_includes_boundary(self):
        message = {"role": "user", "content": "hi there"}
        assert message_cost(message) == estimate_message_tokens(message).tokens + MESSAGE_BOUNDARY_TOKENS

    def test_conversation_skips_none_and_adds_boundaries(self):
        messages = [{"role": "user", "content": "a" * 400}, None, {"role": "assistant", "content": "a" * 400}]
        assert estimate_conversation_tokens(messages, "gpt-4o").tokens == 2 * (101 + MESSAGE_BOUNDARY_TOKENS)

    def test_empty_conversation(self):
        assert estimate_conversation_tokens([]).tokens == 0


class TestBudgetHelpers:
    def test_remaining_context(self):
        messages = [{"role": "user", "content": "a" * 400}]
        result = calculate_remaining_context(messages, "", 1000, "gpt-4o")
        assert result["used"] == 103
        assert result["remaining"] == 897
        assert result["system_tokens"] == 0

    def test_would_exceed_context(self):
        messages = [{"role": "user", "content": "a" * 4000}]
        assert would_exceed_context(messages, "a" * 400, "", 1500, "gpt-4o", safety_margin=500)
        assert not would_exceed_context(messages, "a" * 400, "", 5000, "gpt-4o", safety_margin=500)

    def test_find_truncation_point_keeps_newest(self):
        messages = [{"role": "user", "content": "a" * 400} for _ in range(10)]
        result = find_truncation_point(messages, "", 500, "gpt-4o", safety_margin=0)
        assert result["keep_from_index"] == 6
        assert len(result["truncated_messages"]) == 4
        assert result["tokens_saved"] > 0

    def test_token_stats_breakdown(self):
        messages = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        stats = get_token_stats(messages, "be brief", "gpt-4o")
        assert [entry["role"] for entry in stats["breakdown"]] == ["user", "assistant"]
        assert stats["total"].tokens == stats["system"].tokens + stats["messages"].tokens
