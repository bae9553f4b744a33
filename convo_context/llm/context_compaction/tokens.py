"""
Token estimation for context management.

Calibrated character-based estimates per model family. No tokenizer is
loaded; the numbers are tuned to slightly overcount, which keeps budget
decisions on the safe side.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional

from convo_context.llm.utils import get_provider_from_model

from .types import MessageDict, TokenEstimate


MODEL_PATTERNS: Dict[str, Dict[str, float]] = {
    "gpt": {
        "base_ratio": 4.0,
        "json_overhead": 0.10,
        "tool_call_overhead": 0.15,
        "system_prompt_multiplier": 1.05,
    },
    "claude": {
        "base_ratio": 3.8,
        "json_overhead": 0.08,
        "tool_call_overhead": 0.12,
        "system_prompt_multiplier": 1.03,
    },
    "generic": {
        "base_ratio": 4.2,
        "json_overhead": 0.12,
        "tool_call_overhead": 0.18,
        "system_prompt_multiplier": 1.10,
    },
}

ROLE_TOKENS = 1
MESSAGE_BOUNDARY_TOKENS = 2
CODE_CHARS_PER_TOKEN = 3
MARKDOWN_TOKEN_WEIGHT = 0.5
UNICODE_TOKEN_WEIGHT = 0.3

TOOL_PAYLOAD_KEYS = ("tool_calls", "function_call")

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_JSON_CHARS_RE = re.compile(r'[{}\[\]",:]')
_MARKDOWN_CHARS_RE = re.compile(r"[*_`#\-+>|]")
_NON_ASCII_RE = re.compile(r"[^\x00-\x7F]")


def detect_model_family(model_id: Optional[str]) -> str:
    """
    Map a model id to one of the estimator families.

    Args:
        model_id: Model identifier, e.g. "gpt-4o" or "anthropic/claude-sonnet-4"

    Returns:
        "gpt", "claude" or "generic"
    """
    provider = get_provider_from_model(model_id or "")
    if provider == "openai":
        return "gpt"
    if provider == "anthropic":
        return "claude"
    return "generic"


def _canonical(value: Any) -> str:
    """Compact JSON form used when estimating structured payloads."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def estimate_tokens(
    text: Any,
    model_id: Optional[str] = "generic",
    is_system_prompt: bool = False,
) -> TokenEstimate:
    """
    Estimate tokens for a text string.

    Args:
        text: Text to estimate. Non-string values are estimated via their
              canonical JSON form; None counts as empty.
        model_id: Model identifier used to pick the family constants
        is_system_prompt: Apply the family's system-prompt multiplier

    Returns:
        TokenEstimate with tokens, characters and the family used
    """
    family = detect_model_family(model_id)
    patterns = MODEL_PATTERNS[family]

    if text is None:
        text = ""
    elif not isinstance(text, str):
        text = _canonical(text)

    if not text:
        return TokenEstimate(tokens=0, characters=0, method=family)

    tokens = math.ceil(len(text) / patterns["base_ratio"])

    json_chars = len(_JSON_CHARS_RE.findall(text))
    tokens += math.ceil(json_chars * patterns["json_overhead"])

    # Code is denser than prose
    code_chars = sum(len(block) for block in _CODE_BLOCK_RE.findall(text))
    if code_chars:
        tokens += math.ceil(code_chars / CODE_CHARS_PER_TOKEN)

    tokens += math.ceil(len(_MARKDOWN_CHARS_RE.findall(text)) * MARKDOWN_TOKEN_WEIGHT)
    tokens += math.ceil(len(_NON_ASCII_RE.findall(text)) * UNICODE_TOKEN_WEIGHT)

    if is_system_prompt:
        tokens = math.ceil(tokens * patterns["system_prompt_multiplier"])

    return TokenEstimate(tokens=tokens, characters=len(text), method=family)


def estimate_message_tokens(
    message: Optional[MessageDict],
    model_id: Optional[str] = "generic",
) -> TokenEstimate:
    """
    Estimate tokens for a single OpenAI-format message.

    Counts one role token, every content part and any tool-call payload
    (with the family's tool-call overhead applied).

    Args:
        message: Message dict; None estimates to zero
        model_id: Model identifier

    Returns:
        TokenEstimate for the whole message
    """
    family = detect_model_family(model_id)
    if not message:
        return TokenEstimate(tokens=0, characters=0, method=family)

    patterns = MODEL_PATTERNS[family]
    total_tokens = ROLE_TOKENS
    total_chars = 0

    content = message.get("content")
    if isinstance(content, str):
        estimate = estimate_tokens(content, model_id, is_system_prompt=message.get("role") == "system")
        total_tokens += estimate.tokens
        total_chars += estimate.characters
    elif isinstance(content, list):
        for part in content:
            if part is None:
                continue
            estimate = estimate_tokens(part if isinstance(part, str) else _canonical(part), model_id)
            total_tokens += estimate.tokens
            total_chars += estimate.characters
    elif content is not None:
        estimate = estimate_tokens(_canonical(content), model_id)
        total_tokens += estimate.tokens
        total_chars += estimate.characters

    for key in TOOL_PAYLOAD_KEYS:
        payload = message.get(key)
        if payload:
            estimate = estimate_tokens(_canonical(payload), model_id)
            total_tokens += math.ceil(estimate.tokens * (1 + patterns["tool_call_overhead"]))
            total_chars += estimate.characters

    return TokenEstimate(tokens=total_tokens, characters=total_chars, method=family)


def message_cost(message: Optional[MessageDict], model_id: Optional[str] = "generic") -> int:
    """Tokens a message occupies inside a conversation, boundary included."""
    if not message:
        return 0
    return estimate_message_tokens(message, model_id).tokens + MESSAGE_BOUNDARY_TOKENS


def estimate_conversation_tokens(
    messages: List[Optional[MessageDict]],
    model_id: Optional[str] = "generic",
) -> TokenEstimate:
    """
    Estimate tokens for a list of messages, including message boundaries.

    Args:
        messages: Message dicts; None entries are skipped
        model_id: Model identifier

    Returns:
        TokenEstimate for the whole conversation
    """
    total_tokens = 0
    total_chars = 0
    for message in messages:
        if not message:
            continue
        estimate = estimate_message_tokens(message, model_id)
        total_tokens += estimate.tokens + MESSAGE_BOUNDARY_TOKENS
        total_chars += estimate.characters

    return TokenEstimate(tokens=total_tokens, characters=total_chars, method=detect_model_family(model_id))


def calculate_remaining_context(
    messages: List[Optional[MessageDict]],
    system_prompt: str,
    max_tokens: int,
    model_id: Optional[str] = "generic",
) -> Dict[str, Any]:
    """
    Calculate how much of the context window is used and how much is left.

    Returns:
        Dict with used, remaining, percentage, system_tokens and message_tokens
    """
    system_tokens = estimate_tokens(system_prompt, model_id, is_system_prompt=True).tokens
    message_tokens = estimate_conversation_tokens(messages, model_id).tokens
    used = system_tokens + message_tokens

    return {
        "used": used,
        "remaining": max(0, max_tokens - used),
        "percentage": (used / max_tokens * 100) if max_tokens > 0 else 100.0,
        "system_tokens": system_tokens,
        "message_tokens": message_tokens,
    }


def would_exceed_context(
    current_messages: List[Optional[MessageDict]],
    new_message: str,
    system_prompt: str,
    max_tokens: int,
    model_id: Optional[str] = "generic",
    safety_margin: int = 1000,
) -> bool:
    """Predict whether adding ``new_message`` (plus a response reserve) overflows."""
    current = calculate_remaining_context(current_messages, system_prompt, max_tokens, model_id)
    projected = current["used"] + estimate_tokens(new_message, model_id).tokens + safety_margin
    return projected > max_tokens


def find_truncation_point(
    messages: List[Optional[MessageDict]],
    system_prompt: str,
    max_tokens: int,
    model_id: Optional[str] = "generic",
    safety_margin: int = 1000,
) -> Dict[str, Any]:
    """
    Find the oldest index from which the newest messages still fit.

    Walks backwards from the most recent message, keeping messages while
    they fit in ``max_tokens`` minus the system prompt and safety margin.

    Returns:
        Dict with keep_from_index, truncated_messages and tokens_saved
    """
    system_tokens = estimate_tokens(system_prompt, model_id, is_system_prompt=True).tokens
    budget = max_tokens - system_tokens - safety_margin

    current_tokens = 0
    keep_from_index = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        message = messages[i]
        if not message:
            keep_from_index = i
            continue
        cost = estimate_message_tokens(message, model_id).tokens
        if current_tokens + cost > budget:
            break
        current_tokens += cost
        keep_from_index = i

    truncated = messages[keep_from_index:]
    original = estimate_conversation_tokens(messages, model_id).tokens
    remaining = estimate_conversation_tokens(truncated, model_id).tokens

    return {
        "keep_from_index": keep_from_index,
        "truncated_messages": truncated,
        "tokens_saved": original - remaining,
    }


def get_token_stats(
    messages: List[Optional[MessageDict]],
    system_prompt: str,
    model_id: Optional[str] = "generic",
) -> Dict[str, Any]:
    """Token usage breakdown for debugging."""
    system_estimate = estimate_tokens(system_prompt, model_id, is_system_prompt=True)
    message_estimate = estimate_conversation_tokens(messages, model_id)

    breakdown = []
    for index, message in enumerate(messages):
        estimate = estimate_message_tokens(message, model_id)
        breakdown.append({
            "role": message.get("role", "unknown") if message else "unknown",
            "tokens": estimate.tokens,
            "characters": estimate.characters,
            "index": index,
        })

    return {
        "total": TokenEstimate(
            tokens=system_estimate.tokens + message_estimate.tokens,
            characters=system_estimate.characters + message_estimate.characters,
            method=detect_model_family(model_id),
        ),
        "system": system_estimate,
        "messages": message_estimate,
        "breakdown": breakdown,
    }
