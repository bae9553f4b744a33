"""
Base classes and utilities for context compaction.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional


ROLE_LABELS = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
    "tool": "Tool",
}


class ContextCompactionError(Exception):
    """Base exception for caller errors in the compaction package."""


class SegmentAlreadyCompactedError(ContextCompactionError):
    """Raised when compaction is requested for a segment that has a summary."""

    def __init__(self, segment_id: str):
        super().__init__(f"Segment {segment_id} is already compacted")
        self.segment_id = segment_id


def is_context_length_error(error: Exception) -> bool:
    """
    Check if an error is a context length error from various providers.

    Handles:
    - Anthropic/Bedrock: "prompt is too long: X tokens > Y maximum"
    - Bedrock: "Input is too long for requested model"
    - Anthropic/Bedrock: "input length and `max_tokens` exceed context limit"
    - OpenAI: "context_length_exceeded" / "maximum context length"
    - Google/Gemini: "exceeds the maximum number of tokens"

    Args:
        error: The exception to check

    Returns:
        True if this is a context length error
    """
    texts = [str(error).lower()]
    body = getattr(error, "body", None)
    if body:
        texts.append(str(body).lower())
    original = getattr(error, "original_error", None)
    if original is not None and original is not error:
        texts.append(str(original).lower())

    for text in texts:
        if "prompt is too long" in text and "tokens" in text:
            return True
        if "input is too long" in text:
            return True
        if "input length and" in text and "max_tokens" in text and "exceed context limit" in text:
            return True
        if "context_length_exceeded" in text or "maximum context length" in text:
            return True
        if "token limit" in text or "too many tokens" in text:
            return True
        if ("exceeds the maximum" in text or "exceeds maximum" in text) and "token" in text:
            return True
    return False


def render_content(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, default=str)


def render_transcript(messages: Iterable[Optional[Dict[str, Any]]]) -> str:
    """
    Render messages as a plain transcript for the summarization models.

    Each message becomes ``Role: content``; tool calls are appended as JSON.
    """
    blocks: List[str] = []
    for message in messages:
        if not message:
            continue
        label = ROLE_LABELS.get(message.get("role", ""), "Assistant")
        text = render_content(message.get("content"))
        if message.get("tool_calls"):
            text = f"{text}\n[tool_calls] {render_content(message['tool_calls'])}".strip()
        blocks.append(f"{label}: {text}")
    return "\n\n".join(blocks)


class ContextCompactionProvider(ABC):
    """
    Abstract base class for context compaction strategies.

    A compaction provider takes the full conversation and returns a list
    that fits the model's context window.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the context compaction provider.

        Args:
            logger: Optional logger for debugging
        """
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    async def compact(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: str,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> List[Dict[str, Any]]:
        """
        Compact the conversation history to fit within context limits.

        Args:
            messages: Full conversation history
            system_prompt: System prompt that accompanies the messages
            model: Model the conversation is sent to
            **kwargs: Additional provider-specific options

        Returns:
            Compacted message list
        """
        pass

    def should_compact(self, error: Exception) -> bool:
        """
        Check if the given error indicates that compaction is needed.

        Args:
            error: The exception from the LLM API

        Returns:
            True if compaction should be attempted
        """
        return is_context_length_error(error)
