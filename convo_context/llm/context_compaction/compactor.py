"""
Segment compaction: summary plus key points for a conversation segment.

The model is asked for a reply in a small fixed format::

    SUMMARY: two or three sentences,
    possibly wrapped over several lines
    KEY_POINTS:
    - first detail
    - second detail

``parse_compaction_response`` accepts exactly that shape, markers included.
Anything else is treated as unparseable and the deterministic fallback is
used instead.
"""

import asyncio
import logging
from typing import List, Optional

from .base import SegmentAlreadyCompactedError, render_transcript
from .generation import Err, TextGenerator
from .types import CompactionResult, ConversationSegment


SUMMARY_MARKER = "SUMMARY:"
KEY_POINTS_MARKER = "KEY_POINTS:"
BULLET_PREFIXES = ("-", "•", "*")

FALLBACK_SUMMARY_CHARS = 500
FALLBACK_KEY_POINT = "Summary generation failed - raw messages preserved"

SYSTEM_INSTRUCTION = (
    "You are a helpful assistant that creates concise but comprehensive "
    "summaries of technical conversations."
)

PROMPT_TEMPLATE = """You are summarizing a conversation segment for context management.

CONVERSATION SEGMENT:
{transcript}

Please provide:
1. A concise summary (2-3 sentences) of what was discussed and accomplished
2. Key technical details, configurations, or decisions that should be remembered
3. Any important context for future conversations

Focus on preserving information that would be valuable for continuing the conversation later.

Format your response exactly as:
SUMMARY: [concise summary]
KEY_POINTS:
- [important detail]
- [important detail]"""


def _strip_bullet(line: str) -> Optional[str]:
    if not line.startswith(BULLET_PREFIXES):
        return None
    point = line[1:].strip()
    return point or None


def parse_compaction_response(text: str) -> Optional[CompactionResult]:
    """
    Parse a ``SUMMARY:`` / ``KEY_POINTS:`` reply.

    Returns:
        CompactionResult, or None when the text deviates from the format
    """
    section = None
    summary_parts: List[str] = []
    key_points: List[str] = []

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(SUMMARY_MARKER):
            if section is not None:
                return None
            section = "summary"
            rest = line[len(SUMMARY_MARKER):].strip()
            if rest:
                summary_parts.append(rest)
            continue

        if line.startswith(KEY_POINTS_MARKER):
            if section != "summary":
                return None
            section = "key_points"
            rest = line[len(KEY_POINTS_MARKER):].strip()
            if rest:
                key_points.append(rest)
            continue

        if section == "summary":
            summary_parts.append(line)
        elif section == "key_points":
            point = _strip_bullet(line)
            if point is None:
                return None
            key_points.append(point)
        else:
            return None

    summary = " ".join(summary_parts).strip()
    if section != "key_points" or not summary:
        return None
    return CompactionResult(summary=summary, key_points=key_points)


def fallback_compaction(segment: ConversationSegment, raw_output: Optional[str] = None) -> CompactionResult:
    """Deterministic compaction used when the model call fails or is unparseable."""
    text = (raw_output or "").strip()
    summary = text[:FALLBACK_SUMMARY_CHARS] if text else f"Conversation segment with {len(segment.messages)} messages"
    return CompactionResult(summary=summary, key_points=[FALLBACK_KEY_POINT], fallback=True)


class Compactor:
    """Produces a summary and key points for one segment."""

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        timeout: Optional[float] = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.generator = generator
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def compact(
        self,
        segment: ConversationSegment,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CompactionResult:
        """
        Summarize a segment.

        Args:
            segment: Segment without a summary; it is not modified
            cancel_event: Optional signal to abandon the model call

        Returns:
            CompactionResult; ``fallback`` is True when the model was not used

        Raises:
            SegmentAlreadyCompactedError: If the segment already has a summary
        """
        if segment.is_compacted:
            raise SegmentAlreadyCompactedError(segment.id)

        if self.generator is None:
            return fallback_compaction(segment)

        prompt = PROMPT_TEMPLATE.format(transcript=render_transcript(segment.messages))
        try:
            result = await self.generator.generate_text(
                prompt,
                SYSTEM_INSTRUCTION,
                timeout=self.timeout,
                cancel_event=cancel_event,
            )
        except Exception as e:
            result = Err(f"{type(e).__name__}: {e}")

        if not result.ok:
            self.logger.warning(f"Compaction failed for segment {segment.id}: {result.reason}")
            return fallback_compaction(segment)

        parsed = parse_compaction_response(result.value)
        if parsed is None:
            self.logger.warning(f"Unparseable compaction response for segment {segment.id}")
            return fallback_compaction(segment, result.value)

        self.logger.debug(f"Segment {segment.id} compacted with {len(parsed.key_points)} key points")
        return parsed
