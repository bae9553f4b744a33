"""
Renders compacted segments into synthetic messages for re-insertion.
"""

from typing import Any, Dict, List, Sequence

from convo_context.llm.types import Role

from .types import ConversationSegment, Importance, MessageDict


SYNTHETIC_MESSAGE_NAME = "context_summary"
CONTEXT_HEADER = "## Previous Conversation Context"


def is_synthetic_message(message: Any) -> bool:
    """True for messages produced by ``assemble_context``."""
    return isinstance(message, dict) and message.get("name") == SYNTHETIC_MESSAGE_NAME


def render_context_block(segments: Sequence[ConversationSegment]) -> str:
    ordered = sorted(segments, key=lambda s: s.index)
    high = [s for s in ordered if s.importance == Importance.HIGH]
    medium = [s for s in ordered if s.importance == Importance.MEDIUM]
    low = [s for s in ordered if s.importance == Importance.LOW]

    lines: List[str] = [CONTEXT_HEADER, ""]

    if high:
        lines.append("### Important Discussions:")
        for segment in high:
            lines.append(f"- {segment.summary or ''}")
            if segment.topics:
                lines.append(f"  Topics: {', '.join(segment.topics)}")
            for point in segment.key_points or []:
                lines.append(f"  • {point}")
            if segment.assessment and segment.assessment.reasoning:
                lines.append(f"  Rationale: {segment.assessment.reasoning}")
        lines.append("")

    if medium:
        lines.append("### Recent Work:")
        for segment in medium:
            entry = f"- {segment.summary or ''}"
            if segment.topics:
                entry += f" (Topics: {', '.join(segment.topics)})"
            lines.append(entry)
        lines.append("")

    if low:
        lines.append(f"### Earlier Discussion: {len(low)} segments of general conversation")
        lines.append("")

    lines.append(
        f"*This summary represents {len(ordered)} conversation segments "
        f"to maintain context within token limits.*"
    )
    return "\n".join(lines)


def assemble_context(segments: Sequence[ConversationSegment]) -> List[MessageDict]:
    """
    Render all compacted segments as synthetic messages.

    High-importance segments keep summary, topics, key points and rationale;
    medium keep summary and topics; low collapse to a count. The block is
    authored by the assistant so the model reads it as prior context rather
    than a new instruction.

    Returns:
        A single-message list, or an empty list when there are no segments
    """
    if not segments:
        return []

    message: Dict[str, Any] = {
        "role": Role.ASSISTANT.value,
        "name": SYNTHETIC_MESSAGE_NAME,
        "content": render_context_block(segments),
    }
    return [message]
