"""
Context Compaction Module

Keeps conversation history within a token budget by segmenting the oldest
messages, scoring their importance and replacing them with summaries.
"""

from .base import (
    ContextCompactionError,
    ContextCompactionProvider,
    SegmentAlreadyCompactedError,
    is_context_length_error,
    render_transcript,
)
from .types import (
    CompactionResult,
    ContextStats,
    ContextWindow,
    ConversationSegment,
    Importance,
    ImportanceAssessment,
    ManagerState,
    MessageSnapshot,
    TokenEstimate,
)
from .tokens import (
    estimate_conversation_tokens,
    estimate_message_tokens,
    estimate_tokens,
    get_token_stats,
)
from .generation import Err, LLMProviderGenerator, Ok, StructuredGenerator, TextGenerator
from .segmenter import Segmenter
from .scorer import ImportanceScorer
from .compactor import Compactor
from .assembler import assemble_context
from .manager import ContextManager

__all__ = [
    "ContextCompactionError",
    "ContextCompactionProvider",
    "SegmentAlreadyCompactedError",
    "is_context_length_error",
    "render_transcript",
    "CompactionResult",
    "ContextStats",
    "ContextWindow",
    "ConversationSegment",
    "Importance",
    "ImportanceAssessment",
    "ManagerState",
    "MessageSnapshot",
    "TokenEstimate",
    "estimate_conversation_tokens",
    "estimate_message_tokens",
    "estimate_tokens",
    "get_token_stats",
    "Err",
    "LLMProviderGenerator",
    "Ok",
    "StructuredGenerator",
    "TextGenerator",
    "Segmenter",
    "ImportanceScorer",
    "Compactor",
    "assemble_context",
    "ContextManager",
]
