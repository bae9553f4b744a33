"""
Data model for context compaction.

Messages flow through this package as OpenAI-format dicts; everything the
package creates or persists is a pydantic model.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


MessageDict = Dict[str, Any]


class Importance(str, Enum):
    """How much detail a compacted segment keeps when re-assembled."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TokenEstimate(BaseModel):
    """Estimated size of a piece of text or a message."""
    tokens: int = Field(0, ge=0)
    characters: int = Field(0, ge=0)
    method: str = Field("generic", description="Model family used: gpt, claude or generic")


class ImportanceAssessment(BaseModel):
    """
    Importance assessment for one conversation segment.

    This is also the schema requested from the structured-generation
    capability, so field descriptions double as instructions to the model.
    """
    importance: Importance = Field(..., description="Overall importance: low, medium or high")
    reasoning: str = Field("", description="One or two sentences justifying the importance")
    topics: List[str] = Field(default_factory=list, description="Short topic labels covered by the segment")
    has_technical_content: bool = Field(False, description="Segment discusses technical details")
    has_errors_or_issues: bool = Field(False, description="Segment reports errors, failures or issues")
    has_configuration_changes: bool = Field(False, description="Segment changes configuration, setup or environment")
    has_code_or_implementation: bool = Field(False, description="Segment contains code or implementation work")
    confidence: float = Field(0.5, ge=0.0, le=1.0, description="Confidence in the assessment, 0 to 1")


class CompactionResult(BaseModel):
    """Summary and key points produced for a segment."""
    summary: str
    key_points: List[str] = Field(default_factory=list)
    fallback: bool = False


class ConversationSegment(BaseModel):
    """
    A contiguous chronological chunk of messages treated as one compaction unit.

    Created unscored by the Segmenter, then scored once (importance and
    assessment) and compacted once (summary and key points).
    """
    id: str
    index: int = Field(..., ge=0, description="Chronological position among this manager's segments")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    messages: List[MessageDict] = Field(..., min_length=1)
    token_count: int = Field(0, ge=0)
    importance: Importance = Importance.LOW
    summary: Optional[str] = None
    key_points: Optional[List[str]] = None
    assessment: Optional[ImportanceAssessment] = None

    @property
    def is_compacted(self) -> bool:
        return self.summary is not None

    @property
    def topics(self) -> List[str]:
        return list(self.assessment.topics) if self.assessment else []


class ContextWindow(BaseModel):
    """Snapshot answer to "where does the conversation stand"."""
    total_tokens: int
    max_tokens: int
    system_prompt_tokens: int
    message_tokens: int
    summary_tokens: int
    recent_messages: List[MessageDict]
    summarized_segments: List[ConversationSegment]

    @property
    def remaining_tokens(self) -> int:
        return max(0, self.max_tokens - self.total_tokens)

    @property
    def usage_percentage(self) -> float:
        if self.max_tokens <= 0:
            return 100.0
        return self.total_tokens / self.max_tokens * 100


class ContextStats(BaseModel):
    segment_count: int = 0
    total_compacted_messages: int = 0
    counts_by_importance: Dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in (Importance.HIGH, Importance.MEDIUM, Importance.LOW)}
    )


class ManagerState(BaseModel):
    """Persisted form of a ContextManager's segment history."""
    segments: List[ConversationSegment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    segment_counter: int = Field(0, ge=0)


class MessageSnapshot(BaseModel):
    """Raw-message snapshot written for a session."""
    model_config = ConfigDict(protected_namespaces=())

    session_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model_id: str
    messages: List[MessageDict] = Field(default_factory=list)
