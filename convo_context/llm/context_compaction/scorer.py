"""
Importance scoring for conversation segments.

A model-driven assessment is preferred; when it is unavailable or fails,
a deterministic keyword heuristic produces an equally well-formed record.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from .base import render_transcript
from .generation import Err, StructuredGenerator
from .types import ConversationSegment, Importance, ImportanceAssessment


HIGH_IMPORTANCE_KEYWORDS: Tuple[str, ...] = (
    "error",
    "critical",
    "important",
    "config",
    "setup",
    "install",
    "api key",
    "authentication",
    "credential",
    "password",
    "database",
    "security",
    "deploy",
    "infrastructure",
    "production",
)

MEDIUM_IMPORTANCE_KEYWORDS: Tuple[str, ...] = (
    "create",
    "build",
    "implement",
    "fix",
    "update",
    "modify",
    "function",
    "class",
    "method",
    "variable",
    "refactor",
)

ERROR_KEYWORDS = ("error", "exception", "fail", "bug", "traceback", "crash", "critical")
CONFIGURATION_KEYWORDS = ("config", "setup", "install", "environment", "deploy", ".env", "settings")
CODE_KEYWORDS = ("function", "class", "method", "variable", "implement", "def ", "import ", "```")

HEURISTIC_CONFIDENCE = 0.5


def _matches(text: str, keywords: Tuple[str, ...]) -> List[str]:
    return [keyword for keyword in keywords if keyword in text]


def heuristic_assessment(transcript: str) -> ImportanceAssessment:
    """
    Classify a transcript by keyword counts.

    high: two or more high-importance keywords; medium: one high keyword or
    three medium keywords; otherwise low.
    """
    text = transcript.lower()
    high = _matches(text, HIGH_IMPORTANCE_KEYWORDS)
    medium = _matches(text, MEDIUM_IMPORTANCE_KEYWORDS)

    if len(high) >= 2:
        importance = Importance.HIGH
    elif len(high) >= 1 or len(medium) >= 3:
        importance = Importance.MEDIUM
    else:
        importance = Importance.LOW

    return ImportanceAssessment(
        importance=importance,
        reasoning=(
            f"Keyword heuristic: {len(high)} high-importance and "
            f"{len(medium)} medium-importance matches"
        ),
        topics=high + medium,
        has_technical_content=bool(high or medium),
        has_errors_or_issues=bool(_matches(text, ERROR_KEYWORDS)),
        has_configuration_changes=bool(_matches(text, CONFIGURATION_KEYWORDS)),
        has_code_or_implementation=bool(_matches(text, CODE_KEYWORDS)),
        confidence=HEURISTIC_CONFIDENCE,
    )


class ImportanceScorer:
    """
    Assigns low/medium/high importance to segments.

    Scoring never raises: any failure of the structured generation call
    (timeout, cancellation, provider error, invalid record) falls back to
    ``heuristic_assessment``.
    """

    def __init__(
        self,
        generator: Optional[StructuredGenerator] = None,
        timeout: Optional[float] = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.generator = generator
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def score(
        self,
        segment: ConversationSegment,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportanceAssessment:
        """
        Assess a segment.

        Args:
            segment: Segment to assess; it is not modified
            cancel_event: Optional signal to abandon the model call

        Returns:
            ImportanceAssessment from the model or from the keyword heuristic
        """
        transcript = render_transcript(segment.messages)

        if self.generator is not None:
            try:
                result = await self.generator.generate_structured(
                    transcript,
                    ImportanceAssessment,
                    timeout=self.timeout,
                    cancel_event=cancel_event,
                )
            except Exception as e:
                result = Err(f"{type(e).__name__}: {e}")

            if result.ok:
                self.logger.debug(f"Segment {segment.id} scored {result.value.importance.value} by model")
                return result.value
            self.logger.warning(
                f"Importance assessment failed for segment {segment.id}: {result.reason}; using keyword heuristic"
            )

        assessment = heuristic_assessment(transcript)
        self.logger.debug(f"Segment {segment.id} scored {assessment.importance.value} by heuristic")
        return assessment
