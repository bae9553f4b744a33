"""
Segmenter: splits messages into fixed-size chronological segments.
"""

import itertools
import time
from typing import List, Optional

from .tokens import estimate_message_tokens
from .types import ConversationSegment, MessageDict


# Shared by every Segmenter in the process
_ID_SEQUENCE = itertools.count(1)


class Segmenter:
    """
    Groups messages into contiguous segments of ``segment_size`` messages.

    Owns the segment counter that orders segments (``index``); it is
    restored when a manager loads state. Ids also carry a process-wide
    sequence number, so they never repeat within a process.
    """

    def __init__(self, model_id: Optional[str] = "generic", counter: int = 0):
        self.model_id = model_id
        self.counter = counter

    def _next_id(self) -> str:
        self.counter += 1
        return f"segment_{self.counter}_{int(time.time() * 1000)}_{next(_ID_SEQUENCE)}"

    def segment(self, messages: List[Optional[MessageDict]], segment_size: int) -> List[ConversationSegment]:
        """
        Partition ``messages`` into unscored segments.

        Args:
            messages: Messages in chronological order; None entries are skipped
            segment_size: Messages per segment (the last segment may be shorter)

        Returns:
            Segments in chronological order

        Raises:
            ValueError: If segment_size is less than 1
        """
        if segment_size < 1:
            raise ValueError(f"segment_size must be at least 1, got {segment_size}")

        present = [m for m in messages if m]
        segments: List[ConversationSegment] = []
        for start in range(0, len(present), segment_size):
            chunk = present[start:start + segment_size]
            token_count = sum(estimate_message_tokens(m, self.model_id).tokens for m in chunk)
            segment_id = self._next_id()
            segments.append(
                ConversationSegment(
                    id=segment_id,
                    index=self.counter,
                    messages=chunk,
                    token_count=token_count,
                )
            )
        return segments
