"""
Context Manager: keeps one conversation within its token budget.

When the estimated total passes the target, the oldest messages are split
into segments, each segment is scored and summarized, and the accumulated
summaries replace those messages as a single synthetic message placed in
front of the newest messages.

Strategy:
1. Under ``target_context_tokens``: messages pass through untouched
2. Over target: free (total - target) + safety margin tokens from the oldest end
3. Over ``max_context_tokens``: aim lower, at min(target, 70% of max)
4. If the summaries push the result over max, compact more of the oldest kept messages
5. Never compact the newest ``min_recent_messages`` messages
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from convo_context.config import ContextManagerConfig
from convo_context.db.snapshots import SnapshotResult, SnapshotStore
from convo_context.llm.base import LLMProvider

from .assembler import assemble_context, is_synthetic_message
from .base import ContextCompactionProvider
from .compactor import Compactor
from .generation import LLMProviderGenerator, StructuredGenerator, TextGenerator
from .scorer import ImportanceScorer
from .segmenter import Segmenter
from .tokens import estimate_conversation_tokens, estimate_tokens, message_cost
from .types import (
    ContextStats,
    ContextWindow,
    ConversationSegment,
    Importance,
    ManagerState,
    MessageDict,
)


class ContextManager(ContextCompactionProvider):
    """
    Owns the compacted-segment history of one conversation.

    Typical use from an agent loop:

        manager = ContextManager.from_llm_provider(provider, load_config())
        await manager.load_state(session_id)
        ...
        history = await manager.manage_context(history, system_prompt)
        response = await provider.completion(...)
        await manager.save_state(session_id)

    Attributes:
        config: Immutable settings
        segmenter: Splits messages into segments and owns the id counter
        scorer: Assigns importance to new segments
        compactor: Summarizes new segments
        snapshot_store: Best-effort persistence
    """

    def __init__(
        self,
        config: Optional[ContextManagerConfig] = None,
        text_generator: Optional[TextGenerator] = None,
        structured_generator: Optional[StructuredGenerator] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: Manager settings (defaults to ContextManagerConfig())
            text_generator: Capability used for summaries; None always uses the fallback
            structured_generator: Capability used for importance; None always uses the heuristic
            snapshot_store: Snapshot store (defaults to one at config.snapshot_directory)
            logger: Optional logger
        """
        super().__init__(logger)
        self.config = config or ContextManagerConfig()
        self.segmenter = Segmenter(model_id=self.config.model_id)
        self.scorer = ImportanceScorer(
            structured_generator,
            timeout=self.config.generation_timeout,
            logger=self.logger,
        )
        self.compactor = Compactor(
            text_generator,
            timeout=self.config.generation_timeout,
            logger=self.logger,
        )
        self.snapshot_store = snapshot_store or SnapshotStore(self.config.snapshot_directory, logger=self.logger)
        self._segments: List[ConversationSegment] = []

    @classmethod
    def from_llm_provider(
        cls,
        provider: LLMProvider,
        config: Optional[ContextManagerConfig] = None,
        **kwargs: Any,
    ) -> "ContextManager":
        """Build a manager whose scoring and summaries both go through ``provider``."""
        config = config or ContextManagerConfig()
        generator = LLMProviderGenerator(provider, model=config.compaction_model)
        return cls(config, text_generator=generator, structured_generator=generator, **kwargs)

    @property
    def segments(self) -> Tuple[ConversationSegment, ...]:
        return tuple(self._segments)

    @staticmethod
    def _conversation_messages(messages: Sequence[Optional[MessageDict]]) -> List[MessageDict]:
        # Synthetic messages are re-rendered from history on every call
        return [m for m in messages if m and not is_synthetic_message(m)]

    def analyze_context(self, messages: Sequence[Optional[MessageDict]], system_prompt: str) -> ContextWindow:
        """
        Estimate where the conversation stands.

        Total = system prompt + conversation messages + the rendered summary
        block of every compacted segment. Pure; safe to call at any time.
        """
        model_id = self.config.model_id
        conversation = self._conversation_messages(messages or [])

        system_prompt_tokens = estimate_tokens(system_prompt or "", model_id, is_system_prompt=True).tokens
        message_tokens = estimate_conversation_tokens(conversation, model_id).tokens
        summary_tokens = estimate_conversation_tokens(assemble_context(self._segments), model_id).tokens

        return ContextWindow(
            total_tokens=system_prompt_tokens + message_tokens + summary_tokens,
            max_tokens=self.config.max_context_tokens,
            system_prompt_tokens=system_prompt_tokens,
            message_tokens=message_tokens,
            summary_tokens=summary_tokens,
            recent_messages=conversation,
            summarized_segments=list(self._segments),
        )

    def _reclaim_target(self, total_tokens: int) -> int:
        if total_tokens > self.config.max_context_tokens:
            emergency_floor = int(self.config.max_context_tokens * self.config.emergency_floor_ratio)
            return min(self.config.target_context_tokens, emergency_floor)
        return self.config.target_context_tokens

    def _split_point(self, conversation: List[MessageDict], tokens_to_free: int) -> int:
        """Index of the first message that survives uncompacted."""
        compact_end = 0
        for index, message in enumerate(conversation):
            if tokens_to_free <= 0:
                break
            tokens_to_free -= message_cost(message, self.config.model_id)
            compact_end = index + 1

        floor = self.config.min_recent_messages
        if len(conversation) - compact_end < floor:
            self.logger.info(
                f"Keeping the newest {floor} messages even though the token budget asks for more"
            )
            compact_end = len(conversation) - floor
        return compact_end

    async def _process_segments(
        self,
        segments: List[ConversationSegment],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        for segment in segments:
            if segment.assessment is None:
                assessment = await self.scorer.score(segment, cancel_event=cancel_event)
                segment.importance = assessment.importance
                segment.assessment = assessment
            if not segment.is_compacted:
                result = await self.compactor.compact(segment, cancel_event=cancel_event)
                segment.summary = result.summary
                segment.key_points = list(result.key_points)
            self.logger.debug(
                f"Segment {segment.id}: {len(segment.messages)} messages, "
                f"{segment.token_count} tokens, importance={segment.importance.value}"
            )

    async def _compact(
        self,
        messages: Sequence[Optional[MessageDict]],
        system_prompt: str,
        total_tokens: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[MessageDict]:
        conversation = self._conversation_messages(messages)
        if len(conversation) <= self.config.min_recent_messages:
            self.logger.warning(
                f"Context is over budget ({total_tokens} tokens) but only {len(conversation)} "
                f"messages remain; nothing to compact"
            )
            return list(messages)

        reclaim_target = self._reclaim_target(total_tokens)
        tokens_to_free = total_tokens - reclaim_target + self.config.safety_margin_tokens
        compact_end = self._split_point(conversation, tokens_to_free)

        to_compact = conversation[:compact_end]
        tail = conversation[compact_end:]
        self.logger.info(
            f"Compacting context: {total_tokens} tokens, reclaim target {reclaim_target}, "
            f"compacting {len(to_compact)} messages, keeping {len(tail)}"
        )

        new_segment_count = await self._append_history(to_compact, cancel_event)
        managed = assemble_context(self._segments) + tail
        final_tokens = self._managed_tokens(managed, system_prompt)

        # The summary block can outgrow the safety margin; keep moving the
        # oldest tail messages into history until the result fits.
        floor = self.config.min_recent_messages
        max_tokens = self.config.max_context_tokens
        while final_tokens > max_tokens and len(tail) > floor:
            overflow = final_tokens - max_tokens + self.config.safety_margin_tokens
            count = self._overflow_count(tail, overflow)
            self.logger.info(
                f"Summaries pushed context to {final_tokens} tokens; compacting {count} more messages"
            )
            new_segment_count += await self._append_history(tail[:count], cancel_event)
            tail = tail[count:]
            managed = assemble_context(self._segments) + tail
            final_tokens = self._managed_tokens(managed, system_prompt)

        self.logger.info(
            f"Context compaction complete. {new_segment_count} new segments, "
            f"{len(self._segments)} total; estimated tokens {total_tokens} -> {final_tokens}"
        )
        if final_tokens > max_tokens:
            self.logger.warning(
                f"Managed context still exceeds max_context_tokens ({final_tokens} > "
                f"{max_tokens}) because the newest {floor} messages are kept"
            )
        return managed

    async def _append_history(
        self,
        messages: List[MessageDict],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        new_segments = self.segmenter.segment(messages, self.config.segment_size)
        await self._process_segments(new_segments, cancel_event=cancel_event)
        self._segments.extend(new_segments)
        return len(new_segments)

    def _managed_tokens(self, managed: List[MessageDict], system_prompt: str) -> int:
        return (
            estimate_tokens(system_prompt or "", self.config.model_id, is_system_prompt=True).tokens
            + estimate_conversation_tokens(managed, self.config.model_id).tokens
        )

    def _overflow_count(self, tail: List[MessageDict], overflow: int) -> int:
        """
        How many of the oldest tail messages to compact next.

        At least a full segment, since every new segment adds its own summary,
        and never past the recency floor.
        """
        count = 0
        for message in tail:
            if overflow <= 0:
                break
            overflow -= message_cost(message, self.config.model_id)
            count += 1
        count = max(count, self.config.segment_size)
        return min(count, len(tail) - self.config.min_recent_messages)

    async def manage_context(
        self,
        messages: List[Optional[MessageDict]],
        system_prompt: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[MessageDict]:
        """
        Make the conversation fit its token budget.

        Args:
            messages: Conversation in chronological order
            system_prompt: Active system prompt
            cancel_event: Optional signal that abandons in-flight model calls
                         (their deterministic fallbacks are used instead)

        Returns:
            ``messages`` itself when under target, otherwise synthetic summary
            messages followed by the surviving newest messages
        """
        window = self.analyze_context(messages, system_prompt)
        if window.total_tokens <= self.config.target_context_tokens:
            return messages
        return await self._compact(messages, system_prompt, window.total_tokens, cancel_event)

    async def compact(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: str,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> List[Dict[str, Any]]:
        """
        Compact after the provider rejected the request as too long.

        The estimate evidently undercounted, so compaction runs as if the
        conversation were over ``max_context_tokens``.
        """
        window = self.analyze_context(messages, system_prompt)
        total_tokens = max(window.total_tokens, self.config.max_context_tokens + 1)
        return await self._compact(messages, system_prompt, total_tokens, kwargs.get("cancel_event"))

    async def force_summarize_all(
        self,
        messages: List[Optional[MessageDict]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[MessageDict]:
        """
        Discard the segment history and rebuild it from ``messages``.

        Returns:
            The synthetic messages for the rebuilt history
        """
        self._segments = []
        conversation = self._conversation_messages(messages or [])
        segments = self.segmenter.segment(conversation, self.config.segment_size)
        await self._process_segments(segments, cancel_event=cancel_event)
        self._segments = segments
        self.logger.info(f"Rebuilt context history: {len(conversation)} messages in {len(segments)} segments")
        return assemble_context(self._segments)

    def get_stats(self) -> ContextStats:
        counts = {level.value: 0 for level in (Importance.HIGH, Importance.MEDIUM, Importance.LOW)}
        for segment in self._segments:
            counts[segment.importance.value] += 1
        return ContextStats(
            segment_count=len(self._segments),
            total_compacted_messages=sum(len(s.messages) for s in self._segments),
            counts_by_importance=counts,
        )

    def search(self, query: str) -> List[ConversationSegment]:
        """
        Find compacted segments mentioning ``query``.

        Case-insensitive substring match against summary, key points, topics
        and the assessment reasoning. A blank query matches nothing.
        """
        needle = (query or "").strip().lower()
        if not needle:
            return []

        matches = []
        for segment in self._segments:
            fields = [segment.summary or ""]
            fields.extend(segment.key_points or [])
            fields.extend(segment.topics)
            if segment.assessment:
                fields.append(segment.assessment.reasoning)
            if any(needle in text.lower() for text in fields):
                matches.append(segment)
        return matches

    def clear_old_segments(self, max_age: timedelta = timedelta(days=7)) -> int:
        """
        Drop segments created more than ``max_age`` ago.

        Returns:
            Number of segments removed
        """
        cutoff = datetime.now(timezone.utc) - max_age
        kept = [s for s in self._segments if s.created_at > cutoff]
        removed = len(self._segments) - len(kept)
        self._segments = kept
        if removed:
            self.logger.info(f"Cleared {removed} segments older than {max_age}")
        return removed

    async def save_snapshot(self, session_id: str, messages: List[Optional[MessageDict]]) -> SnapshotResult:
        """Persist the raw messages of a session (best effort)."""
        result = await self.snapshot_store.save_messages(session_id, messages, self.config.model_id)
        if not result.ok:
            self.logger.warning(f"Message snapshot failed for {session_id}: {result.reason}")
        return result

    async def save_state(self, session_id: str) -> SnapshotResult:
        """Persist the segment history (best effort)."""
        state = ManagerState(segments=list(self._segments), segment_counter=self.segmenter.counter)
        result = await self.snapshot_store.save_state(session_id, state)
        if not result.ok:
            self.logger.warning(f"State snapshot failed for {session_id}: {result.reason}")
        return result

    async def load_state(self, session_id: str) -> SnapshotResult:
        """
        Replace the segment history with a saved one.

        On failure the current history is left untouched.
        """
        result = await self.snapshot_store.load_state(session_id)
        if not result.ok:
            self.logger.info(f"No context state loaded for {session_id}: {result.reason}")
            return result

        state: ManagerState = result.value
        self._segments = list(state.segments)
        highest_index = max((s.index for s in self._segments), default=0)
        self.segmenter.counter = max(state.segment_counter, highest_index)
        self.logger.info(f"Loaded {len(self._segments)} segments for {session_id}")
        return result
