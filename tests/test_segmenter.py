"""Tests for the segmenter."""

import pytest

from convo_context.llm.context_compaction.segmenter import Segmenter
from convo_context.llm.context_compaction.tokens import estimate_message_tokens

from conftest import make_messages


class TestSegmenter:
    def test_partitions_in_order(self):
        messages = make_messages(10)
        segments = Segmenter().segment(messages, 4)

        assert [len(s.messages) for s in segments] == [4, 4, 2]
        flattened = [m for s in segments for m in s.messages]
        assert flattened == messages

    def test_segments_are_unscored(self):
        segment = Segmenter().segment(make_messages(3), 8)[0]
        assert segment.summary is None
        assert segment.assessment is None
        assert not segment.is_compacted

    def test_ids_and_indices_keep_increasing(self):
        segmenter = Segmenter()
        first = segmenter.segment(make_messages(4), 2)
        second = segmenter.segment(make_messages(4), 2)

        indices = [s.index for s in first + second]
        assert indices == sorted(indices)
        assert len({s.id for s in first + second}) == 4
        assert segmenter.counter == 4

    def test_counter_can_start_from_restored_value(self):
        segment = Segmenter(counter=41).segment(make_messages(1), 8)[0]
        assert segment.index == 42
        assert segment.id.startswith("segment_42_")

    def test_token_count(self):
        messages = make_messages(3)
        segment = Segmenter(model_id="gpt-4o").segment(messages, 8)[0]
        assert segment.token_count == sum(estimate_message_tokens(m, "gpt-4o").tokens for m in messages)

    def test_none_entries_are_skipped(self):
        messages = make_messages(2)
        segments = Segmenter().segment([messages[0], None, messages[1]], 8)
        assert segments[0].messages == messages

    def test_empty_input(self):
        assert Segmenter().segment([], 8) == []

    def test_invalid_segment_size(self):
        with pytest.raises(ValueError):
            Segmenter().segment(make_messages(2), 0)
