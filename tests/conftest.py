"""Shared fixtures and fake generation capabilities."""

import asyncio
from typing import List, Optional

import pytest

from convo_context.config import ContextManagerConfig
from convo_context.db.snapshots import SnapshotStore
from convo_context.llm.context_compaction.generation import Err, Ok
from convo_context.llm.context_compaction.types import Importance, ImportanceAssessment


WELL_FORMED_SUMMARY = """SUMMARY: The user and assistant worked through a deployment.
KEY_POINTS:
- Deployed the service to production
- Rotated the database password"""


class FakeTextGenerator:
    """Returns a fixed reply and records every prompt."""

    def __init__(self, reply: str = WELL_FORMED_SUMMARY):
        self.reply = reply
        self.prompts: List[str] = []

    async def generate_text(self, prompt, system_instruction, *, timeout=None, cancel_event=None):
        self.prompts.append(prompt)
        return Ok(self.reply)


class FakeStructuredGenerator:
    """Returns a fixed assessment and records every transcript."""

    def __init__(self, importance: Importance = Importance.HIGH, topics: Optional[List[str]] = None):
        self.importance = importance
        self.topics = topics if topics is not None else ["deploy", "database"]
        self.transcripts: List[str] = []

    async def generate_structured(self, transcript, schema, *, timeout=None, cancel_event=None):
        self.transcripts.append(transcript)
        return Ok(
            ImportanceAssessment(
                importance=self.importance,
                reasoning="Production deployment details",
                topics=self.topics,
                has_technical_content=True,
                has_configuration_changes=True,
                confidence=0.9,
            )
        )


class FailingGenerator:
    """Both capabilities, always returning Err."""

    def __init__(self, reason: str = "provider unavailable"):
        self.reason = reason
        self.calls = 0

    async def generate_text(self, prompt, system_instruction, *, timeout=None, cancel_event=None):
        self.calls += 1
        return Err(self.reason)

    async def generate_structured(self, transcript, schema, *, timeout=None, cancel_event=None):
        self.calls += 1
        return Err(self.reason)


class RaisingGenerator:
    """Both capabilities, raising instead of returning a result."""

    async def generate_text(self, prompt, system_instruction, *, timeout=None, cancel_event=None):
        raise RuntimeError("boom")

    async def generate_structured(self, transcript, schema, *, timeout=None, cancel_event=None):
        raise RuntimeError("boom")


async def never_finishes():
    await asyncio.sleep(3600)
    return "late"


@pytest.fixture
def snapshot_store(tmp_path):
    return SnapshotStore(tmp_path / "context")


@pytest.fixture
def small_config(tmp_path):
    """Budget small enough to trigger compaction with short messages."""
    return ContextManagerConfig(
        max_context_tokens=1000,
        target_context_tokens=500,
        segment_size=4,
        min_recent_messages=5,
        safety_margin_tokens=50,
        model_id="gpt-4o",
        snapshot_directory=str(tmp_path / "context"),
    )


def make_messages(count: int, size: int = 400, prefix: str = "") -> List[dict]:
    """Alternating user/assistant messages of roughly ``size`` characters."""
    messages = []
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        body = f"{prefix}message {i} "
        messages.append({"role": role, "content": body + "a" * max(0, size - len(body))})
    return messages
