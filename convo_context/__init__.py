"""
Bounded conversational context for LLM agents.

Keeps a long-running conversation inside a model's token budget by
summarizing its oldest segments and re-inserting the summaries.
"""

from .config import ContextManagerConfig, load_config
from .llm import ContextManager, PortkeyLLMProvider
from .db import SnapshotStore

__all__ = [
    "ContextManagerConfig",
    "load_config",
    "ContextManager",
    "PortkeyLLMProvider",
    "SnapshotStore",
]
