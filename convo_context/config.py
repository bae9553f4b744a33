"""
Configuration
=============

Settings for a context manager. Values come from keyword arguments first,
then environment variables (a ``.env`` file is loaded if present), then
defaults.

Environment Variables:
    CONTEXT_MAX_TOKENS: Hard ceiling for the conversation (default 230000)
    CONTEXT_TARGET_TOKENS: Total above which compaction starts (default 200000)
    CONTEXT_SEGMENT_SIZE: Messages per segment (default 8)
    CONTEXT_MIN_RECENT_MESSAGES: Newest messages never compacted (default 5)
    CONTEXT_SAFETY_MARGIN: Tokens reserved for the next response (default 5000)
    CONTEXT_SUMMARY_MODEL: Model used for summaries and scoring
                           (falls back to SUB_AGENT_MODEL_ID)
    CONTEXT_MODEL_ID: Model the conversation is sent to, for token estimates
    CONTEXT_DIR: Snapshot directory (default ~/.convo_context/context)
    CONTEXT_GENERATION_TIMEOUT: Seconds allowed per model call (default 30)
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator


DEFAULT_SNAPSHOT_DIR = Path.home() / ".convo_context" / "context"


class ContextManagerConfig(BaseModel):
    """Immutable settings for one ContextManager."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    max_context_tokens: int = Field(230000, gt=0)
    target_context_tokens: int = Field(200000, gt=0)
    segment_size: int = Field(8, ge=1)
    min_recent_messages: int = Field(5, ge=1)
    safety_margin_tokens: int = Field(5000, ge=0)
    emergency_floor_ratio: float = Field(0.7, gt=0, le=1)
    compaction_model: Optional[str] = Field(None, description="Model for summaries and importance scoring")
    model_id: str = Field("generic", description="Model the conversation targets, for token estimation")
    snapshot_directory: str = Field(str(DEFAULT_SNAPSHOT_DIR))
    generation_timeout: Optional[float] = Field(30.0, gt=0)

    @model_validator(mode="after")
    def _check_budget(self) -> "ContextManagerConfig":
        if self.target_context_tokens >= self.max_context_tokens:
            raise ValueError(
                f"target_context_tokens ({self.target_context_tokens}) must be lower than "
                f"max_context_tokens ({self.max_context_tokens})"
            )
        return self


ENV_VARS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "max_context_tokens": ("CONTEXT_MAX_TOKENS", int),
    "target_context_tokens": ("CONTEXT_TARGET_TOKENS", int),
    "segment_size": ("CONTEXT_SEGMENT_SIZE", int),
    "min_recent_messages": ("CONTEXT_MIN_RECENT_MESSAGES", int),
    "safety_margin_tokens": ("CONTEXT_SAFETY_MARGIN", int),
    "compaction_model": ("CONTEXT_SUMMARY_MODEL", str),
    "model_id": ("CONTEXT_MODEL_ID", str),
    "snapshot_directory": ("CONTEXT_DIR", str),
    "generation_timeout": ("CONTEXT_GENERATION_TIMEOUT", float),
}


def load_config(dotenv: bool = True, **overrides: Any) -> ContextManagerConfig:
    """
    Build a ContextManagerConfig from overrides and the environment.

    Args:
        dotenv: Load a ``.env`` file before reading the environment
        **overrides: Explicit field values; these win over the environment

    Returns:
        Validated config

    Raises:
        ValueError: If a value cannot be parsed or the budget is inconsistent
    """
    if dotenv:
        load_dotenv()

    values: Dict[str, Any] = {}
    for field, (env_name, cast) in ENV_VARS.items():
        raw = os.environ.get(env_name)
        if raw:
            values[field] = cast(raw)

    if "compaction_model" not in values and os.environ.get("SUB_AGENT_MODEL_ID"):
        values["compaction_model"] = os.environ["SUB_AGENT_MODEL_ID"]

    values.update({k: v for k, v in overrides.items() if v is not None})
    return ContextManagerConfig(**values)
