"""
Local Snapshot Store for Conversation Context
=============================================

Best-effort JSON snapshots of raw messages and of a context manager's
compacted-segment history, one file each per session id.

Layout under the snapshot directory:

    <session>.messages.json   {session_id, timestamp, model_id, messages}
    <session>.state.json      {segments, timestamp, segment_counter}

Files are overwritten whole (written to a temporary file, then replaced).
Every operation returns ``Ok``/``Err`` instead of raising: persistence is
an optimization and must never break in-memory context management.
"""

import asyncio
import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from convo_context.config import DEFAULT_SNAPSHOT_DIR
from convo_context.llm.context_compaction.generation import Err, Ok
from convo_context.llm.context_compaction.types import ManagerState, MessageSnapshot


SnapshotResult = Union[Ok[Any], Err]

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_.-]")


def sanitize_session_id(session_id: str) -> str:
    """
    Make a session id safe to use as a file name.

    Ids that are already safe are used as is. Anything else keeps a readable
    sanitized prefix plus a digest of the original id, so two different ids
    never share a file.
    """
    raw = str(session_id or "")
    safe = _UNSAFE_CHARS_RE.sub("_", raw).strip(".")
    if not safe:
        return ""
    if safe != raw:
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
        safe = f"{safe}-{digest}"
    return safe


class SnapshotStore:
    """
    File-based snapshot store keyed by session id.

    Example:
        >>> store = SnapshotStore("/tmp/context")
        >>> result = await store.save_state("session-1", manager_state)
        >>> if result.ok:
        ...     print(f"saved to {result.value}")
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None, logger: Optional[logging.Logger] = None):
        """
        Args:
            directory: Snapshot directory. Defaults to CONTEXT_DIR env var or
                      ~/.convo_context/context
            logger: Optional logger
        """
        self.directory = Path(directory or os.environ.get("CONTEXT_DIR") or DEFAULT_SNAPSHOT_DIR).expanduser()
        self.logger = logger or logging.getLogger(__name__)

    def messages_path(self, session_id: str) -> Path:
        return self.directory / f"{sanitize_session_id(session_id)}.messages.json"

    def state_path(self, session_id: str) -> Path:
        return self.directory / f"{sanitize_session_id(session_id)}.state.json"

    def _write(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def ensure_directory(self) -> SnapshotResult:
        """Create the snapshot directory if needed."""
        try:
            await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            return Err(f"cannot create {self.directory}: {e}")
        return Ok(str(self.directory))

    async def save_messages(
        self,
        session_id: str,
        messages: List[Optional[Dict[str, Any]]],
        model_id: str,
    ) -> SnapshotResult:
        """
        Save the raw message list for a session.

        Returns:
            Ok(path) or Err(reason)
        """
        if not sanitize_session_id(session_id):
            return Err("session id is empty")

        path = self.messages_path(session_id)
        try:
            snapshot = MessageSnapshot(
                session_id=session_id,
                model_id=model_id,
                messages=[m for m in messages if m],
            )
            await asyncio.to_thread(self._write, path, snapshot.model_dump_json(indent=2))
        except (OSError, ValueError, TypeError) as e:
            return Err(f"cannot write {path}: {e}")
        return Ok(str(path))

    async def load_messages(self, session_id: str) -> SnapshotResult:
        """
        Load a raw message snapshot.

        Returns:
            Ok(MessageSnapshot) or Err(reason)
        """
        if not sanitize_session_id(session_id):
            return Err("session id is empty")

        path = self.messages_path(session_id)
        try:
            payload = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return Ok(MessageSnapshot.model_validate_json(payload))
        except FileNotFoundError:
            return Err(f"no message snapshot for session {session_id}")
        except (OSError, ValidationError) as e:
            return Err(f"cannot read {path}: {e}")

    async def save_state(self, session_id: str, state: ManagerState) -> SnapshotResult:
        """
        Save a manager's segment history.

        Returns:
            Ok(path) or Err(reason)
        """
        if not sanitize_session_id(session_id):
            return Err("session id is empty")

        path = self.state_path(session_id)
        try:
            await asyncio.to_thread(self._write, path, state.model_dump_json(indent=2))
        except (OSError, ValueError, TypeError) as e:
            return Err(f"cannot write {path}: {e}")
        return Ok(str(path))

    async def load_state(self, session_id: str) -> SnapshotResult:
        """
        Load a manager's segment history.

        Returns:
            Ok(ManagerState) or Err(reason)
        """
        if not sanitize_session_id(session_id):
            return Err("session id is empty")

        path = self.state_path(session_id)
        try:
            payload = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return Ok(ManagerState.model_validate_json(payload))
        except FileNotFoundError:
            return Err(f"no state snapshot for session {session_id}")
        except (OSError, ValidationError) as e:
            return Err(f"cannot read {path}: {e}")
