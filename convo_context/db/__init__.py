from .snapshots import SnapshotStore, sanitize_session_id

__all__ = ["SnapshotStore", "sanitize_session_id"]
