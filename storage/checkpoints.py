"""JSON checkpoints of live session state."""
from __future__ import annotations

import json
import os
import re
from typing import Optional

from config.settings import settings
from services.follow_up import SessionState


SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,127}")


def _checkpoint_path(session_id: str) -> str:
    if not SESSION_ID_PATTERN.fullmatch(session_id or ""):
        raise ValueError(f"Invalid session_id: {session_id!r}")
    return os.path.join(settings.CHECKPOINT_DIR, f"{session_id}.json")


def save_checkpoint(state: SessionState) -> str:
    """Persist the full session state atomically and return the file path."""
    os.makedirs(settings.CHECKPOINT_DIR, exist_ok=True)
    path = _checkpoint_path(state.session_id)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        json.dump(state.model_dump(mode="json"), handle, ensure_ascii=False)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)
    return path


def load_checkpoint(session_id: str) -> Optional[SessionState]:
    """Load a session state from disk if present."""
    path = _checkpoint_path(session_id)
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    return SessionState.model_validate(data)


def delete_checkpoint(session_id: str) -> bool:
    path = _checkpoint_path(session_id)
    if not os.path.exists(path):
        return False
    os.remove(path)
    return True


__all__ = ["SESSION_ID_PATTERN", "delete_checkpoint", "load_checkpoint", "save_checkpoint"]
