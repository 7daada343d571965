"""Progressive persistence of answers as they are submitted."""
from __future__ import annotations

import logging
import secrets
import string
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import BaseModel

from agents.types import ConversationEntry
from config.settings import settings
from observability import log_event
from services.timestamps import record_timestamp, utc_now
from storage import partials
from storage.media import (
    ObjectStorage,
    decode_data_uri,
    get_object_storage,
    is_data_uri,
    is_data_uri_too_large,
    media_path,
    media_type_for,
)

logger = logging.getLogger(__name__)

_SESSION_ALPHABET = string.ascii_lowercase + string.digits
RETRY_AFTER_SECONDS = 3


class SaveResult(BaseModel):
    success: bool
    submission_id: Optional[str] = None
    error: Optional[str] = None
    should_retry: bool = False
    retry_after_seconds: Optional[int] = None


def generate_session_id() -> str:
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(13))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def _strip_absent(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if value is not None}


class PartialSubmissionService:
    """Writes one record per submitted answer and maintains their lifecycle."""

    def __init__(
        self,
        storage_factory: Callable[[], ObjectStorage] = get_object_storage,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage_factory = storage_factory
        self._clock = clock

    def _upload_media(self, data_uri: str, session_id: str, question_index: int) -> Optional[str]:
        """Move an oversized inline payload to object storage; None keeps it inline."""

        if not is_data_uri_too_large(data_uri):
            return None
        try:
            mime, payload = decode_data_uri(data_uri)
            path = media_path(session_id, question_index, media_type_for(mime))
            return self._storage_factory().put(path, payload, mime)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Media upload failed session=%s index=%d; keeping inline payload: %s",
                session_id,
                question_index,
                exc,
            )
            return None

    def save_question_answer(
        self,
        session_id: str,
        user_id: str,
        question_index: int,
        total_questions: int,
        entry: ConversationEntry,
        *,
        candidate_id: Optional[str] = None,
        candidate_name: Optional[str] = None,
        max_follow_ups: Optional[int] = None,
        scenario_ids: Optional[Sequence[int]] = None,
        upload_immediately: Optional[bool] = None,
    ) -> SaveResult:
        """Write one record for ``entry``.

        ``max_follow_ups`` and ``scenario_ids`` describe the session itself so that
        it can be rebuilt from its records alone.
        """
        upload = settings.UPLOAD_MEDIA_IMMEDIATELY if upload_immediately is None else upload_immediately
        try:
            media_data_uri: Optional[str] = None
            media_url: Optional[str] = None
            if entry.media_ref:
                if is_data_uri(entry.media_ref):
                    media_data_uri = entry.media_ref
                    if upload:
                        media_url = self._upload_media(entry.media_ref, session_id, question_index)
                        if media_url:
                            media_data_uri = None
                else:
                    media_url = entry.media_ref

            now = self._clock().isoformat()
            record = _strip_absent(
                {
                    "session_id": session_id,
                    "user_id": user_id,
                    "candidate_id": candidate_id or user_id,
                    "candidate_name": candidate_name or "Anonymous",
                    "interview_type": "SJT",
                    "question_index": question_index,
                    "total_questions": total_questions,
                    "question": entry.question or "",
                    "answer": entry.answer or "",
                    "media_data_uri": media_data_uri,
                    "media_url": media_url,
                    "situation": entry.situation,
                    "best_response_rationale": entry.best_response_rationale,
                    "worst_response_rationale": entry.worst_response_rationale,
                    "assessed_competency": entry.assessed_competency,
                    "scenario_id": entry.scenario_id,
                    "is_follow_up": entry.is_follow_up,
                    "max_follow_ups": max_follow_ups,
                    "scenario_ids": list(scenario_ids) if scenario_ids is not None else None,
                    "timestamp": now,
                    "status": "saved",
                    "retry_count": 0,
                    "is_complete": False,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            submission_id = partials.insert_partial(uuid.uuid4().hex, record)
        except Exception as exc:  # noqa: BLE001
            logger.error("Saving answer failed session=%s index=%d: %s", session_id, question_index, exc)
            log_event("partial_save_failed", session_id, index=question_index, reason=str(exc))
            return SaveResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                should_retry=True,
                retry_after_seconds=RETRY_AFTER_SECONDS,
            )
        log_event("partial_saved", session_id, index=question_index, status="saved")
        return SaveResult(success=True, submission_id=submission_id)

    def mark_session_complete(self, session_id: str) -> int:
        try:
            updated = partials.mark_complete(session_id, self._clock().isoformat())
        except Exception as exc:  # noqa: BLE001
            logger.error("Marking session complete failed session=%s: %s", session_id, exc)
            return 0
        log_event("session_completed", session_id, count=updated)
        return updated

    def cleanup_expired_sessions(self, now: Optional[datetime] = None) -> int:
        """Delete records whose best timestamp is older than the retention window."""

        current = now or self._clock()
        cutoff = current - timedelta(days=settings.PARTIAL_RETENTION_DAYS)
        try:
            records = partials.fetch_all()
            expired = []
            for record in records:
                instant, ok = record_timestamp(record)
                if not ok:
                    continue
                if instant < cutoff:
                    expired.append(record["id"])
            deleted = partials.delete_partials(expired)
        except Exception as exc:  # noqa: BLE001
            logger.error("Expired partial cleanup failed: %s", exc)
            return 0
        log_event("partials_expired", "-", count=deleted)
        return deleted


__all__ = ["PartialSubmissionService", "SaveResult", "generate_session_id"]
