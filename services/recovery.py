"""Session recovery from persisted partial submissions."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from config.settings import settings
from services.timestamps import SENTINEL, record_timestamp, utc_now
from storage import partials

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class SessionRecovery(BaseModel):
    session_id: str
    candidate_name: str = "Anonymous"
    interview_type: str = "SJT"
    total_questions: int
    completed_questions: int
    last_question_index: int
    can_resume: bool
    partial_submissions: List[Record] = Field(default_factory=list)
    started_at: datetime
    last_activity_at: datetime


class ProgressInfo(BaseModel):
    session_id: str
    total_questions: int
    completed_questions: List[Record] = Field(default_factory=list)
    current_question: int
    next_question_index: int
    can_continue: bool


def _question_index(record: Record) -> int:
    value = record.get("question_index")
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _total_questions(records: List[Record]) -> int:
    totals = [r.get("total_questions") for r in records]
    valid = [t for t in totals if isinstance(t, int) and not isinstance(t, bool)]
    return max(valid) if valid else len(records)


def _sort_by_index(records: List[Record]) -> List[Record]:
    return sorted(records, key=lambda r: (_question_index(r), str(r.get("id", ""))))


def _activity_bounds(records: List[Record]) -> tuple[datetime, datetime]:
    """Earliest and latest parseable timestamps; SENTINEL for both when none parse."""

    instants = []
    for record in records:
        instant, ok = record_timestamp(record)
        if ok:
            instants.append(instant)
    if not instants:
        return SENTINEL, SENTINEL
    return min(instants), max(instants)


class SessionRecoveryResolver:
    """Finds the resumable session of a user and the progress of a session."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def check_incomplete_session(self, user_id: str, now: Optional[datetime] = None) -> Optional[SessionRecovery]:
        records = partials.fetch_incomplete_for_user(user_id)
        if not records:
            return None

        groups: Dict[str, List[Record]] = defaultdict(list)
        for record in records:
            groups[str(record.get("session_id", ""))].append(record)

        candidates = []
        for session_id, group in groups.items():
            started_at, last_activity = _activity_bounds(group)
            candidates.append((last_activity, session_id, started_at, group))
        # Latest activity first; ties go to the lexically smallest session id.
        candidates.sort(key=lambda item: (-_sort_key(item[0]), item[1]))
        last_activity, session_id, started_at, group = candidates[0]

        current = now or self._clock()
        window = timedelta(hours=settings.RESUME_WINDOW_HOURS)
        can_resume = last_activity is not SENTINEL and (current - last_activity) < window
        ordered = _sort_by_index(group)
        recovery = SessionRecovery(
            session_id=session_id,
            candidate_name=str(ordered[0].get("candidate_name") or "Anonymous"),
            interview_type=str(ordered[0].get("interview_type") or "SJT"),
            total_questions=_total_questions(group),
            completed_questions=len(group),
            last_question_index=max(_question_index(r) for r in group),
            can_resume=can_resume,
            partial_submissions=ordered,
            started_at=started_at,
            last_activity_at=last_activity,
        )
        logger.info(
            "Incomplete session found user=%s session=%s completed=%d/%d can_resume=%s",
            user_id,
            session_id,
            recovery.completed_questions,
            recovery.total_questions,
            can_resume,
        )
        return recovery

    def get_session_progress(self, session_id: str) -> Optional[ProgressInfo]:
        records = partials.fetch_for_session(session_id)
        if not records:
            return None
        ordered = _sort_by_index(records)
        total = _total_questions(ordered)
        answered = {_question_index(r) for r in ordered}
        next_index = total
        for index in range(total):
            if index not in answered:
                next_index = index
                break
        return ProgressInfo(
            session_id=session_id,
            total_questions=total,
            completed_questions=ordered,
            current_question=min(next_index, max(total - 1, 0)),
            next_question_index=next_index,
            can_continue=next_index < total,
        )


def _sort_key(instant: datetime) -> float:
    if instant is SENTINEL:
        return float("-inf")
    return instant.timestamp()


__all__ = ["ProgressInfo", "SessionRecovery", "SessionRecoveryResolver"]
