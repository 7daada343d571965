"""Persistence helpers for final assessment reports."""
from __future__ import annotations

import datetime as dt
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .sqlite import get_conn


class ReportPayload(BaseModel):
    session_id: str
    user_id: str
    source: str
    report: Dict[str, Any]


def insert_report(**data: Any) -> int:
    """Insert a final report row and return its primary key."""

    payload = ReportPayload(**data)
    timestamp = dt.datetime.now(dt.timezone.utc).isoformat()
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """INSERT INTO assessment_reports
               (timestamp, session_id, user_id, source, report_json)
               VALUES (?, ?, ?, ?, ?)""",
            (
                timestamp,
                payload.session_id,
                payload.user_id,
                payload.source,
                json.dumps(payload.report, ensure_ascii=False),
            ),
        )
        return int(cur.lastrowid)


def latest_report(session_id: str) -> Optional[Dict[str, Any]]:
    """Most recent report stored for ``session_id``, or None."""

    with get_conn() as conn:
        row = conn.execute(
            """SELECT report_json FROM assessment_reports
               WHERE session_id = ? ORDER BY id DESC LIMIT 1""",
            (session_id,),
        ).fetchone()
    if row is None:
        return None
    return json.loads(row["report_json"])


__all__ = ["ReportPayload", "insert_report", "latest_report"]
