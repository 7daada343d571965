"""Document-style persistence for partial submissions."""
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Iterable, List

from .sqlite import get_conn


def _row_to_record(row: sqlite3.Row) -> Dict[str, Any]:
    record = json.loads(row["body"])
    record["id"] = row["id"]
    record["is_complete"] = bool(row["is_complete"])
    return record


def insert_partial(submission_id: str, record: Dict[str, Any]) -> str:
    """Write one partial submission document, replacing any with the same id."""

    with get_conn() as conn:
        conn.execute(
            """INSERT OR REPLACE INTO partial_submissions
               (id, session_id, user_id, question_index, is_complete, body)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                submission_id,
                record["session_id"],
                record["user_id"],
                int(record["question_index"]),
                1 if record.get("is_complete") else 0,
                json.dumps(record, ensure_ascii=False, default=str),
            ),
        )
    return submission_id


def fetch_incomplete_for_user(user_id: str) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT * FROM partial_submissions WHERE user_id = ? AND is_complete = 0",
            (user_id,),
        ).fetchall()
    return [_row_to_record(row) for row in rows]


def fetch_for_session(session_id: str) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT * FROM partial_submissions WHERE session_id = ?",
            (session_id,),
        ).fetchall()
    return [_row_to_record(row) for row in rows]


def fetch_all() -> List[Dict[str, Any]]:
    with get_conn() as conn:
        rows = conn.execute("SELECT * FROM partial_submissions").fetchall()
    return [_row_to_record(row) for row in rows]


def mark_complete(session_id: str, updated_at: str) -> int:
    """Flip ``is_complete`` on every record of ``session_id``; returns the number updated."""

    with get_conn() as conn:
        rows = conn.execute(
            "SELECT id, body FROM partial_submissions WHERE session_id = ?",
            (session_id,),
        ).fetchall()
        for row in rows:
            body = json.loads(row["body"])
            body["is_complete"] = True
            body["updated_at"] = updated_at
            conn.execute(
                "UPDATE partial_submissions SET is_complete = 1, body = ? WHERE id = ?",
                (json.dumps(body, ensure_ascii=False, default=str), row["id"]),
            )
    return len(rows)


def delete_partials(ids: Iterable[str]) -> int:
    id_list = list(ids)
    if not id_list:
        return 0
    with get_conn() as conn:
        conn.executemany(
            "DELETE FROM partial_submissions WHERE id = ?",
            [(submission_id,) for submission_id in id_list],
        )
    return len(id_list)


__all__ = [
    "delete_partials",
    "fetch_all",
    "fetch_for_session",
    "fetch_incomplete_for_user",
    "insert_partial",
    "mark_complete",
]
