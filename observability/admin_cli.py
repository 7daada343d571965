"""Maintenance CLI for partial submissions and stored reports."""
from __future__ import annotations

import argparse
import json
from typing import Optional, Sequence

from services.partial_submissions import PartialSubmissionService
from services.recovery import SessionRecoveryResolver
from storage.migrate import migrate
from storage.sqlite import get_conn
from config.settings import settings


def cleanup() -> int:
    deleted = PartialSubmissionService().cleanup_expired_sessions()
    print(f"deleted {deleted} expired partial submission(s)")
    return deleted


def show_recovery(user_id: str) -> None:
    recovery = SessionRecoveryResolver().check_incomplete_session(user_id)
    if recovery is None:
        print(f"no incomplete session for user {user_id}")
        return
    print(
        f"session={recovery.session_id} completed={recovery.completed_questions}/{recovery.total_questions} "
        f"last_index={recovery.last_question_index} can_resume={recovery.can_resume} "
        f"last_activity={recovery.last_activity_at.isoformat()}"
    )


def show_progress(session_id: str) -> None:
    progress = SessionRecoveryResolver().get_session_progress(session_id)
    if progress is None:
        print(f"no records for session {session_id}")
        return
    print(
        f"session={session_id} answered={len(progress.completed_questions)}/{progress.total_questions} "
        f"next={progress.next_question_index} can_continue={progress.can_continue}"
    )


def tail_reports(limit: int = 20) -> None:
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT timestamp, session_id, user_id, source, report_json
            FROM assessment_reports
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    for row in rows:
        report = json.loads(row["report_json"])
        scores = ", ".join(f"{c['name']}={c['score']}" for c in report.get("competencies", []))
        print(f"[{row['timestamp']}] {row['session_id']}/{row['user_id']} source={row['source']} {scores}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Assessment maintenance")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("cleanup", help="Delete partial submissions past the retention window")
    recovery = sub.add_parser("recovery", help="Show the resumable session of a user")
    recovery.add_argument("--user", required=True)
    progress = sub.add_parser("progress", help="Show progress of one session")
    progress.add_argument("--session", required=True)
    reports = sub.add_parser("reports", help="Show the latest final reports")
    reports.add_argument("--limit", type=int, default=20)
    args = parser.parse_args(argv)

    migrate(settings.DB_PATH)
    if args.command == "cleanup":
        cleanup()
    elif args.command == "recovery":
        show_recovery(args.user)
    elif args.command == "progress":
        show_progress(args.session)
    elif args.command == "reports":
        tail_reports(args.limit)


if __name__ == "__main__":
    main()
