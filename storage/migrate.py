"""SQLite schema migrations."""
from __future__ import annotations

import os
import sqlite3
from typing import Iterable

# Partial submissions are documents: the filterable fields are columns and
# the full record is kept as JSON in ``body``.
SCHEMA: Iterable[str] = [
    """
CREATE TABLE IF NOT EXISTS partial_submissions (
  id TEXT PRIMARY KEY,
  session_id TEXT NOT NULL,
  user_id TEXT NOT NULL,
  question_index INTEGER NOT NULL,
  is_complete INTEGER NOT NULL DEFAULT 0,
  body TEXT NOT NULL
);
""",
    """
CREATE INDEX IF NOT EXISTS idx_partials_user_complete
  ON partial_submissions (user_id, is_complete);
""",
    """
CREATE INDEX IF NOT EXISTS idx_partials_session
  ON partial_submissions (session_id);
""",
    """
CREATE TABLE IF NOT EXISTS assessment_reports (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  timestamp TEXT NOT NULL,
  session_id TEXT NOT NULL,
  user_id TEXT NOT NULL,
  source TEXT NOT NULL,
  report_json TEXT NOT NULL
);
""",
    """
CREATE INDEX IF NOT EXISTS idx_reports_session
  ON assessment_reports (session_id);
""",
]


def migrate(db_path: str = "data/assessments.db") -> None:
    """Apply schema migrations to the SQLite database."""

    directory = os.path.dirname(db_path) or "."
    os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        for stmt in SCHEMA:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()


if __name__ == "__main__":
    migrate()
