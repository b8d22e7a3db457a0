"""SQLiteStore: single-file database backend.

Useful when several PRs are tracked from one place or when the task set is
queried by other tools. Tasks are keyed by their deterministic id, so the
upsert in ``_write_tasks`` gives last-write-wins semantics.

Schema:
  tasks        one row per task, primary key = task id.
  checkpoints  one row per PR holding the CheckpointState as JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from prtasks_store.base import BaseStore
from prtasks_store.models import CheckpointState, PersistedTask, utc_now

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id                 TEXT PRIMARY KEY,
    pr_number          INTEGER NOT NULL,
    description        TEXT,
    origin_text        TEXT,
    priority           TEXT,
    source_review_id   INTEGER,
    source_comment_id  INTEGER,
    task_index         INTEGER DEFAULT 0,
    file               TEXT,
    line               INTEGER DEFAULT 0,
    status             TEXT,
    created_at         TEXT,
    updated_at         TEXT,
    url                TEXT
);
CREATE INDEX IF NOT EXISTS idx_tasks_pr      ON tasks (pr_number);
CREATE INDEX IF NOT EXISTS idx_tasks_comment ON tasks (pr_number, source_comment_id);
CREATE TABLE IF NOT EXISTS checkpoints (
    pr_number   INTEGER PRIMARY KEY,
    state_json  TEXT NOT NULL
);
"""

_COLUMNS = (
    "id",
    "pr_number",
    "description",
    "origin_text",
    "priority",
    "source_review_id",
    "source_comment_id",
    "task_index",
    "file",
    "line",
    "status",
    "created_at",
    "updated_at",
    "url",
)


class SQLiteStore(BaseStore):
    """Stores tasks and checkpoints in a local SQLite database file.

    Configure via .prtasks.yml: ``store: sqlite`` and ``store_path: .pr-review/tasks.db``.
    """

    def __init__(self, db_path: str = ".prtasks.db"):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # -- tasks -------------------------------------------------------------

    def list_tasks(self, pr_number: int | None = None) -> list[PersistedTask]:
        if pr_number is not None:
            rows = self._conn.execute(
                "SELECT * FROM tasks WHERE pr_number=? ORDER BY source_comment_id, task_index",
                (pr_number,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM tasks ORDER BY pr_number, source_comment_id, task_index"
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def _write_tasks(self, pr_number: int, tasks: list[PersistedTask]) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in _COLUMNS if c != "id")
        sql = (
            f"INSERT INTO tasks ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        with self._conn:
            self._conn.executemany(
                sql,
                [tuple(getattr(t, c) if c != "pr_number" else pr_number for c in _COLUMNS) for t in tasks],
            )

    # -- checkpoints -------------------------------------------------------

    def save_checkpoint(self, pr_number: int, state: CheckpointState) -> None:
        state.last_processed_at = utc_now()
        with self._conn:
            self._conn.execute(
                "INSERT INTO checkpoints (pr_number, state_json) VALUES (?, ?) "
                "ON CONFLICT(pr_number) DO UPDATE SET state_json=excluded.state_json",
                (pr_number, json.dumps(state.to_dict())),
            )

    def load_checkpoint(self, pr_number: int) -> CheckpointState | None:
        row = self._conn.execute("SELECT state_json FROM checkpoints WHERE pr_number=?", (pr_number,)).fetchone()
        if row is None:
            return None
        try:
            return CheckpointState.from_dict(json.loads(row["state_json"]))
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable checkpoint for PR #%d: %s", pr_number, e)
            return None

    def delete_checkpoint(self, pr_number: int) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM checkpoints WHERE pr_number=?", (pr_number,))

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> PersistedTask:
        return PersistedTask(
            id=row["id"],
            description=row["description"] or "",
            origin_text=row["origin_text"] or "",
            priority=row["priority"] or "medium",
            source_review_id=row["source_review_id"] or 0,
            source_comment_id=row["source_comment_id"] or 0,
            task_index=row["task_index"] or 0,
            file=row["file"] or "",
            line=row["line"] or 0,
            status=row["status"] or "todo",
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
            pr_number=row["pr_number"],
            url=row["url"] or "",
        )
