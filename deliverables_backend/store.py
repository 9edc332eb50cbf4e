from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .errors import NotFound
from .models import Deliverable, DeliverableType, NewDeliverable


_SCHEMA = """
CREATE TABLE IF NOT EXISTS task_deliverables (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    deliverable_type TEXT NOT NULL CHECK (deliverable_type IN ('file', 'url', 'artifact')),
    title TEXT NOT NULL,
    path TEXT,
    description TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_task_deliverables_lookup
    ON task_deliverables (task_id, deliverable_type, path);
"""


def _row_to_deliverable(row: sqlite3.Row) -> Deliverable:
    return Deliverable(
        id=row["id"],
        task_id=row["task_id"],
        deliverable_type=row["deliverable_type"],
        title=row["title"],
        path=row["path"],
        description=row["description"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class DeliverableStore:
    """Deliverable records in SQLite, always scoped to their task.

    insert() does not deduplicate; ArtifactPublisher owns that rule.

    Calls are synchronous and run on the event loop thread when used from
    async handlers. Each is a single indexed statement on a local file, so
    the block is short; move them to a threadpool if the table or write
    rate grows. ArtifactPublisher relies on find-then-insert not yielding
    to the loop in between.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # One connection per operation; WAL + busy timeout for concurrent request handlers.
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA busy_timeout = 10000")
            with conn:
                yield conn
        finally:
            conn.close()

    def get(self, task_id: str, deliverable_id: str) -> Deliverable:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM task_deliverables WHERE id = ? AND task_id = ?",
                (deliverable_id, task_id),
            ).fetchone()
        if row is None:
            raise NotFound("Deliverable not found")
        return _row_to_deliverable(row)

    def find_by_path(self, task_id: str, deliverable_type: DeliverableType, path: str) -> Optional[Deliverable]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM task_deliverables
                WHERE task_id = ? AND deliverable_type = ? AND path = ?
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (task_id, deliverable_type, path),
            ).fetchone()
        return _row_to_deliverable(row) if row is not None else None

    def list_for_task(self, task_id: str) -> list[Deliverable]:
        """Newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM task_deliverables WHERE task_id = ? ORDER BY created_at DESC, rowid DESC",
                (task_id,),
            ).fetchall()
        return [_row_to_deliverable(row) for row in rows]

    def insert(self, record: NewDeliverable) -> Deliverable:
        deliverable = Deliverable(
            id=record.id or str(uuid.uuid4()),
            task_id=record.task_id,
            deliverable_type=record.deliverable_type,
            title=record.title,
            path=record.path,
            description=record.description,
            created_at=record.created_at or datetime.now(timezone.utc),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO task_deliverables (id, task_id, deliverable_type, title, path, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    deliverable.id,
                    deliverable.task_id,
                    deliverable.deliverable_type,
                    deliverable.title,
                    deliverable.path,
                    deliverable.description,
                    deliverable.created_at.isoformat(),
                ),
            )
        return deliverable
