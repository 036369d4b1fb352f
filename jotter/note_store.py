#!/usr/bin/env python3
"""SQLite persistence for notes."""

import json
import logging
import sqlite3
import threading
from pathlib import Path

from .note_utils import utc_now_iso

logger = logging.getLogger(__name__)


class NoteNotFound(KeyError):
    """Raised when an update targets a note id that does not exist."""

    def __str__(self):
        return f"Note not found: {self.args[0]}"


def _row_to_note(row: sqlite3.Row) -> dict:
    note = {
        "id": row["id"],
        "text": row["text"],
        "createdAt": row["createdAt"],
        "updatedAt": row["updatedAt"],
    }
    if row["summary"] is not None:
        note["summary"] = row["summary"]
    if row["tags"]:
        try:
            tags = json.loads(row["tags"])
        except json.JSONDecodeError:
            tags = None
        if isinstance(tags, list):
            note["tags"] = tags
    return note


class NoteStore:
    """Notes table in a single SQLite file.

    One connection is shared across threads; a lock serializes every
    statement so the HTTP server can run handlers concurrently.
    """

    def __init__(self, db_path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(Path(self.db_path).expanduser())
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    summary TEXT,
                    tags TEXT,
                    createdAt TEXT NOT NULL,
                    updatedAt TEXT NOT NULL
                )
                """
            )
            self._conn.commit()
        logger.debug("Opened note store at %s", self.db_path)

    def close(self):
        with self._lock:
            self._conn.close()

    def create(self, note: dict) -> dict:
        tags = note.get("tags")
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO notes (id, text, summary, tags, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    note["id"],
                    note["text"],
                    note.get("summary"),
                    json.dumps(tags) if tags is not None else None,
                    note["createdAt"],
                    note["updatedAt"],
                ),
            )
        return dict(note)

    def get(self, note_id: str) -> dict | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
        return _row_to_note(row) if row else None

    def list(self) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM notes ORDER BY createdAt ASC"
            ).fetchall()
        return [_row_to_note(row) for row in rows]

    def update(self, note_id: str, patch: dict) -> dict:
        """Merge the non-None fields of *patch* and bump updatedAt."""
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT * FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
            if row is None:
                raise NoteNotFound(note_id)
            updated = _row_to_note(row)
            for key in ("text", "summary", "tags"):
                if patch.get(key) is not None:
                    updated[key] = patch[key]
            # never older than createdAt, even with a skewed clock
            updated["updatedAt"] = max(utc_now_iso(), updated["createdAt"])
            tags = updated.get("tags")
            self._conn.execute(
                """
                UPDATE notes
                   SET text = ?, summary = ?, tags = ?, updatedAt = ?
                 WHERE id = ?
                """,
                (
                    updated["text"],
                    updated.get("summary"),
                    json.dumps(tags) if tags is not None else None,
                    updated["updatedAt"],
                    note_id,
                ),
            )
        return updated

    def remove(self, note_id: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
        return cursor.rowcount > 0
