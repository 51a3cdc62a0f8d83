"""SQLite persistence for the offline thread/message mirror."""

import json
import sqlite3
from pathlib import Path

from .core import Message, Role, Thread, parse_content_block


def connect(db_path: Path) -> sqlite3.Connection:
    """Open (creating if needed) the SQLite database at *db_path*."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


class ChatStore:
    """Stored threads and messages.

    Writes are staged until ``save`` commits them, so a sync either lands
    completely or not at all.
    """

    def __init__(self, db_path: Path):
        self.conn = connect(db_path)
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT NOT NULL,
                thread_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (thread_id, id),
                FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_messages_thread
                ON messages(thread_id, created_at, position);
        """)
        self.conn.commit()

    # ── Threads ──────────────────────────────────────────────────────

    def fetch_threads(self, thread_id: str | None = None) -> list[Thread]:
        """Return stored threads, newest first, optionally only *thread_id*."""
        if thread_id is not None:
            rows = self.conn.execute(
                "SELECT id, created_at FROM threads WHERE id = ?", (thread_id,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT id, created_at FROM threads ORDER BY created_at DESC, id"
            ).fetchall()
        return [Thread(id=r["id"], created_at=r["created_at"]) for r in rows]

    def insert_thread(self, thread: Thread):
        self.conn.execute(
            "INSERT INTO threads (id, created_at) VALUES (?, ?)",
            (thread.id, thread.created_at),
        )

    def update_thread(self, thread: Thread):
        self.conn.execute(
            "UPDATE threads SET created_at = ? WHERE id = ?",
            (thread.created_at, thread.id),
        )

    def delete_thread(self, thread_id: str):
        self.conn.execute("DELETE FROM threads WHERE id = ?", (thread_id,))

    # ── Messages ─────────────────────────────────────────────────────

    def fetch_messages(self, thread_id: str) -> list[Message]:
        rows = self.conn.execute(
            """SELECT id, thread_id, role, content, created_at FROM messages
               WHERE thread_id = ? ORDER BY created_at, position""",
            (thread_id,),
        ).fetchall()
        return [
            Message(
                id=r["id"],
                thread_id=r["thread_id"],
                role=Role(r["role"]),
                content=tuple(parse_content_block(b) for b in json.loads(r["content"])),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def delete_messages(self, thread_id: str):
        self.conn.execute("DELETE FROM messages WHERE thread_id = ?", (thread_id,))

    def insert_message(self, message: Message, position: int):
        self.conn.execute(
            """INSERT OR REPLACE INTO messages (id, thread_id, role, content, created_at, position)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                message.id,
                message.thread_id,
                message.role.value,
                json.dumps([b.to_dict() for b in message.content]),
                message.created_at,
                position,
            ),
        )

    # ── Transactions ─────────────────────────────────────────────────

    def save(self):
        self.conn.commit()

    def rollback(self):
        self.conn.rollback()

    def close(self):
        self.conn.close()
