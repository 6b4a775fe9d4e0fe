"""
Durable local store for PrepositionPal (SQLite).

Tables:
- question_cache   -> CachedQuestion payloads, indexed by (level, preposition)
- media_cache      -> generated image/video/audio bytes keyed by prompt hash
- user_progress    -> one UserProgress document per learner
- question_history -> append-only log of graded answers
- activity_log     -> session/activity telemetry, one row per session

All public methods are coroutines. The actual SQLite work runs in a worker
thread (asyncio.to_thread) behind a lock, so store access is a suspension
point for the caller and never blocks the event loop.
"""

import asyncio
import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logger import logger

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS question_cache (
    id TEXT PRIMARY KEY,
    level TEXT NOT NULL,
    preposition TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_question_cache_level_preposition
    ON question_cache(level, preposition);

CREATE TABLE IF NOT EXISTS media_cache (
    key TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    prompt TEXT NOT NULL,
    params TEXT NOT NULL DEFAULT '{}',
    data BLOB NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_progress (
    user_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS question_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_question_history_user ON question_history(user_id);

CREATE TABLE IF NOT EXISTS activity_log (
    session_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalDatabase:
    """
    SQLite-backed store shared by the content cache, media cache, mastery
    ledger and activity logger.

    Pass ``":memory:"`` for a throwaway database (tests).
    """

    def __init__(self, db_path: str = os.path.join("data", "prepal.db")):
        self.db_path = db_path
        if db_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(parent, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()
        logger.db(f"Local store ready: {db_path}")

    def _init_schema(self) -> None:
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")
        with self._conn:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    async def _run(self, fn: Callable, *args) -> Any:
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable, *args) -> Any:
        with self._lock:
            return fn(*args)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Question cache
    # ------------------------------------------------------------------

    async def upsert_question(self, question_id: str, level: str, preposition: str, payload: str) -> None:
        await self._run(self._upsert_question, question_id, level, preposition, payload)

    def _upsert_question(self, question_id: str, level: str, preposition: str, payload: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO question_cache (id, level, preposition, payload, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    level = excluded.level,
                    preposition = excluded.preposition,
                    payload = excluded.payload
                """,
                (question_id, level, preposition, payload, _now()),
            )

    async def question_rows(self, level: str, preposition: str) -> List[Tuple[str, str]]:
        """All (id, payload) rows stored under a (level, preposition) key."""
        return await self._run(self._question_rows, level, preposition)

    def _question_rows(self, level: str, preposition: str) -> List[Tuple[str, str]]:
        cursor = self._conn.execute(
            "SELECT id, payload FROM question_cache WHERE level = ? AND preposition = ? ORDER BY id",
            (level, preposition),
        )
        return [(row["id"], row["payload"]) for row in cursor.fetchall()]

    async def count_questions(self) -> int:
        return await self._run(self._count_questions)

    def _count_questions(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM question_cache").fetchone()[0])

    # ------------------------------------------------------------------
    # Media cache
    # ------------------------------------------------------------------

    async def get_media(self, key: str) -> Optional[sqlite3.Row]:
        return await self._run(self._get_media, key)

    def _get_media(self, key: str) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM media_cache WHERE key = ?", (key,)).fetchone()

    async def put_media(
        self, key: str, kind: str, mime_type: str, prompt: str, params: Dict[str, Any], data: bytes,
    ) -> None:
        await self._run(self._put_media, key, kind, mime_type, prompt, params, data)

    def _put_media(
        self, key: str, kind: str, mime_type: str, prompt: str, params: Dict[str, Any], data: bytes,
    ) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO media_cache (key, kind, mime_type, prompt, params, data, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (key, kind, mime_type, prompt, json.dumps(params, sort_keys=True), sqlite3.Binary(data), _now()),
            )

    # ------------------------------------------------------------------
    # Learner progress
    # ------------------------------------------------------------------

    async def load_progress(self, user_id: str) -> Optional[str]:
        return await self._run(self._load_progress, user_id)

    def _load_progress(self, user_id: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT payload FROM user_progress WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row["payload"] if row else None

    async def save_progress(self, user_id: str, progress_payload: str, history_payload: str) -> None:
        """Write the progress document and its history entry in one transaction."""
        await self._run(self._save_progress, user_id, progress_payload, history_payload)

    def _save_progress(self, user_id: str, progress_payload: str, history_payload: str) -> None:
        now = _now()
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO user_progress (user_id, payload, updated_at) VALUES (?, ?, ?)",
                (user_id, progress_payload, now),
            )
            self._conn.execute(
                "INSERT INTO question_history (user_id, payload, created_at) VALUES (?, ?, ?)",
                (user_id, history_payload, now),
            )

    async def history(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent graded answers, newest first."""
        return await self._run(self._history, user_id, limit)

    def _history(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        cursor = self._conn.execute(
            "SELECT payload, created_at FROM question_history WHERE user_id = ? ORDER BY id DESC LIMIT ?",
            (user_id, limit),
        )
        entries = []
        for row in cursor.fetchall():
            entry = json.loads(row["payload"])
            entry["timestamp"] = row["created_at"]
            entries.append(entry)
        return entries

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    async def save_activity(self, session_id: str, user_id: str, payload: Dict[str, Any]) -> None:
        await self._run(self._save_activity, session_id, user_id, json.dumps(payload))

    def _save_activity(self, session_id: str, user_id: str, payload: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO activity_log (session_id, user_id, payload, updated_at) VALUES (?, ?, ?, ?)",
                (session_id, user_id, payload, _now()),
            )

    async def load_activity(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._load_activity, session_id)

    def _load_activity(self, session_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            "SELECT payload FROM activity_log WHERE session_id = ?", (session_id,)
        ).fetchone()
        return json.loads(row["payload"]) if row else None
