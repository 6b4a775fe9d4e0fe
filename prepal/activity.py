"""
Session activity telemetry.

An ActivityLogger tracks one play session: a sequence of activities
(drill rounds, navigation, reading), each with the focus items the learner
worked on. Whenever an activity ends the whole session document is saved
to the local store and POSTed to the telemetry sink, if one is configured.

Telemetry is one-way: failures are logged and dropped, never retried and
never raised.
"""

import asyncio
import secrets
import sqlite3
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import httpx

from .database import LocalDatabase
from .logger import logger

TELEMETRY_SOURCE = "prepal"
POST_TIMEOUT_SECONDS = 10


def _iso(ts: Optional[float] = None) -> str:
    return datetime.fromtimestamp(ts if ts is not None else time.time(), tz=timezone.utc).isoformat()


@dataclass
class FocusItem:
    focus_category: str                 # e.g. "Grammar", "Vocabulary"
    focus_item: str                     # e.g. the preposition drilled
    time_spent_seconds: float
    performance_score: Optional[float]
    attempts_count: int
    error_pattern_detected: List[str] = field(default_factory=list)
    context_sentence: Optional[str] = None
    timestamp: str = ""


@dataclass
class ActivityLog:
    activity_id: str
    activity_type: str                  # "drill", "navigation", "reading", ...
    activity_description: str
    start_time: str
    end_time: Optional[str] = None
    duration_seconds: Optional[float] = None
    focus_items: List[FocusItem] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ActivityLogger:
    def __init__(
        self,
        module_id: str,
        user_id: str,
        db: Optional[LocalDatabase] = None,
        telemetry_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.module_id = module_id
        self.user_id = user_id
        self.db = db
        self.telemetry_url = telemetry_url
        self._http = http_client

        self.session_id = f"session_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
        self.session_start = time.time()
        self.activities: List[ActivityLog] = []
        self.current_activity: Optional[ActivityLog] = None
        self._activity_started = 0.0
        self._pending: Set[asyncio.Task] = set()

    async def start_session(self) -> None:
        self.session_start = time.time()
        logger.task(f"Session {self.session_id} started for {self.user_id}")
        await self._persist()

    async def start_activity(self, activity_id: str, activity_type: str, description: str) -> None:
        """Begin an activity, closing the current one first."""
        if self.current_activity is not None:
            await self.end_activity()
        self._activity_started = time.time()
        self.current_activity = ActivityLog(
            activity_id=activity_id,
            activity_type=activity_type,
            activity_description=description,
            start_time=_iso(self._activity_started),
        )

    async def end_activity(self) -> None:
        if self.current_activity is None:
            return
        now = time.time()
        self.current_activity.end_time = _iso(now)
        self.current_activity.duration_seconds = round(now - self._activity_started, 3)
        self.activities.append(self.current_activity)
        self.current_activity = None
        await self._persist()

    def add_metadata(self, key: str, value: Any) -> None:
        if self.current_activity is not None:
            self.current_activity.metadata[key] = value

    def log_focus_item(
        self,
        category: str,
        focus_on: str,
        time_spent: float,
        performance_score: Optional[float],
        attempts: int,
        error_patterns: Optional[List[str]] = None,
        context: Optional[str] = None,
    ) -> None:
        if self.current_activity is None:
            return
        self.current_activity.focus_items.append(FocusItem(
            focus_category=category,
            focus_item=focus_on,
            time_spent_seconds=round(time_spent, 3),
            performance_score=performance_score,
            attempts_count=attempts,
            error_pattern_detected=list(error_patterns or []),
            context_sentence=context,
            timestamp=_iso(),
        ))

    def session_log(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "module_id": self.module_id,
            "start_time": _iso(self.session_start),
            "end_time": _iso(),
            "activities": [asdict(a) for a in self.activities],
        }

    async def _persist(self) -> None:
        log = self.session_log()

        if self.db is not None:
            try:
                await self.db.save_activity(self.session_id, self.user_id, log)
            except sqlite3.Error as e:
                logger.error(f"Failed to save activity log locally: {e}")

        if self.telemetry_url:
            task = asyncio.create_task(self._post({**log, "source": TELEMETRY_SOURCE}))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _post(self, payload: Dict[str, Any]) -> None:
        logger.task_start(f"telemetry {self.session_id}")
        try:
            if self._http is not None:
                response = await self._http.post(self.telemetry_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=POST_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.telemetry_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.task_error(f"telemetry {self.session_id}", f"Failed to send session data: {e}")
            return
        logger.task_complete(f"telemetry {self.session_id}")

    async def drain(self) -> None:
        """Wait for in-flight telemetry posts."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.end_activity()
        await self.drain()
