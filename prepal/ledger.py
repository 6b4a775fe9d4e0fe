"""
Mastery ledger: the learner's durable XP / level / streak record.

Every graded answer is a read-modify-write of the UserProgress document
plus one history row, committed together. Updates for the same learner
are serialized with an asyncio.Lock so concurrent submissions cannot lose
each other's changes.
"""

import asyncio
import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from .database import LocalDatabase
from .logger import logger
from .models import QuestionResult, UserProgress

DEFAULT_USER_ID = "default_user"


class MasteryLedger:
    def __init__(self, db: LocalDatabase):
        self.db = db
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def get_progress(self, user_id: str = DEFAULT_USER_ID) -> UserProgress:
        """Stored progress, or zeroed defaults for a new learner."""
        payload = await self.db.load_progress(user_id)
        if payload is None:
            return UserProgress()
        try:
            return UserProgress.from_dict(json.loads(payload))
        except (ValueError, TypeError) as e:
            logger.error(f"Unreadable progress for {user_id}, starting fresh: {e}")
            return UserProgress()

    async def record_result(
        self,
        result: QuestionResult,
        user_id: str = DEFAULT_USER_ID,
        now: Optional[datetime] = None,
    ) -> UserProgress:
        """Fold one graded answer into the learner's record and return it."""
        async with self._lock_for(user_id):
            progress = await self.get_progress(user_id)
            previous_level = progress.level
            progress.apply(result, now=now)

            try:
                await self.db.save_progress(
                    user_id,
                    json.dumps(progress.to_dict(), sort_keys=True),
                    json.dumps(result.to_dict()),
                )
            except sqlite3.Error as e:
                logger.error(f"Failed to save progress for {user_id}: {e}")
                return progress

        logger.db(
            f"Progress {user_id}: xp={progress.total_xp} level={progress.level} "
            f"streak={progress.current_streak} (best {progress.best_streak})"
        )
        if progress.level > previous_level:
            logger.success(f"{user_id} reached player level {progress.level}")
        return progress

    async def recent_history(self, limit: int = 20, user_id: str = DEFAULT_USER_ID) -> List[Dict[str, Any]]:
        """Latest graded answers, newest first."""
        return await self.db.history(user_id, limit)
