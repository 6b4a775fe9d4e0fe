"""
Question and media caches.

ContentCache: generated questions keyed by id, looked up at random by
(level, preposition) while skipping recently served ids. Backed by the
local SQLite store, optionally mirrored to Firestore.

MediaCache: generated image/video/audio bytes keyed by a hash of the
generation prompt and its parameters. No notion of level or exclusion.

RecentQuestions: the session-scoped rolling list of served ids.
"""

import hashlib
import json
import random
import sqlite3
from collections import deque
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .catalog import EXCLUSIONS
from .database import LocalDatabase
from .firestore_cache import FirestoreQuestionCache
from .logger import logger
from .models import CachedQuestion, GameLevel, MediaAsset, MediaKind, Preposition


class ContentCache:
    """Exclusion-aware random lookup over previously generated questions."""

    def __init__(
        self,
        db: LocalDatabase,
        remote: Optional[FirestoreQuestionCache] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.remote = remote
        self.rng = rng or random.Random()

    async def put(self, question: CachedQuestion) -> None:
        """Upsert by id. Writing the same id twice leaves one entry."""
        data = question.to_dict()
        try:
            await self.db.upsert_question(
                question.id, question.level.value, question.preposition.value,
                json.dumps(data, sort_keys=True),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to cache question {question.id}: {e}")
            return
        logger.cache(f"Stored {question.level.value}/{question.preposition.value} -> {question.id}")

        if self.remote is not None:
            await self.remote.put(data)

    async def find_one(
        self,
        level: GameLevel,
        preposition: Preposition,
        exclude_ids: Iterable[str] = (),
    ) -> Optional[CachedQuestion]:
        """
        A uniformly random stored question for (level, preposition) whose id
        is not excluded, or None. Unreadable or unplayable rows are skipped.
        """
        key = f"{level.value}/{preposition.value}"
        excluded = set(exclude_ids)

        try:
            rows = await self.db.question_rows(level.value, preposition.value)
        except sqlite3.Error as e:
            logger.error(f"Question cache lookup failed for {key}: {e}")
            rows = []

        candidates: List[CachedQuestion] = []
        for question_id, payload in rows:
            if question_id in excluded:
                continue
            try:
                question = CachedQuestion.from_dict(json.loads(payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable cached question {question_id}: {e}")
                continue
            if question.preposition != preposition or not question.is_playable(EXCLUSIONS):
                logger.warning(f"Skipping unplayable cached question {question_id}")
                continue
            candidates.append(question)

        if candidates:
            chosen = self.rng.choice(candidates)
            logger.cache_hit(key, chosen.id)
            return chosen

        remote_hit = await self._find_remote(level, preposition, excluded)
        if remote_hit is not None:
            logger.cache_hit(f"{key} (remote)", remote_hit.id)
            return remote_hit

        logger.cache_miss(key)
        return None

    async def _find_remote(
        self, level: GameLevel, preposition: Preposition, excluded: set,
    ) -> Optional[CachedQuestion]:
        if self.remote is None:
            return None
        data = await self.remote.find_one(level.value, preposition.value, excluded, self.rng)
        if data is None:
            return None
        try:
            question = CachedQuestion.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            doc_id = data.get("id") if isinstance(data, dict) else None
            logger.warning(f"Skipping unreadable remote question {doc_id}: {e}")
            return None
        if question.level != level or question.preposition != preposition:
            return None
        if not question.is_playable(EXCLUSIONS):
            logger.warning(f"Skipping unplayable remote question {question.id}")
            return None

        # Write through so the next lookup is served locally
        try:
            await self.db.upsert_question(
                question.id, level.value, preposition.value,
                json.dumps(question.to_dict(), sort_keys=True),
            )
        except sqlite3.Error as e:
            logger.warning(f"Could not store remote question {question.id} locally: {e}")
        return question


def media_key(kind: MediaKind, prompt: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Stable key for a generation request: kind + prompt + parameters."""
    raw = json.dumps({"kind": kind.value, "prompt": prompt, "params": params or {}}, sort_keys=True)
    return hashlib.md5(raw.encode()).hexdigest()


class MediaCache:
    """Durable cache of generated media bytes."""

    def __init__(self, db: LocalDatabase):
        self.db = db

    async def get(
        self, kind: MediaKind, prompt: str, params: Optional[Dict[str, Any]] = None,
    ) -> Optional[MediaAsset]:
        key = media_key(kind, prompt, params)
        try:
            row = await self.db.get_media(key)
        except sqlite3.Error as e:
            logger.error(f"Media cache lookup failed: {e}")
            return None

        if row is None:
            logger.cache_miss(f"{kind.value}:{key[:12]}")
            return None
        logger.cache_hit(f"{kind.value}:{key[:12]}", f"{len(row['data'])} bytes")
        return MediaAsset(
            key=key,
            kind=MediaKind(row["kind"]),
            mime_type=row["mime_type"],
            data=bytes(row["data"]),
            prompt=row["prompt"],
        )

    async def put(self, asset: MediaAsset, params: Optional[Dict[str, Any]] = None) -> bool:
        """Store generated bytes. Placeholders and URL-only assets are skipped."""
        if asset.placeholder or not asset.data:
            return False
        try:
            await self.db.put_media(
                asset.key, asset.kind.value, asset.mime_type, asset.prompt, params or {}, asset.data,
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to cache {asset.kind.value}: {e}")
            return False
        logger.cache(f"Stored {asset.kind.value} {asset.key[:12]} ({len(asset.data)} bytes)")
        return True


class RecentQuestions:
    """Bounded, oldest-first list of recently served question ids."""

    def __init__(self, limit: int = 15, initial: Iterable[str] = ()):
        self._ids: deque = deque(maxlen=max(1, limit))
        for question_id in initial:
            self.push(question_id)

    def push(self, question_id: str) -> None:
        if question_id in self._ids:
            self._ids.remove(question_id)
        self._ids.append(question_id)

    def ids(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)
