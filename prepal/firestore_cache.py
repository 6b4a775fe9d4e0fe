"""
Firebase Firestore mirror of the question cache.

Collection structure:
- questions/{question_id} -> CachedQuestion.to_dict()

The remote cache is optional. When it is not configured, or any call
fails, lookups behave as a miss and writes are skipped; nothing here ever
raises to the caller. The Firestore client is synchronous, so every call
runs in a worker thread.
"""

import asyncio
import os
import random
from typing import Any, Dict, Iterable, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from .logger import logger


class FirestoreQuestionCache:
    """Remote (level, preposition)-indexed question store."""

    COLLECTION = "questions"
    QUERY_LIMIT = 30

    def __init__(self, client: Any = None):
        self.db = client

    @classmethod
    def from_credentials(cls, credentials_path: Optional[str]) -> "FirestoreQuestionCache":
        """
        Connect using a service-account JSON file.

        Returns a disconnected cache (every call a no-op) when the path is
        missing or Firebase fails to initialize.
        """
        logger.separator("Remote Cache Initialization")

        if not credentials_path:
            logger.db("FIREBASE_CREDENTIALS_PATH not set, remote cache disabled")
            return cls()

        if not os.path.exists(credentials_path):
            logger.error(f"[DB] Credentials file not found at: {credentials_path}")
            return cls()

        try:
            try:
                app = firebase_admin.get_app()
                logger.debug("[DB] Reusing existing Firebase app")
            except ValueError:
                logger.debug("[DB] Initializing Firebase app...")
                app = firebase_admin.initialize_app(credentials.Certificate(credentials_path))
            client = firestore.client(app)
        except Exception as e:
            logger.error(f"[DB] Failed to initialize Firebase: {e}", exc_info=True)
            return cls()

        logger.success("[DB] Firebase Firestore connected")
        return cls(client)

    def is_connected(self) -> bool:
        return self.db is not None

    async def find_one(
        self,
        level: str,
        preposition: str,
        exclude_ids: Iterable[str] = (),
        rng: Optional[random.Random] = None,
    ) -> Optional[Dict[str, Any]]:
        """A random stored question for (level, preposition) outside ``exclude_ids``."""
        if not self.is_connected():
            return None

        rng = rng or random.Random()
        excluded = set(exclude_ids)
        try:
            docs = await asyncio.to_thread(self._query, level, preposition)
        except Exception as e:
            logger.warning(f"[DB] Remote cache lookup failed for {level}/{preposition}: {e}")
            return None

        candidates = [d for d in docs if d.get("id") and d["id"] not in excluded]
        if not candidates:
            return None
        logger.db(f"Remote cache: {len(candidates)} candidate(s) for {level}/{preposition}")
        return rng.choice(candidates)

    def _query(self, level: str, preposition: str) -> List[Dict[str, Any]]:
        query = self.db.collection(self.COLLECTION)\
                       .where("level", "==", level)\
                       .where("preposition", "==", preposition)\
                       .limit(self.QUERY_LIMIT)
        return [doc.to_dict() for doc in query.stream()]

    async def put(self, data: Dict[str, Any]) -> bool:
        """Mirror one question document. Returns False when skipped or failed."""
        if not self.is_connected():
            return False
        try:
            await asyncio.to_thread(self._set, data)
        except Exception as e:
            logger.warning(f"[DB] Remote cache write failed for {data.get('id')}: {e}")
            return False
        logger.db(f"Mirrored question {data.get('id')} to remote cache")
        return True

    def _set(self, data: Dict[str, Any]) -> None:
        self.db.collection(self.COLLECTION).document(data["id"]).set(data)
