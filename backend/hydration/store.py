"""
store.py — Reading Persistence Collaborators
=============================================

The pipeline hands every processed reading (with its recommendations and
alerts) to a store and later asks the same store for recent labelled
readings to retrain the reference clusters. How and where the records are
kept is the store's business.

Stores:
    MemoryReadingStore    — process-local list (tests, device-less demos)
    FirebaseReadingStore  — Firebase Realtime Database under
                            config.FIREBASE_READINGS_PATH
"""

import logging
import os
import threading
from datetime import datetime

from . import config

logger = logging.getLogger("hydration.store")


def _captured_at(record: dict) -> datetime:
    value = record.get("captured_at")
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class MemoryReadingStore:
    """Keeps records in memory, oldest first."""

    def __init__(self):
        self._records: list[dict] = []
        self._lock = threading.Lock()

    def save(self, record: dict) -> str:
        with self._lock:
            self._records.append(dict(record))
            reading_id = f"reading_{len(self._records)}"
        logger.debug(f"Stored {reading_id}")
        return reading_id

    def recent_labeled(self, since: datetime) -> list[dict]:
        """Records captured at or after ``since``."""
        with self._lock:
            records = list(self._records)
        return [r for r in records if _captured_at(r) >= since]

    def __len__(self) -> int:
        return len(self._records)


class FirebaseReadingStore:
    """
    Firebase RTDB-backed store.

    Readings are pushed under ``path`` and queried by their ISO-8601
    ``captured_at`` child, which sorts chronologically as a string.
    """

    def __init__(self, path: str = None, credentials_path: str = None,
                 database_url: str = None):
        self.path = path or config.FIREBASE_READINGS_PATH
        self.credentials_path = credentials_path or config.FIREBASE_CREDENTIALS_PATH
        self.database_url = database_url or config.FIREBASE_DATABASE_URL

    def _reference(self):
        import firebase_admin
        from firebase_admin import credentials, db as firebase_db

        if not firebase_admin._apps:
            if not os.path.exists(self.credentials_path):
                raise FileNotFoundError(
                    f"Firebase service account key not found at {self.credentials_path}"
                )
            cred = credentials.Certificate(self.credentials_path)
            firebase_admin.initialize_app(cred, {"databaseURL": self.database_url})
            logger.info(f"Firebase app initialized for {self.database_url}")

        return firebase_db.reference(self.path)

    def save(self, record: dict) -> str:
        ref = self._reference().push(record)
        logger.info(f"Saved reading {ref.key} to Firebase")
        return ref.key

    def recent_labeled(self, since: datetime) -> list[dict]:
        logger.info(f"Fetching readings since {since.isoformat()} from Firebase …")
        snapshot = (
            self._reference()
            .order_by_child("captured_at")
            .start_at(since.isoformat())
            .get()
        ) or {}
        records = list(snapshot.values())
        logger.info(f"Fetched {len(records)} readings")
        return records
