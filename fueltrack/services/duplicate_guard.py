"""In-memory guard against double-submitted receipt uploads."""

import logging
import threading
import time

logger = logging.getLogger(__name__)

WINDOW_MILLIS = 10_000
MAX_TRACKED_KEYS = 1000


def now_millis() -> int:
    return int(time.time() * 1000)


class DuplicateUploadGuard:
    """Tracks (user, file size, 10-second bucket) keys of recent uploads.

    The tracked set is dropped wholesale once it grows past
    ``MAX_TRACKED_KEYS``; that can let a near-duplicate through but never
    blocks a legitimate upload for longer than one window.
    """

    def __init__(self, max_keys: int = MAX_TRACKED_KEYS) -> None:
        self.max_keys = max_keys
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(user_id: int, size_bytes: int, at_millis: int) -> str:
        return f"{user_id}_{size_bytes}_{at_millis // WINDOW_MILLIS}"

    def should_reject(self, user_id: int, size_bytes: int, at_millis: int) -> bool:
        with self._lock:
            return self.key_for(user_id, size_bytes, at_millis) in self._keys

    def record(self, user_id: int, size_bytes: int, at_millis: int) -> str:
        """Track an upload and return its key for a later ``release``."""
        key = self.key_for(user_id, size_bytes, at_millis)
        with self._lock:
            self._add(key)
        return key

    def acquire(self, user_id: int, size_bytes: int, at_millis: int) -> str | None:
        """Check and record in one step; None means the upload is a duplicate."""
        key = self.key_for(user_id, size_bytes, at_millis)
        with self._lock:
            if key in self._keys:
                return None
            self._add(key)
        return key

    def _add(self, key: str) -> None:
        # Caller holds the lock
        self._keys.add(key)
        if len(self._keys) > self.max_keys:
            logger.debug(f"Clearing {len(self._keys)} tracked upload keys")
            self._keys.clear()

    def release(self, key: str) -> None:
        """Forget a key so the same upload can be retried."""
        with self._lock:
            self._keys.discard(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
