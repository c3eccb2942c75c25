"""In-memory implementation of SessionStorePort for testing."""

import copy
import threading
import time


class FakeSessionStore:
    def __init__(self, clock=time.monotonic):
        self.sessions: dict[str, dict[str, dict]] = {}
        self.expires_at: dict[str, float] = {}
        self.available = True
        self._clock = clock
        self._lock = threading.Lock()

    def _live(self, session_id: str) -> dict[str, dict] | None:
        expiry = self.expires_at.get(session_id)
        if expiry is not None and self._clock() >= expiry:
            self.sessions.pop(session_id, None)
            self.expires_at.pop(session_id, None)
        return self.sessions.get(session_id)

    def put(self, session_id: str, key: str, value: dict, ttl_seconds: int) -> bool:
        if not self.available:
            return False
        with self._lock:
            self.sessions.setdefault(session_id, {})[key] = copy.deepcopy(value)
            self.expires_at[session_id] = self._clock() + ttl_seconds
        return True

    def pop(self, session_id: str, key: str) -> dict | None:
        if not self.available:
            return None
        with self._lock:
            entries = self._live(session_id)
            if not entries:
                return None
            return entries.pop(key, None)

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            self.sessions.pop(session_id, None)
            self.expires_at.pop(session_id, None)
        return True

    def ping(self) -> bool:
        return self.available
