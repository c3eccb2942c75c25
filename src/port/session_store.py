"""Port definition for server-side browser sessions (OAuth state/PKCE)."""

from typing import Protocol


class SessionStorePort(Protocol):
    def put(self, session_id: str, key: str, value: dict, ttl_seconds: int) -> bool: ...
    def pop(self, session_id: str, key: str) -> dict | None: ...
    def destroy(self, session_id: str) -> bool: ...
    def ping(self) -> bool: ...
