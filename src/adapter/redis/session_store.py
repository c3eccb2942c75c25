"""Redis implementation of SessionStorePort.

Each browser session is one hash (``session:<sid>``); fields are per-purpose
entries such as ``oauth:google``. The whole hash expires with the session TTL.
"""

import json
import logging
from typing import Callable, Optional

import redis
from redis.exceptions import RedisError

from adapter.redis.connection import get_redis_client

logger = logging.getLogger(__name__)

SESSION_PREFIX = 'session:'


class RedisSessionStore:
    def __init__(self, client_factory: Callable[[], Optional[redis.Redis]] = get_redis_client):
        self._client_factory = client_factory

    def _key(self, session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    def put(self, session_id: str, key: str, value: dict, ttl_seconds: int) -> bool:
        client = self._client_factory()
        if not client:
            logger.error("Session store unavailable", extra={"field": key})
            return False
        try:
            pipe = client.pipeline(transaction=True)
            pipe.hset(self._key(session_id), key, json.dumps(value, default=str))
            pipe.expire(self._key(session_id), ttl_seconds)
            pipe.execute()
            return True
        except RedisError as e:
            logger.error("Failed to write session entry", extra={"field": key, "error": str(e)})
            return False

    def pop(self, session_id: str, key: str) -> dict | None:
        """Read and delete one entry in a single transaction."""
        client = self._client_factory()
        if not client:
            logger.error("Session store unavailable", extra={"field": key})
            return None
        try:
            pipe = client.pipeline(transaction=True)
            pipe.hget(self._key(session_id), key)
            pipe.hdel(self._key(session_id), key)
            raw, _ = pipe.execute()
        except RedisError as e:
            logger.error("Failed to read session entry", extra={"field": key, "error": str(e)})
            return None

        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt session entry discarded", extra={"field": key})
            return None
        return value if isinstance(value, dict) else None

    def destroy(self, session_id: str) -> bool:
        client = self._client_factory()
        if not client:
            return False
        try:
            client.delete(self._key(session_id))
            return True
        except RedisError as e:
            logger.error("Failed to destroy session", extra={"error": str(e)})
            return False

    def ping(self) -> bool:
        client = self._client_factory()
        if not client:
            return False
        try:
            return bool(client.ping())
        except RedisError:
            return False
