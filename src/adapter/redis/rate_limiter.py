"""Redis implementation of RateLimiterPort (sliding-window log).

Each key is a sorted set of request timestamps. Trim, add, count and expire run
in one MULTI transaction, so concurrent requests across instances see a
consistent count. Rejected requests are removed again and do not extend the window.
"""

import logging
import math
import time
import uuid
from typing import Callable, Optional

import redis
from redis.exceptions import RedisError

from adapter.redis.connection import get_redis_client
from port.rate_limiter import RateLimitResult

logger = logging.getLogger(__name__)


class RedisRateLimiter:
    def __init__(
        self,
        client_factory: Callable[[], Optional[redis.Redis]] = get_redis_client,
        clock: Callable[[], float] = time.time,
    ):
        self._client_factory = client_factory
        self._clock = clock

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        client = self._client_factory()
        if not client:
            logger.warning("Rate limiter unavailable, allowing request", extra={"key": key})
            return RateLimitResult(allowed=True, remaining=limit)

        now_ms = int(self._clock() * 1000)
        window_ms = window_seconds * 1000
        member = f"{now_ms}:{uuid.uuid4().hex}"

        try:
            pipe = client.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, now_ms - window_ms)
            pipe.zadd(key, {member: now_ms})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.pexpire(key, window_ms)
            _, _, count, oldest, _ = pipe.execute()

            if count <= limit:
                return RateLimitResult(allowed=True, remaining=limit - count)

            client.zrem(key, member)
        except RedisError as e:
            logger.warning("Rate limiter error, allowing request", extra={"key": key, "error": str(e)})
            return RateLimitResult(allowed=True, remaining=limit)

        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        retry_after = max(1, math.ceil((oldest_ms + window_ms - now_ms) / 1000))
        return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
