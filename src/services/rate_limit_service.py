"""Rate-limit policies and their enforcement against a RateLimiterPort."""

import logging
from dataclasses import dataclass

from domain.model.errors import RateLimitedError
from port.rate_limiter import RateLimiterPort, RateLimitResult

logger = logging.getLogger(__name__)

KEY_PREFIX = 'ratelimit'


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    limit: int
    window_seconds: int
    message: str


LOGIN = RateLimitPolicy(
    'login', 5, 15 * 60,
    "Too many login attempts from this IP, please try again after 15 minutes",
)
FORGOT_PASSWORD = RateLimitPolicy(
    'forgot_password', 3, 60 * 60,
    "Too many password reset requests, please try again after an hour",
)
OAUTH = RateLimitPolicy(
    'oauth', 10, 15 * 60,
    "Too many OAuth attempts, please try again later",
)


def rate_limit_key(policy: RateLimitPolicy, client: str) -> str:
    return f"{KEY_PREFIX}:{policy.name}:{client}"


def enforce(limiter: RateLimiterPort, policy: RateLimitPolicy, client: str) -> RateLimitResult:
    """Count one request from ``client``; raise RateLimitedError once over the limit."""
    result = limiter.hit(rate_limit_key(policy, client), policy.limit, policy.window_seconds)
    if not result.allowed:
        logger.warning("Rate limit exceeded", extra={
            "policy": policy.name, "client": client, "retryAfter": result.retry_after,
        })
        raise RateLimitedError(policy.message, result.retry_after)
    return result
