"""Port definition for the keyed request counter."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiterPort(Protocol):
    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request for ``key`` in a sliding window of ``window_seconds``.

        Rejected requests are not counted.
        """
        ...
