"""Brute-force lockout state machine.

    UNLOCKED --(5th consecutive failure)--> LOCKED
    LOCKED   --(now >= lock_until)--------> EXPIRED (still flagged, treated as unlocked)
    EXPIRED  --(success)------------------> UNLOCKED, counter 0
    EXPIRED  --(failure)------------------> UNLOCKED, counter 1
    UNLOCKED --(success)------------------> UNLOCKED, counter 0

Callers must evaluate the state before comparing a password: a LOCKED account
never reaches the password check.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from domain.model.user import User


class LockState(str, Enum):
    UNLOCKED = 'unlocked'
    LOCKED = 'locked'
    EXPIRED = 'expired'


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 5
    lock_duration: timedelta = timedelta(minutes=30)


DEFAULT_POLICY = LockoutPolicy()


def evaluate(user: User, now: datetime) -> LockState:
    if not user.is_locked:
        return LockState.UNLOCKED
    if user.lock_until is not None and now < user.lock_until:
        return LockState.LOCKED
    return LockState.EXPIRED


def minutes_remaining(user: User, now: datetime) -> int:
    if not user.is_locked or user.lock_until is None:
        return 0
    return max(1, math.ceil((user.lock_until - now).total_seconds() / 60))


def register_failure(user: User, now: datetime, policy: LockoutPolicy = DEFAULT_POLICY) -> LockState:
    """Count a failed credential check. Returns the resulting state."""
    if evaluate(user, now) == LockState.EXPIRED:
        _clear(user)

    user.failed_login_attempts += 1
    if user.failed_login_attempts >= policy.max_attempts:
        user.is_locked = True
        user.lock_until = now + policy.lock_duration
        user.updated_at = now
        return LockState.LOCKED

    user.updated_at = now
    return LockState.UNLOCKED


def register_success(user: User) -> None:
    """Reset the counter and clear the lock together."""
    _clear(user)


def _clear(user: User) -> None:
    user.failed_login_attempts = 0
    user.is_locked = False
    user.lock_until = None
