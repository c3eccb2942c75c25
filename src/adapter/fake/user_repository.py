"""In-memory implementation of UserRepository for testing.

Users are copied on the way in and out so that callers only see changes they
persisted, the same as with a real database.
"""

import copy
import threading
from datetime import datetime

from domain.model.errors import DuplicateError, InvariantViolationError
from domain.model.user import User, normalize_email


class FakeUserRepository:
    def __init__(self):
        self.store: dict[str, User] = {}
        self._lock = threading.Lock()

    def add(self, user: User) -> User:
        """Seed a user directly, bypassing duplicate checks."""
        self.store[user.id] = copy.deepcopy(user)
        return user

    # ── write operations ─────────────────────────────────────

    def create(self, user: User) -> User:
        user.email = normalize_email(user.email)
        with self._lock:
            if any(u.email == user.email for u in self.store.values()):
                raise DuplicateError("Email already registered")
            self.store[user.id] = copy.deepcopy(user)
        return user

    def save(self, user: User) -> bool:
        with self._lock:
            stored = self.store.get(user.id)
            if not stored or stored.version != user.version:
                return False
            for provider, link in user.oauth.items():
                if not link.external_id:
                    continue
                for other in self.store.values():
                    other_link = other.oauth.get(provider)
                    if other.id != user.id and other_link and other_link.external_id == link.external_id:
                        raise InvariantViolationError("This provider account is already linked to another user")
            user.version += 1
            self.store[user.id] = copy.deepcopy(user)
        return True

    def _mutate(self, user_id: str, change) -> bool:
        with self._lock:
            user = self.store.get(user_id)
            if not user:
                return False
            change(user)
            user.version += 1
            return True

    def update_login_tracking(self, user_id: str, ip: str | None, at: datetime) -> bool:
        return self._mutate(user_id, lambda u: u.record_login(ip, at))

    def set_refresh_token(self, user_id: str, token_hash: str) -> bool:
        return self._mutate(user_id, lambda u: setattr(u, 'refresh_token_hash', token_hash))

    def clear_refresh_token(self, user_id: str) -> bool:
        return self._mutate(user_id, lambda u: setattr(u, 'refresh_token_hash', None))

    def set_reset_token(self, user_id: str, token_hash: str, expiry: datetime) -> bool:
        return self._mutate(user_id, lambda u: u.set_reset_token(token_hash, expiry))

    def clear_reset_token(self, user_id: str, token_hash: str) -> bool:
        with self._lock:
            user = self.store.get(user_id)
            if not user or user.reset_password_token != token_hash:
                return False
            user.clear_reset_token()
            user.version += 1
            return True

    def consume_reset_token(self, token_hash: str, password_hash: str, now: datetime) -> User | None:
        with self._lock:
            for user in self.store.values():
                if user.reset_token_valid(token_hash, now):
                    user.password_hash = password_hash
                    user.clear_reset_token()
                    user.failed_login_attempts = 0
                    user.is_locked = False
                    user.lock_until = None
                    user.refresh_token_hash = None
                    user.updated_at = now
                    user.version += 1
                    return copy.deepcopy(user)
        return None

    def unlink_provider(self, user_id: str, provider: str) -> User | None:
        with self._lock:
            user = self.store.get(user_id)
            if not user or not user.can_unlink(provider):
                return None
            user.unlink_provider(provider)
            user.version += 1
            return copy.deepcopy(user)

    def clear_provider_tokens(self, user_id: str) -> bool:
        return self._mutate(user_id, lambda u: u.clear_provider_tokens())

    # ── read operations ──────────────────────────────────────

    def _copy_first(self, predicate) -> User | None:
        with self._lock:
            for user in self.store.values():
                if predicate(user):
                    return copy.deepcopy(user)
        return None

    def get_by_email(self, email: str) -> User | None:
        email = normalize_email(email)
        return self._copy_first(lambda u: u.email == email)

    def get_by_id(self, user_id: str) -> User | None:
        user = self.store.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_by_provider_id(self, provider: str, external_id: str) -> User | None:
        return self._copy_first(
            lambda u: provider in u.oauth and u.oauth[provider].external_id == external_id
        )

    def get_by_reset_token(self, token_hash: str) -> User | None:
        return self._copy_first(lambda u: u.reset_password_token == token_hash)
