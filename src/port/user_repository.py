from datetime import datetime
from typing import Protocol

from domain.model.user import User


class UserRepository(Protocol):
    """Protocol defining the interface for user data access (the credential store)."""

    def create(self, user: User) -> User:
        """Insert a new user. Raise DuplicateError if the email is taken."""
        ...

    def save(self, user: User) -> bool:
        """Conditionally replace the whole document.

        Succeeds only if the stored version still equals ``user.version``;
        bumps the version on success. Return False on a lost race.
        """
        ...

    def get_by_email(self, email: str) -> User | None:
        """Find a user by email (case-insensitive). Return User or None if not found."""
        ...

    def get_by_id(self, user_id: str) -> User | None:
        """Find a user by ID. Return User or None if not found."""
        ...

    def get_by_provider_id(self, provider: str, external_id: str) -> User | None:
        """Find the user linked to (provider, external_id)."""
        ...

    def get_by_reset_token(self, token_hash: str) -> User | None:
        """Find the user holding this reset-token digest, expired or not."""
        ...

    def update_login_tracking(self, user_id: str, ip: str | None, at: datetime) -> bool:
        """Set last login time/IP and increment the login count."""
        ...

    def set_refresh_token(self, user_id: str, token_hash: str) -> bool:
        """Replace the single active refresh-token digest."""
        ...

    def clear_refresh_token(self, user_id: str) -> bool:
        ...

    def set_reset_token(self, user_id: str, token_hash: str, expiry: datetime) -> bool:
        """Write the reset token digest and its expiry together."""
        ...

    def clear_reset_token(self, user_id: str, token_hash: str) -> bool:
        """Clear the reset pair, but only if ``token_hash`` is still the stored one."""
        ...

    def consume_reset_token(self, token_hash: str, password_hash: str, now: datetime) -> User | None:
        """Atomically redeem a valid reset token.

        In one conditional write: set the new password hash, clear the token pair,
        reset lockout counters and revoke the refresh token. Return the updated
        user, or None if no unexpired record holds the token.
        """
        ...

    def unlink_provider(self, user_id: str, provider: str) -> User | None:
        """Atomically remove a provider link if another login method remains.

        Return the updated user, or None if the guard did not match.
        """
        ...

    def clear_provider_tokens(self, user_id: str) -> bool:
        """Forget stored provider access/refresh tokens, keeping the links."""
        ...
