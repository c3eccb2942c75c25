"""Password-reset lifecycle: request, validate, consume.

The emailed token is never stored; only its SHA-256 digest is. Consumption is
a single conditional write, so a token redeems at most once.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from domain.model.errors import InvalidOrExpiredTokenError, ValidationError
from domain.model.user import User
from port.mailer import MailerPort
from port.user_repository import UserRepository
from services.password_service import hash_password, validate_password_strength
from services.token_service import hash_token

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(minutes=10)
GENERIC_RESET_MESSAGE = "If the email exists, a password reset link has been sent"


def reset_url(app_base_url: str, token: str) -> str:
    return f"{app_base_url.rstrip('/')}/auth/reset-password/{token}"


def request(
    repo: UserRepository,
    mailer: MailerPort,
    email: str,
    app_base_url: str,
    now: datetime | None = None,
) -> str:
    """Start a reset for ``email``. Returns the same message whether or not the account exists."""
    now = now or datetime.now(timezone.utc)
    user = repo.get_by_email(email)
    if not user:
        logger.info("Password reset requested for unknown email")
        return GENERIC_RESET_MESSAGE

    token = secrets.token_hex(32)
    token_hash = hash_token(token)
    if not repo.set_reset_token(user.id, token_hash, now + RESET_TOKEN_TTL):
        logger.error("Failed to store reset token", extra={"userId": user.id})
        return GENERIC_RESET_MESSAGE

    expires_minutes = int(RESET_TOKEN_TTL.total_seconds() // 60)
    sent = mailer.send_password_reset(user.email, user.first_name, reset_url(app_base_url, token), expires_minutes)
    if not sent:
        # an undeliverable token must not stay redeemable
        repo.clear_reset_token(user.id, token_hash)
        logger.error("Reset email delivery failed, token cleared", extra={"userId": user.id})
        return GENERIC_RESET_MESSAGE

    logger.info("Password reset email sent", extra={"userId": user.id})
    return GENERIC_RESET_MESSAGE


def validate(repo: UserRepository, token: str, now: datetime | None = None) -> User:
    """Return the account holding ``token`` if it is unexpired.

    Raises:
        InvalidOrExpiredTokenError: unknown, already used, or expiry not strictly in the future
    """
    now = now or datetime.now(timezone.utc)
    token_hash = hash_token(token)
    user = repo.get_by_reset_token(token_hash)
    if not user or not user.reset_token_valid(token_hash, now):
        raise InvalidOrExpiredTokenError("Invalid or expired reset token")
    return user


def consume(
    repo: UserRepository,
    token: str,
    new_password: str,
    confirm_password: str,
    bcrypt_rounds: int | None = None,
    now: datetime | None = None,
) -> User:
    """Set a new password with a reset token.

    Also clears the lockout counters and revokes the stored refresh token.

    Raises:
        InvalidOrExpiredTokenError: token unknown, expired or consumed concurrently
        ValidationError: password mismatch or weak password
    """
    now = now or datetime.now(timezone.utc)
    validate(repo, token, now)

    if new_password != confirm_password:
        raise ValidationError("Passwords do not match")
    validate_password_strength(new_password)

    user = repo.consume_reset_token(hash_token(token), hash_password(new_password, bcrypt_rounds), now)
    if not user:
        raise InvalidOrExpiredTokenError("Invalid or expired reset token")

    logger.info("Password reset completed", extra={"userId": user.id})
    return user
