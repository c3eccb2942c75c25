"""Auth service: signup, credential login, session issuance, refresh and logout.

Pure business logic with no HTTP dependencies.
Raises domain errors that the API layer maps to HTTP status codes.
"""

import logging
from datetime import datetime, timezone

from domain.model import lockout
from domain.model.errors import (
    AccountLockedError,
    DomainError,
    DuplicateError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    TokenVerificationError,
    ValidationError,
)
from domain.model.lockout import LockState
from domain.model.token import IssuedTokens
from domain.model.user import User, normalize_email
from port.user_repository import UserRepository
from services.password_service import (
    dummy_verify,
    hash_password,
    validate_password_strength,
    verify_password,
)
from services.token_service import TokenService, hash_token

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 100


def _validate_signup(first_name: str, last_name: str, email: str, password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise ValidationError("Passwords do not match")
    for label, value in (("First name", first_name), ("Last name", last_name)):
        if not NAME_MIN_LENGTH <= len(value.strip()) <= NAME_MAX_LENGTH:
            raise ValidationError(
                f"{label} must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
            )
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError("Email is too long")
    validate_password_strength(password)


def register(
    repo: UserRepository,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    confirm_password: str,
    bcrypt_rounds: int | None = None,
) -> User:
    """Register a new local account.

    Raises:
        ValidationError: bad names, password mismatch or weak password
        DuplicateError: email already registered (case-insensitive)
    """
    _validate_signup(first_name, last_name, email, password, confirm_password)

    if repo.get_by_email(email):
        raise DuplicateError("Email already registered")

    user = User.create_local(first_name, last_name, email, hash_password(password, bcrypt_rounds))
    created = repo.create(user)
    logger.info("User registered", extra={"userId": created.id, "email": created.email})
    return created


def authenticate(
    repo: UserRepository,
    email: str,
    password: str,
    now: datetime | None = None,
) -> User:
    """Check credentials, enforcing the lockout state machine.

    The lock is evaluated before the password is compared. Unknown accounts,
    password-less (OAuth-only) accounts and wrong passwords all raise the same
    InvalidCredentialsError.

    Raises:
        AccountLockedError: account is locked, or this failure just locked it
        InvalidCredentialsError: credentials do not match
    """
    now = now or datetime.now(timezone.utc)
    user = repo.get_by_email(normalize_email(email))
    if not user:
        dummy_verify(password)
        raise InvalidCredentialsError()

    state = lockout.evaluate(user, now)
    if state == LockState.LOCKED:
        logger.warning("Login attempt on locked account", extra={"userId": user.id})
        raise AccountLockedError(user.lock_until, lockout.minutes_remaining(user, now))

    if not user.password_hash:
        dummy_verify(password)
    elif verify_password(password, user.password_hash):
        if user.failed_login_attempts or user.is_locked:
            lockout.register_success(user)
            user.updated_at = now
            if not repo.save(user):
                logger.warning("Lost race resetting lockout counters", extra={"userId": user.id})
        return user

    new_state = lockout.register_failure(user, now)
    if not repo.save(user):
        logger.warning("Lost race recording failed login", extra={"userId": user.id})

    if new_state == LockState.LOCKED:
        logger.warning("Account locked after repeated failures", extra={
            "userId": user.id, "failedAttempts": user.failed_login_attempts,
        })
        raise AccountLockedError(user.lock_until, lockout.minutes_remaining(user, now))

    logger.info("Failed login", extra={"userId": user.id, "failedAttempts": user.failed_login_attempts})
    raise InvalidCredentialsError()


def issue_session(
    repo: UserRepository,
    tokens: TokenService,
    user: User,
    ip: str | None,
    now: datetime | None = None,
) -> IssuedTokens:
    """Mint an access/refresh pair and record the login.

    The refresh token digest replaces any previous one (one active refresh token
    per account). Login tracking is informational and not transactional with signing.
    """
    now = now or datetime.now(timezone.utc)
    access = tokens.issue_access_token(user.id, user.email, now)
    refresh = tokens.issue_refresh_token(user.id, user.email, now)

    if not repo.set_refresh_token(user.id, hash_token(refresh)):
        raise DomainError("Failed to persist refresh token")

    # login succeeds even if the tracking update fails
    repo.update_login_tracking(user.id, ip, now)

    return IssuedTokens(
        access_token=access,
        refresh_token=refresh,
        access_max_age=tokens.settings.cookie_max_age,
        refresh_max_age=tokens.settings.refresh_token_ttl,
    )


def refresh_session(
    repo: UserRepository,
    tokens: TokenService,
    refresh_token: str | None,
) -> tuple[User, IssuedTokens]:
    """Rotate the token pair using the refresh-token cookie.

    A refresh token that verifies but no longer matches the stored digest has
    already been rotated away: it is treated as replayed and the stored token
    is revoked, ending every session of the account.

    Raises:
        InvalidOrExpiredTokenError: missing, invalid, expired, replayed, or the user is gone
    """
    if not refresh_token:
        raise InvalidOrExpiredTokenError("Refresh token not provided", InvalidOrExpiredTokenError.REFRESH)

    try:
        payload = tokens.verify_refresh(refresh_token)
    except TokenVerificationError as e:
        logger.info("Refresh token rejected", extra={"reason": e.code})
        raise InvalidOrExpiredTokenError("Invalid refresh token", InvalidOrExpiredTokenError.REFRESH)

    user = repo.get_by_id(payload.user_id)
    if not user:
        raise InvalidOrExpiredTokenError("Invalid refresh token", InvalidOrExpiredTokenError.REFRESH)

    if user.refresh_token_hash != hash_token(refresh_token):
        if user.refresh_token_hash is not None:
            repo.clear_refresh_token(user.id)
            logger.warning("Refresh token reuse detected, sessions revoked", extra={"userId": user.id})
        raise InvalidOrExpiredTokenError("Invalid refresh token", InvalidOrExpiredTokenError.REFRESH)

    access = tokens.issue_access_token(user.id, user.email)
    refresh = tokens.issue_refresh_token(user.id, user.email)
    if not repo.set_refresh_token(user.id, hash_token(refresh)):
        raise DomainError("Failed to persist refresh token")

    logger.info("Token refreshed", extra={"userId": user.id})
    return user, IssuedTokens(
        access_token=access,
        refresh_token=refresh,
        access_max_age=tokens.settings.cookie_max_age,
        refresh_max_age=tokens.settings.refresh_token_ttl,
    )


def logout(repo: UserRepository, user: User, clear_provider_tokens: bool = False) -> None:
    """Revoke the stored refresh token, optionally forgetting provider tokens too."""
    repo.clear_refresh_token(user.id)
    if clear_provider_tokens:
        repo.clear_provider_tokens(user.id)
    logger.info("User logged out", extra={"userId": user.id, "oauthLogout": clear_provider_tokens})
