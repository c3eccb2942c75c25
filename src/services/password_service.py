"""Password hashing and strength policy.

bcrypt does the hashing and its ``checkpw`` comparison is constant-time.
Nothing in this module logs or returns plaintext.
"""

import re

import bcrypt

from domain.model.errors import ValidationError

DEFAULT_BCRYPT_ROUNDS = 10
MIN_LENGTH = 8
MAX_LENGTH = 128
SPECIAL_CHARS_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?~`]")

FORBIDDEN_PATTERNS = (
    'password', '123456', 'qwerty', 'abc123', 'admin', 'letmein', 'welcome',
    'monkey', 'dragon', 'master', 'freedom', 'whatever', 'qazwsx', 'trustno1',
    '654321', 'superman', 'iloveyou', 'football',
)

# Compared against when the account does not exist, so that path costs one bcrypt check too
_DUMMY_HASH = bcrypt.hashpw(b'dummy-password-for-timing', bcrypt.gensalt(rounds=DEFAULT_BCRYPT_ROUNDS))


def hash_password(password: str, rounds: int | None = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or DEFAULT_BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt digest
        return False


def dummy_verify(plain: str) -> None:
    bcrypt.checkpw(plain.encode("utf-8"), _DUMMY_HASH)


def password_errors(password: str) -> list[str]:
    """Every policy rule the password breaks, in a stable order."""
    errors = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(password) > MAX_LENGTH:
        errors.append(f"Password must be no more than {MAX_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    if not SPECIAL_CHARS_RE.search(password):
        errors.append("Password must contain at least one special character")
    lowered = password.lower()
    for pattern in FORBIDDEN_PATTERNS:
        if pattern in lowered:
            errors.append(f'Password cannot contain common patterns like "{pattern}"')
            break
    return errors


def validate_password_strength(password: str) -> None:
    errors = password_errors(password)
    if errors:
        raise ValidationError(f"Password requirements not met: {', '.join(errors)}")
