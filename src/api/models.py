"""Pydantic models for API request/response.

Wire names are camelCase (``emailId``, ``firstName``); Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from domain.model.user import User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── requests ─────────────────────────────────────────────


class SignupRequest(CamelModel):
    """Request model for local account registration."""
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: EmailStr = Field(..., alias='emailId')
    password: str = Field(..., max_length=1024)
    confirm_password: str = Field(..., max_length=1024)


class LoginRequest(CamelModel):
    """Request model for credential login."""
    email: EmailStr = Field(..., alias='emailId')
    password: str = Field(..., min_length=1, max_length=1024)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr = Field(..., alias='emailId')


class ResetPasswordRequest(CamelModel):
    password: str = Field(..., max_length=1024)
    confirm_password: str = Field(..., max_length=1024)


# ── responses ────────────────────────────────────────────


class UserResponse(CamelModel):
    """Public profile. Never carries hashes or tokens."""
    id: str
    first_name: str
    last_name: str
    email: str = Field(..., alias='emailId')
    provider: str
    is_email_verified: bool
    oauth_accounts_linked: list[str]
    last_login: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, user: User) -> 'UserResponse':
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            provider=user.provider,
            is_email_verified=user.is_email_verified,
            oauth_accounts_linked=user.linked_providers,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class UserData(CamelModel):
    user: UserResponse


class ProviderLinkStatus(CamelModel):
    linked: bool
    username: Optional[str] = None
    profile_url: Optional[str] = None
    linked_at: Optional[datetime] = None


class OAuthStatusData(CamelModel):
    google: ProviderLinkStatus
    github: ProviderLinkStatus
    has_password: bool
    provider: str
    last_oauth_provider: Optional[str] = None
    linked_accounts: list[str]

    @classmethod
    def from_domain(cls, user: User) -> 'OAuthStatusData':
        def status(name: str) -> ProviderLinkStatus:
            link = user.oauth.get(name)
            if not link or not link.external_id:
                return ProviderLinkStatus(linked=False)
            return ProviderLinkStatus(
                linked=True,
                username=link.username,
                profile_url=link.profile_url,
                linked_at=link.linked_at,
            )

        return cls(
            google=status('google'),
            github=status('github'),
            has_password=user.has_password,
            provider=user.provider,
            last_oauth_provider=user.last_oauth_provider,
            linked_accounts=user.linked_providers,
        )


class ResetTokenData(CamelModel):
    expires_at: datetime


class ApiResponse(CamelModel):
    """Success envelope shared by every JSON endpoint."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    code: str
