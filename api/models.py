"""
API request and response models for the IdGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Emails are validated as addresses but passed through exactly as submitted:
accounts are keyed by the case-sensitive email, so EmailStr's normalization
(lower-cased domain) would silently change which account a request targets.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email

from auth.models import PublicAccount

_NON_WORD = re.compile(r"\W")


def _check_email(value: str) -> str:
    # validate_email raises PydanticCustomError, which pydantic reports as a 422.
    validate_email(value)
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=3, max_length=255)
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    # bcrypt reads at most 72 bytes; longer passwords are refused, not truncated.
    password: str = Field(min_length=8, max_length=72)

    @field_validator("email")
    @classmethod
    def email_is_address(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        """Uppercase, lowercase, and at least one digit or special character."""
        if not any(c.isupper() for c in v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not any(c.islower() for c in v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not any(c.isdigit() for c in v) and not _NON_WORD.search(v):
            raise ValueError("Password must contain a number or special character")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Only presence is checked for the password -- the strength policy applies at
    registration, and a login must fail the same way whatever was typed.
    """

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def email_is_address(cls, v: str) -> str:
        return _check_email(v)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public account fields. There is no password_hash field to fill."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    is_email_verified: bool
    external_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: PublicAccount) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            is_email_verified=account.is_email_verified,
            external_id=account.external_id,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class AuthResponse(BaseModel):
    """Response for a successful register or login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountResponse


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx JSON response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
