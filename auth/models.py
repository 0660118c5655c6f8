"""
auth/models.py -- Domain dataclasses and outcome values for authentication.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these types only describe shape.

Outcome values instead of exceptions:
  IdentityService returns Authenticated | Rejected.
  TokenIssuer.verify returns Claims | InvalidToken.
  AccessGuard returns Allowed | Denied.
Callers branch on the value (isinstance), never on a caught exception type.

Layer rule: stdlib only. No imports from api/, core/, or other auth/ modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Union

# ---------------------------------------------------------------------------
# Failure kinds
# ---------------------------------------------------------------------------


class AuthFailure(str, Enum):
    """Reasons an authentication attempt or guarded request is rejected.

    INVALID_CREDENTIALS and UNAUTHENTICATED are deliberately coarse: they
    never say which check failed (unknown email vs wrong password, expired vs
    tampered token).
    """

    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHENTICATED = "unauthenticated"
    EXTERNAL_PROFILE_INCOMPLETE = "external_profile_incomplete"
    INTERNAL = "internal_error"


class TokenFailure(str, Enum):
    """Why TokenIssuer.verify rejected a token. Internal detail only."""

    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass
class AccountDraft:
    """An account that has not been persisted yet (no id, no timestamps)."""

    email: str
    first_name: str
    last_name: str
    password_hash: str | None = None
    is_email_verified: bool = False
    external_id: str | None = None


@dataclass
class Account:
    """A persisted user record.

    email is unique and compared case-sensitively -- it is stored exactly as
    submitted. password_hash is None for accounts created through the
    external provider. external_id is written at most once; the store keeps
    the first value (see AccountStore.save).
    """

    id: str
    email: str
    first_name: str
    last_name: str
    password_hash: str | None = None  # None = provider-only account
    is_email_verified: bool = False
    external_id: str | None = None  # provider's stable user ID
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicAccount:
    """Caller-facing view of an Account. Has no password_hash field."""

    id: str
    email: str
    first_name: str
    last_name: str
    is_email_verified: bool
    external_id: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_account(cls, account: Account) -> "PublicAccount":
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


# ---------------------------------------------------------------------------
# Credentials -- the two ways to authenticate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocalCredentials:
    email: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ExternalAssertion:
    """Identity asserted by the external provider after its own login flow.

    email may be None when the provider profile carries no usable address;
    IdentityService rejects such assertions before touching the store.
    """

    external_id: str | None
    email: str | None
    first_name: str = ""
    last_name: str = ""


Credentials = Union[LocalCredentials, ExternalAssertion]

# ---------------------------------------------------------------------------
# Session token claims
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Claims:
    subject: str
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class InvalidToken:
    reason: TokenFailure


# ---------------------------------------------------------------------------
# Identity service outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Authenticated:
    token: str = field(repr=False)
    account: PublicAccount


@dataclass(frozen=True)
class Rejected:
    reason: AuthFailure


AuthOutcome = Union[Authenticated, Rejected]

# ---------------------------------------------------------------------------
# Access guard
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestContext:
    """The slice of an inbound request the access guard looks at.

    headers keys are expected lower-case (Starlette's Headers already are).
    account is filled in by the guard once the request is authenticated.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    account: PublicAccount | None = None


@dataclass(frozen=True)
class Allowed:
    account: PublicAccount
    context: RequestContext | None = None


@dataclass(frozen=True)
class Denied:
    reason: AuthFailure = AuthFailure.UNAUTHENTICATED


GuardDecision = Union[Allowed, Denied]
