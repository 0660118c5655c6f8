"""
auth/tokens.py -- Session token issue and verification.

Security design decisions:
  JWT: python-jose with HS256 and a single symmetric key from AuthConfig.
       Tokens carry sub (account id), email, iat and exp as integer epoch
       seconds. Nothing is stored server-side and there is no revocation --
       a token is valid until exp.

  verify() never raises. It returns Claims, or InvalidToken with one of:
       MALFORMED         -- not three segments, undecodable header/payload,
                            payload not a JSON object, or required claims
                            missing or wrongly typed. Decided before any
                            signature work.
       INVALID_SIGNATURE -- signature does not match, or the header names an
                            algorithm other than the configured one ("none"
                            included).
       EXPIRED           -- signature valid, now > exp.
       The signature is checked first, so a tampered token whose exp is in
       the past reports INVALID_SIGNATURE, not EXPIRED.

  Every segment must be canonical base64url. The decoder ignores the unused
  low bits of a segment's last character, so without this check several
  spellings of one signature would all verify. A non-canonical signature is
  INVALID_SIGNATURE; a non-canonical header or payload is MALFORMED.

  Expiry is checked here against the issuer's own clock rather than by jose
  (verify_exp disabled) so issue() and verify() agree on "now".

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Callable

from jose import jwt
from jose.exceptions import JOSEError

from auth.models import Claims, InvalidToken, TokenFailure
from core.config import AuthConfig

_REQUIRED_CLAIMS: dict[str, type] = {"sub": str, "email": str, "iat": int, "exp": int}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Issues and verifies signed session tokens.

    Stateless: the only state is the read-only AuthConfig, so one instance
    is shared by every request thread.
    """

    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = _utcnow) -> None:
        self._key = config.signing_key
        self._algorithm = config.algorithm
        self._ttl = timedelta(seconds=config.token_ttl_seconds)
        self._clock = clock

    def issue(self, subject: str, email: str) -> str:
        """Encode a signed token for the given account id and email."""
        issued_at = self._clock()
        expires_at = issued_at + self._ttl
        payload = {
            "sub": subject,
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._key, algorithm=self._algorithm)

    def verify(self, token: str) -> Claims | InvalidToken:
        """Check structure, then signature, then expiry."""
        try:
            jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JOSEError:
            return InvalidToken(TokenFailure.MALFORMED)
        if not _has_required_claims(unverified):
            return InvalidToken(TokenFailure.MALFORMED)

        segments = token.split(".")
        if len(segments) != 3:
            return InvalidToken(TokenFailure.MALFORMED)
        header_segment, payload_segment, signature_segment = segments
        if not (_is_canonical(header_segment) and _is_canonical(payload_segment)):
            return InvalidToken(TokenFailure.MALFORMED)
        if not _is_canonical(signature_segment):
            return InvalidToken(TokenFailure.INVALID_SIGNATURE)

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JOSEError:
            return InvalidToken(TokenFailure.INVALID_SIGNATURE)

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # Signed by us but with timestamps no datetime can hold.
            return InvalidToken(TokenFailure.MALFORMED)
        if self._clock() > expires_at:
            return InvalidToken(TokenFailure.EXPIRED)

        return Claims(
            subject=payload["sub"],
            email=payload["email"],
            issued_at=issued_at,
            expires_at=expires_at,
        )


def _has_required_claims(payload: dict) -> bool:
    for name, kind in _REQUIRED_CLAIMS.items():
        value = payload.get(name)
        # bool is an int subclass; a boolean exp is not a timestamp.
        if not isinstance(value, kind) or isinstance(value, bool):
            return False
    return True


def _is_canonical(segment: str) -> bool:
    """True if segment is exactly what base64url-encoding its bytes produces."""
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") == segment
