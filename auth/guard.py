"""
auth/guard.py -- Per-request access gate.

The guard is a plain callable: RequestContext in, Allowed | Denied out. It is
composed at the request-handling boundary (auth/dependencies.py wires it into
FastAPI) rather than woven in by the framework.

Decision order:
  1. No bearer token in the authorization header -> Denied. The store is
     not touched.
  2. TokenIssuer.verify() fails (malformed, bad signature, expired) -> Denied.
  3. The token's subject has no account -> Denied.
  4. Otherwise Allowed, carrying the context with the PublicAccount attached.

Every denial carries the same UNAUTHENTICATED reason; the specific cause is
only logged at debug level so callers cannot learn why a token was refused.
Any exception raised along the way (store down, unexpected fault) is logged as
a warning and turned into Denied -- a fault never lets a request through and
never crashes the request path.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import dataclasses
import logging

from auth.models import Allowed, Denied, GuardDecision, InvalidToken, PublicAccount, RequestContext
from auth.store import AccountStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("idgate.auth.guard")


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" value, else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class AccessGuard:
    def __init__(self, issuer: TokenIssuer, store: AccountStore) -> None:
        self._issuer = issuer
        self._store = store

    def __call__(self, context: RequestContext) -> GuardDecision:
        token = extract_bearer_token(context.headers.get("authorization"))
        decision = self.get_current_account(token)
        if isinstance(decision, Allowed):
            return Allowed(
                account=decision.account,
                context=dataclasses.replace(context, account=decision.account),
            )
        return decision

    def get_current_account(self, token: str | None) -> GuardDecision:
        """Resolve a raw token to the account it was issued for."""
        if not token:
            logger.debug("Denied: no bearer token")
            return Denied()
        try:
            claims = self._issuer.verify(token)
            if isinstance(claims, InvalidToken):
                logger.debug("Denied: token rejected (%s)", claims.reason.value)
                return Denied()
            account = self._store.find_by_id(claims.subject)
        except Exception as exc:
            logger.warning("Denied: access check failed with %s", type(exc).__name__, exc_info=True)
            return Denied()
        if account is None:
            logger.debug("Denied: token subject has no account")
            return Denied()
        return Allowed(account=PublicAccount.from_account(account))
