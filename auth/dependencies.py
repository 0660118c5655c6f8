"""
auth/dependencies.py -- FastAPI Depends() helper for the access guard.

get_current_account() adapts an inbound request to the guard: it hands the
request headers to the AccessGuard stored on app.state, records the allowed
account on request.state.account, and turns Denied into HTTP 401.

The 401 body is identical for every denial (missing, malformed, tampered or
expired token, unknown subject) -- the guard does not tell the transport why.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.guard import AccessGuard
from auth.models import Allowed, PublicAccount, RequestContext


def get_current_account(request: Request) -> PublicAccount:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: PublicAccount = Depends(get_current_account)): ...
    """
    guard: AccessGuard = request.app.state.guard
    decision = guard(RequestContext(headers=request.headers))
    if not isinstance(decision, Allowed):
        raise HTTPException(
            status_code=401,
            detail={"code": decision.reason.value, "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.account = decision.account
    return decision.account
