"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register         -- local registration; returns a token
  POST /api/v1/auth/login            -- email/password login; returns a token
  GET  /api/v1/auth/google           -- redirect to Google's consent page
  GET  /api/v1/auth/google/callback  -- provider callback; redirects to the frontend
  GET  /api/v1/auth/profile          -- current account (requires auth)

Security:
  [H2] register and login are rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] IdentityService.login() equalizes timing -- never inline the store
       lookup and password check here.
  [M5] Cache-Control: no-store on every response that carries a token.

The handlers only translate: request model -> IdentityService call -> outcome
-> response or HTTPException. Every AuthFailure maps to one fixed status and
message in _FAILURES, so no handler can leak more detail than the reason.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import AccountResponse, AuthResponse, LoginRequest, RegisterRequest
from auth.dependencies import get_current_account
from auth.models import Authenticated, AuthFailure, AuthOutcome, PublicAccount
from auth.oauth import GOOGLE, extract_assertion
from auth.service import IdentityService
from core.config import get_settings

logger = logging.getLogger("idgate.api.auth")


def _login_rate_limit() -> str:
    # Read per request; slowapi accepts a callable limit.
    return get_settings().login_rate_limit


# Auth policy:
# - POST /auth/register:         public, rate-limited
# - POST /auth/login:            public, rate-limited
# - GET  /auth/google:           public -- starts the provider flow
# - GET  /auth/google/callback:  public -- provider returns here
# - GET  /auth/profile:          requires auth (get_current_account)
router = APIRouter()

_FAILURES: dict[AuthFailure, tuple[int, str]] = {
    AuthFailure.VALIDATION_ERROR: (422, "Request validation failed."),
    AuthFailure.CONFLICT: (409, "Email already in use."),
    AuthFailure.INVALID_CREDENTIALS: (401, "Invalid email or password."),
    AuthFailure.UNAUTHENTICATED: (401, "Authentication required."),
    AuthFailure.EXTERNAL_PROFILE_INCOMPLETE: (400, "The identity provider did not supply a verified email."),
    AuthFailure.INTERNAL: (500, "An unexpected error occurred."),
}


# ---------------------------------------------------------------------------
# Local flow
# ---------------------------------------------------------------------------


@limiter.limit(_login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account and log it in.

    409 if the email is already registered -- including when a concurrent
    request registered it first.
    """
    service: IdentityService = request.app.state.identity_service
    outcome = service.register(body.email, body.first_name, body.last_name, body.password)
    return _token_response(request, outcome, status_code=201)


@limiter.limit(_login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email, provider-only account, and wrong password all return the
    same 401 "invalid_credentials".
    """
    service: IdentityService = request.app.state.identity_service
    outcome = service.login(body.email, body.password)
    return _token_response(request, outcome, status_code=200)


# ---------------------------------------------------------------------------
# External identity flow
# ---------------------------------------------------------------------------


@router.get("/auth/google")
async def google_login(request: Request):
    """Redirect the browser to Google. 404 when the provider is not configured."""
    client = request.app.state.oauth.create_client(GOOGLE)
    if client is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "provider_unavailable", "message": "Google login is not configured."},
        )
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Finish the provider flow and hand the token to the frontend.

    Success: 302 to {FRONTEND_URL}/auth/callback?token=...
    Any failure (state mismatch, code exchange error, incomplete profile,
    internal error): 302 to {FRONTEND_URL}/auth/error.
    """
    frontend_url = request.app.state.settings.frontend_url.rstrip("/")
    error_redirect = RedirectResponse(f"{frontend_url}/auth/error", status_code=302)

    client = request.app.state.oauth.create_client(GOOGLE)
    if client is None:
        return error_redirect
    try:
        token = await client.authorize_access_token(request)
        assertion = extract_assertion(token)
    except OAuthError as exc:
        logger.warning("Google callback: token exchange failed (%s)", exc.error)
        return error_redirect
    except Exception:
        logger.exception("Google callback: token exchange failed")
        return error_redirect

    service: IdentityService = request.app.state.identity_service
    outcome = await run_in_threadpool(service.complete_external_login, assertion)
    if not isinstance(outcome, Authenticated):
        logger.warning("Google callback rejected: %s", outcome.reason.value)
        return error_redirect

    resp = RedirectResponse(
        f"{frontend_url}/auth/callback?{urlencode({'token': outcome.token})}",
        status_code=302,
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=AccountResponse)
def profile(account: PublicAccount = Depends(get_current_account)) -> AccountResponse:
    """Return the account the bearer token was issued for."""
    return AccountResponse.from_account(account)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(request: Request, outcome: AuthOutcome, status_code: int) -> JSONResponse:
    if not isinstance(outcome, Authenticated):
        status, message = _FAILURES[outcome.reason]
        raise HTTPException(
            status_code=status,
            detail={"code": outcome.reason.value, "message": message},
            headers={"Cache-Control": "no-store"},
        )
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            access_token=outcome.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=request.app.state.auth_config.token_ttl_seconds,
            account=AccountResponse.from_account(outcome.account),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
