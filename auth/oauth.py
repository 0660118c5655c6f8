"""
auth/oauth.py -- Authlib registry for the Google identity provider.

The redirect to Google and the code exchange are Authlib's job; this module
only decides whether the provider is registered and normalizes what Google
returns into an ExternalAssertion for IdentityService.

Security notes:
  [H1] An email is only usable when the provider marks it verified. An
       unverified address could belong to someone else, and linking it would
       hand that person's account to the caller. extract_assertion() drops
       such an email, so the service rejects the login as
       EXTERNAL_PROFILE_INCOMPLETE.

  OAuth state parameter (CSRF protection) is handled by Authlib via
  Starlette SessionMiddleware -- the state is stored in the session between
  the authorization redirect and the callback.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import ExternalAssertion
from core.config import Settings

logger = logging.getLogger("idgate.auth.oauth")

GOOGLE = "google"


def build_oauth(settings: Settings) -> OAuth:
    """Return an Authlib registry with Google registered when configured.

    Google is registered only when both client id and secret are set; the
    redirect route answers 404 otherwise.
    """
    oauth = OAuth()
    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name=GOOGLE,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google identity provider registered")
    else:
        logger.info("Google identity provider not configured")
    return oauth


def extract_assertion(token: dict) -> ExternalAssertion:
    """Build an ExternalAssertion from the token Authlib returns for Google.

    Google's id_token claims arrive parsed under token["userinfo"]: sub is
    the stable account id, given_name/family_name are optional. A missing
    or unverified email yields email=None [H1]; a missing sub yields
    external_id=None. Either makes the assertion incomplete.
    """
    userinfo = token.get("userinfo") or {}

    email = userinfo.get("email")
    if email and not userinfo.get("email_verified", False):
        logger.warning("Google profile email is not verified; ignoring it")
        email = None

    subject = userinfo.get("sub")
    return ExternalAssertion(
        external_id=str(subject) if subject else None,
        email=email or None,
        first_name=userinfo.get("given_name") or "",
        last_name=userinfo.get("family_name") or "",
    )
