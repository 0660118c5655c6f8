"""
auth/service.py -- Registration, local login, and external-identity login.

Every public method returns an outcome value: Authenticated(token, account)
or Rejected(reason). Nothing raises across this boundary -- store errors and
unexpected faults are logged with a traceback here and surface to the caller
only as Rejected(AuthFailure.INTERNAL).

Security:
  [C1] login() always runs one bcrypt check, whether the email is unknown,
       belongs to a provider-only account, or has a real hash. The three
       failures return the same INVALID_CREDENTIALS reason and cost the same
       time, so neither the response nor its latency reveals which accounts
       exist.

  The returned account is always a PublicAccount, built explicitly here. It
  has no password_hash field to leak.

Concurrency:
  register() does a find_by_email() first only to fail fast; the UNIQUE
  constraint behind AccountStore.create() is what actually decides a race,
  and a DuplicateEmailError from create() is reported as CONFLICT exactly
  like the sequential case.

  login_with_external_identity() falls back to the link branch when its
  create() loses a race to another first-time login for the same email, and
  linking goes through save(), whose COALESCE never overwrites an
  external_id. Two concurrent first logins therefore end with one account.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.models import (
    Account,
    AccountDraft,
    Authenticated,
    AuthFailure,
    AuthOutcome,
    Credentials,
    ExternalAssertion,
    LocalCredentials,
    PublicAccount,
    Rejected,
)
from auth.passwords import PasswordHasher
from auth.store import AccountStore, DuplicateEmailError
from auth.tokens import TokenIssuer

logger = logging.getLogger("idgate.auth.service")


class IdentityService:
    """Turns credentials into a session token and an account view."""

    def __init__(self, store: AccountStore, hasher: PasswordHasher, issuer: TokenIssuer) -> None:
        self._store = store
        self._hasher = hasher
        self._issuer = issuer

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def authenticate(self, credentials: Credentials) -> AuthOutcome:
        """Log in with either kind of credentials."""
        if isinstance(credentials, LocalCredentials):
            return self.login(credentials.email, credentials.password)
        if isinstance(credentials, ExternalAssertion):
            return self.complete_external_login(credentials)
        raise TypeError(f"Unsupported credentials type: {type(credentials).__name__}")

    # ------------------------------------------------------------------
    # Local flow
    # ------------------------------------------------------------------

    def register(self, email: str, first_name: str, last_name: str, password: str) -> AuthOutcome:
        try:
            return self._register(email, first_name, last_name, password)
        except Exception:
            logger.exception("Registration failed with an internal error")
            return Rejected(AuthFailure.INTERNAL)

    def _register(self, email: str, first_name: str, last_name: str, password: str) -> AuthOutcome:
        if self._store.find_by_email(email) is not None:
            logger.info("Registration refused: email already in use")
            return Rejected(AuthFailure.CONFLICT)

        try:
            password_hash = self._hasher.hash(password)
        except ValueError:
            return Rejected(AuthFailure.VALIDATION_ERROR)

        draft = AccountDraft(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            is_email_verified=False,
        )
        try:
            account = self._store.create(draft)
        except DuplicateEmailError:
            logger.info("Registration refused: email claimed by a concurrent request")
            return Rejected(AuthFailure.CONFLICT)

        logger.info("Account registered: %s", account.id)
        return self._authenticated(account)

    def login(self, email: str, password: str) -> AuthOutcome:
        try:
            return self._login(email, password)
        except Exception:
            logger.exception("Login failed with an internal error")
            return Rejected(AuthFailure.INTERNAL)

    def _login(self, email: str, password: str) -> AuthOutcome:
        account = self._store.find_by_email(email)
        if account is None or account.password_hash is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self._hasher.verify_dummy(password)
            logger.warning("Failed login attempt")
            return Rejected(AuthFailure.INVALID_CREDENTIALS)
        if not self._hasher.verify(password, account.password_hash):
            logger.warning("Failed login attempt")
            return Rejected(AuthFailure.INVALID_CREDENTIALS)

        logger.info("Account logged in: %s", account.id)
        return self._authenticated(account)

    # ------------------------------------------------------------------
    # External identity flow
    # ------------------------------------------------------------------

    def complete_external_login(self, assertion: ExternalAssertion) -> AuthOutcome:
        return self.login_with_external_identity(
            assertion.external_id,
            assertion.email,
            assertion.first_name,
            assertion.last_name,
        )

    def login_with_external_identity(
        self,
        external_id: str | None,
        email: str | None,
        first_name: str = "",
        last_name: str = "",
    ) -> AuthOutcome:
        """Find, link, or create the account for a provider-verified identity.

        - email known, no external_id yet: link it and mark the email verified.
        - email known, already linked: nothing is written.
        - email unknown: create a provider-only account (no password hash).
        """
        if not _usable_email(email) or not external_id:
            logger.warning("External login refused: provider profile has no usable email or id")
            return Rejected(AuthFailure.EXTERNAL_PROFILE_INCOMPLETE)
        try:
            return self._login_with_external_identity(external_id, email, first_name or "", last_name or "")
        except Exception:
            logger.exception("External login failed with an internal error")
            return Rejected(AuthFailure.INTERNAL)

    def _login_with_external_identity(
        self, external_id: str, email: str, first_name: str, last_name: str
    ) -> AuthOutcome:
        account = self._store.find_by_email(email)
        if account is None:
            draft = AccountDraft(
                email=email,
                first_name=first_name,
                last_name=last_name,
                password_hash=None,
                is_email_verified=True,
                external_id=external_id,
            )
            try:
                account = self._store.create(draft)
                logger.info("Account created from external identity: %s", account.id)
                return self._authenticated(account)
            except DuplicateEmailError:
                # Lost a race to a concurrent login or registration for this email.
                account = self._store.find_by_email(email)
                if account is None:
                    raise

        if account.external_id is None:
            account.external_id = external_id
            account.is_email_verified = True
            account = self._store.save(account)
            logger.info("External identity linked to account: %s", account.id)
        else:
            logger.info("Account logged in via external identity: %s", account.id)
        return self._authenticated(account)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authenticated(self, account: Account) -> Authenticated:
        token = self._issuer.issue(account.id, account.email)
        return Authenticated(token=token, account=PublicAccount.from_account(account))


def _usable_email(email: str | None) -> bool:
    return isinstance(email, str) and bool(email.strip()) and "@" in email
