"""Unit tests for auth/guard.py -- AccessGuard and bearer extraction.

Covers:
- no token / malformed / foreign-key / expired / unknown subject -> Denied,
  always with the same UNAUTHENTICATED reason
- a missing token never touches the store
- store faults become Denied plus a warning, never an exception
- a valid token -> Allowed with the public account attached to the context
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from auth.guard import AccessGuard, extract_bearer_token
from auth.models import Allowed, AuthFailure, Denied, PublicAccount, RequestContext
from auth.service import IdentityService
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import AuthConfig


def _bearer(token: str) -> RequestContext:
    return RequestContext(headers={"authorization": f"Bearer {token}"})


class TestExtractBearerToken:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc.def.ghi", "abc.def.ghi"),
            ("  Bearer   abc.def.ghi  ", "abc.def.ghi"),
            (None, None),
            ("", None),
            ("Bearer", None),
            ("Bearer ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("abc.def.ghi", None),
        ],
    )
    def test_extraction(self, header, expected) -> None:
        assert extract_bearer_token(header) == expected


class TestDenied:
    def test_no_token_skips_store(self, issuer: TokenIssuer) -> None:
        store = MagicMock(spec=AccountStore)
        guard = AccessGuard(issuer, store)
        assert guard(RequestContext()) == Denied()
        assert store.method_calls == []

    def test_malformed_token(self, guard: AccessGuard) -> None:
        assert guard(_bearer("not-a-token")) == Denied()

    def test_token_signed_with_other_key(self, guard: AccessGuard, service: IdentityService) -> None:
        account = service.register("a@x.com", "A", "B", "Secret123").account
        foreign = TokenIssuer(AuthConfig(signing_key=secrets.token_hex(32))).issue(account.id, account.email)
        assert guard(_bearer(foreign)) == Denied()

    def test_expired_token(
        self, guard: AccessGuard, service: IdentityService, auth_config: AuthConfig
    ) -> None:
        account = service.register("a@x.com", "A", "B", "Secret123").account
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        stale = TokenIssuer(auth_config, clock=lambda: past).issue(account.id, account.email)
        assert guard(_bearer(stale)) == Denied()

    def test_unknown_subject(self, guard: AccessGuard, issuer: TokenIssuer) -> None:
        token = issuer.issue("00000000-0000-0000-0000-000000000000", "ghost@x.com")
        assert guard(_bearer(token)) == Denied()

    def test_every_denial_has_same_reason(
        self, guard: AccessGuard, issuer: TokenIssuer, auth_config: AuthConfig
    ) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        contexts = [
            RequestContext(),
            _bearer("garbage"),
            _bearer(TokenIssuer(AuthConfig(signing_key=secrets.token_hex(32))).issue("x", "x@x.com")),
            _bearer(TokenIssuer(auth_config, clock=lambda: past).issue("x", "x@x.com")),
            _bearer(issuer.issue("missing", "x@x.com")),
        ]
        reasons = {guard(ctx).reason for ctx in contexts}
        assert reasons == {AuthFailure.UNAUTHENTICATED}

    def test_store_failure_is_denied_and_logged(self, issuer: TokenIssuer, caplog) -> None:
        store = MagicMock(spec=AccountStore)
        store.find_by_id.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
        guard = AccessGuard(issuer, store)
        with caplog.at_level(logging.WARNING, logger="idgate.auth.guard"):
            decision = guard(_bearer(issuer.issue("some-id", "a@x.com")))
        assert decision == Denied()
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_unexpected_fault_is_denied(self, store: AccountStore) -> None:
        issuer = MagicMock(spec=TokenIssuer)
        issuer.verify.side_effect = RuntimeError("boom")
        guard = AccessGuard(issuer, store)
        assert guard(_bearer("a.b.c")) == Denied()


class TestAllowed:
    def test_valid_token_attaches_account(self, guard: AccessGuard, service: IdentityService) -> None:
        outcome = service.register("a@x.com", "A", "B", "Secret123")
        context = _bearer(outcome.token)

        decision = guard(context)

        assert isinstance(decision, Allowed)
        assert decision.account.id == outcome.account.id
        assert isinstance(decision.account, PublicAccount)
        assert decision.context.account == decision.account
        assert decision.context.headers == context.headers
        assert context.account is None

    def test_get_current_account(self, guard: AccessGuard, service: IdentityService) -> None:
        outcome = service.login_with_external_identity("g1", "ext@x.com", "E", "X")
        decision = guard.get_current_account(outcome.token)
        assert isinstance(decision, Allowed)
        assert decision.account.external_id == "g1"

    def test_get_current_account_without_token(self, guard: AccessGuard) -> None:
        assert guard.get_current_account(None) == Denied()
        assert guard.get_current_account("") == Denied()
