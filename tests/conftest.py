"""
tests/conftest.py -- Shared test fixtures for IdGate.

This module provides:
  - auth_config / hasher / issuer: components built from a test AuthConfig
    (bcrypt cost 4, the minimum, so hashing does not dominate test time)
  - store: a fresh in-memory AccountStore per test
  - service / guard: IdentityService and AccessGuard over that store
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-level fixtures stay single-threaded and use :memory:.

DEBUG must be set before any core/api import so get_settings() can
auto-generate SECRET_KEY instead of raising. LOGIN_RATE_LIMIT is raised so
the credential routes are not throttled across a test module.
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any core/api import -- get_settings() is read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.guard import AccessGuard
from auth.passwords import PasswordHasher
from auth.service import IdentityService
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import AuthConfig, get_settings

# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def auth_config() -> AuthConfig:
    return AuthConfig(signing_key=secrets.token_hex(32), token_ttl_seconds=3600, bcrypt_rounds=4)


@pytest.fixture(scope="session")
def hasher(auth_config: AuthConfig) -> PasswordHasher:
    return PasswordHasher(auth_config)


@pytest.fixture(scope="session")
def issuer(auth_config: AuthConfig) -> TokenIssuer:
    return TokenIssuer(auth_config)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: AccountStore, hasher: PasswordHasher, issuer: TokenIssuer) -> IdentityService:
    return IdentityService(store, hasher, issuer)


@pytest.fixture
def guard(store: AccountStore, issuer: TokenIssuer) -> AccessGuard:
    return AccessGuard(issuer, store)


@pytest.fixture
def file_store(tmp_path) -> Generator[AccountStore, None, None]:
    """File-backed store for tests that hit it from several threads at once.

    Shared-cache memory databases fail concurrent writers immediately with
    "database table is locked"; a file database waits on the busy timeout.
    """
    s = AccountStore(f"sqlite:///{tmp_path / 'accounts.db'}")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, auth_config: AuthConfig, oauth: MagicMock):
    """Return a lifespan that wires test components into app.state.

    Mirrors api.main.lifespan but with the test store, a cheap bcrypt cost,
    and a mocked Authlib registry so no provider is contacted.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        issuer = TokenIssuer(auth_config)
        app.state.settings = get_settings()
        app.state.auth_config = auth_config
        app.state.store = store
        app.state.identity_service = IdentityService(store, PasswordHasher(auth_config), issuer)
        app.state.guard = AccessGuard(issuer, store)
        app.state.oauth = oauth
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request, auth_config: AuthConfig) -> Generator[tuple[TestClient, MagicMock], None, None]:
    """Yield (client, oauth_mock) over the real app with an isolated store.

    One client per test module; tests must use distinct emails.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    oauth = MagicMock()

    app.router.lifespan_context = _patch_lifespan(store, auth_config, oauth)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, oauth

    store.close()
