"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for IdGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Two layers:
  Settings (BaseSettings): everything the process reads from the environment
      and an optional .env file. Cached by get_settings() (lru_cache), the
      FastAPI dependency pattern for config.

  AuthConfig (frozen dataclass): the three values the auth components need
      (signing key, token ttl, bcrypt work factor). Built once at startup with
      AuthConfig.from_settings() and passed explicitly to PasswordHasher and
      TokenIssuer. Nothing in auth/ reads Settings on its own.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. HS256 signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. A random key in production would invalidate every
       session on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("idgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'idgate_accounts.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = Field(default=3600, gt=0)
    # bcrypt cost factor. Minimum 4 (bcrypt limit), used in tests.
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # External identity provider (empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # The provider callback redirects the browser here with ?token=... on
    # success, or to {frontend_url}/auth/error on failure.
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000"]
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


@dataclass(frozen=True)
class AuthConfig:
    """Immutable auth configuration shared by PasswordHasher and TokenIssuer.

    Read-only after startup; safe to share across worker threads.
    """

    signing_key: str
    token_ttl_seconds: int = 3600
    bcrypt_rounds: int = 10
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            signing_key=settings.secret_key,
            token_ttl_seconds=settings.token_expire_seconds,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
