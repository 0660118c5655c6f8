"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Service and guard code never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  Email uniqueness is the UNIQUE constraint on accounts.email. create() does
  no prior read -- two concurrent inserts for one email resolve in the
  database and the loser gets DuplicateEmailError.

  save() writes external_id as COALESCE(external_id, :new), so linking is a
  single conditional UPDATE: whichever writer lands first keeps its value and
  no later save can overwrite it.

  external_id itself carries no UNIQUE constraint. Two different emails
  claiming the same provider identity are not rejected here.

There is deliberately no delete and no update-by-query.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, AccountDraft

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DuplicateEmailError(Exception):
    """An account with this email already exists."""

    def __init__(self, email: str) -> None:
        super().__init__("An account with this email already exists.")
        self.email = email


class AccountNotFoundError(LookupError):
    """save() was called for an id that has no row."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("password_hash", Text),  # NULL for provider-only accounts
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("external_id", String(255)),  # provider's stable user ID, write-once
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_duplicate_email(exc: IntegrityError) -> bool:
    """True if exc is the UNIQUE violation on accounts.email, not e.g. NOT NULL."""
    message = str(exc.orig)
    return "UNIQUE" in message and "accounts.email" in message


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore("sqlite:///accounts.db")
        account = store.create(AccountDraft(email="a@x.com", first_name="A", last_name="B"))
        same = store.find_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 30  # seconds a writer waits on a locked database
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def create(self, draft: AccountDraft) -> Account:
        """Insert a new account and return it with its id and timestamps.

        Raises DuplicateEmailError if the email is taken. The UNIQUE
        constraint decides -- callers must not rely on a prior find_by_email().
        """
        now = _now_iso()
        account = Account(
            id=str(uuid.uuid4()),
            email=draft.email,
            first_name=draft.first_name,
            last_name=draft.last_name,
            password_hash=draft.password_hash,
            is_email_verified=draft.is_email_verified,
            external_id=draft.external_id,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account.id,
                        email=account.email,
                        first_name=account.first_name,
                        last_name=account.last_name,
                        password_hash=account.password_hash,
                        is_email_verified=account.is_email_verified,
                        external_id=account.external_id,
                        created_at=account.created_at,
                        updated_at=account.updated_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if not _is_duplicate_email(exc):
                raise
            raise DuplicateEmailError(draft.email) from exc
        return account

    def save(self, account: Account) -> Account:
        """Write back a modified account and return the stored row.

        external_id is written with COALESCE so an already linked identity
        is kept. email and id are never changed here. Raises
        AccountNotFoundError if the id has no row.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account.id)
                .values(
                    first_name=account.first_name,
                    last_name=account.last_name,
                    password_hash=account.password_hash,
                    is_email_verified=account.is_email_verified,
                    external_id=func.coalesce(_accounts.c.external_id, account.external_id),
                    updated_at=_now_iso(),
                )
            )
            if result.rowcount == 0:
                conn.rollback()
                raise AccountNotFoundError(account.id)
            row = conn.execute(_accounts.select().where(_accounts.c.id == account.id)).fetchone()
            conn.commit()
        return _row_to_account(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        password_hash=row.password_hash,
        is_email_verified=bool(row.is_email_verified),
        external_id=row.external_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
