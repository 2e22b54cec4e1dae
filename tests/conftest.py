"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of wordplay.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("SHUFFLE_SECRET", "pytest-shuffle-secret")

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from wordplay.config import ChainConfig, WordplayConfig  # noqa: E402
from wordplay.database.engine import init_db  # noqa: E402
from wordplay.engine.games import UserKey  # noqa: E402
from wordplay.engine.words import WordList  # noqa: E402
from wordplay.exceptions import ExternalServiceError  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

TEST_SHUFFLE_SECRET = "pytest-shuffle-secret"

ANSWERS = [
    "caper", "apple", "crane", "slate", "pious", "gamer", "fjord", "nymph",
    "tiger", "house", "lemon", "robin", "sweet", "candy", "ghost", "plumb",
]
ALLOWED = ["hello", "world", "crate", "trace", "carts", "spare", "pacer", "recap"]


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Wordplay tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so every session shares the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def words() -> WordList:
    """A small, fixed word list so word selection is predictable."""
    return WordList(list(ANSWERS), list(ALLOWED))


@pytest.fixture
def secret() -> str:
    return TEST_SHUFFLE_SECRET


@pytest.fixture
def alice() -> UserKey:
    return UserKey("1001", "fc")


@pytest.fixture
def bob() -> UserKey:
    return UserKey("1002", "fc")


@pytest.fixture
def carol() -> UserKey:
    return UserKey("1003", "fc")


@pytest.fixture
def wordplay_config() -> WordplayConfig:
    return WordplayConfig(
        chain=ChainConfig(
            rpc_url="https://rpc.test",
            contract_address="0x" + "ab" * 20,
        ),
    )


# ---------------------------------------------------------------------------
# External-service fakes
# ---------------------------------------------------------------------------
WALLET = "0x" + "1" * 40


class FakeChain:
    """In-memory stand-in for the freeze contract."""

    def __init__(self, balance: int = 0, burns: dict[str, int] | None = None,
                 purchases: set[str] | None = None, fail: bool = False):
        self.balance = balance
        self.burns = burns or {}
        self.purchases = purchases or set()
        self.fail = fail

    def _check(self):
        if self.fail:
            raise ExternalServiceError("chain down", code="chain_unavailable")

    def get_balance(self, wallet: str) -> int:
        self._check()
        return self.balance

    def burned_amount(self, tx_hash: str, wallet: str) -> int:
        self._check()
        return self.burns.get(tx_hash, 0)

    def verify_burn_tx(self, tx_hash: str, wallet: str) -> bool:
        return self.burned_amount(tx_hash, wallet) > 0

    def verify_purchase_tx(self, tx_hash: str, wallet: str) -> bool:
        self._check()
        return tx_hash in self.purchases


class FakeWallets:
    def __init__(self, addresses: dict[str, list[str]] | None = None, fail: bool = False):
        self.addresses = addresses or {}
        self.fail = fail

    def addresses_for_user(self, user_id: str) -> list[str]:
        if self.fail:
            raise ExternalServiceError("resolver down", code="wallet_resolver_unavailable")
        return list(self.addresses.get(user_id, []))


class RecordingDispatcher:
    def __init__(self):
        self.sent: list[tuple[list[UserKey], str, str]] = []

    def notify(self, recipients, title, body):
        self.sent.append((list(recipients), title, body))


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain(balance=2)


@pytest.fixture
def wallets(alice) -> FakeWallets:
    return FakeWallets({alice.user_id: [WALLET]})


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_user_token(user: UserKey, *, is_admin: bool = False) -> str:
    """Create a player JWT.  Usable as a factory from any test module."""
    import jwt

    from wordplay.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": user.user_id, "idp": user.identity_provider, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def auth(user: UserKey, *, is_admin: bool = False) -> dict:
    return {"Authorization": f"Bearer {make_user_token(user, is_admin=is_admin)}"}


@pytest.fixture
def client(db_engine, words, wordplay_config, chain, wallets, dispatcher):
    """A TestClient whose dependencies point at the in-memory fixtures."""
    from fastapi.testclient import TestClient

    from wordplay.api import deps
    from wordplay.api.main import app

    app.dependency_overrides.update({
        deps.get_engine: lambda: db_engine,
        deps.get_words: lambda: words,
        deps.get_secret: lambda: TEST_SHUFFLE_SECRET,
        deps.get_config: lambda: wordplay_config,
        deps.get_chain: lambda: chain,
        deps.get_wallets: lambda: wallets,
        deps.get_dispatcher: lambda: dispatcher,
    })
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------
def seed_daily(engine: Engine, user: UserKey, *days: str, status: str = "WON",
               guess_count: int = 3) -> None:
    """Insert finished daily games for *user* directly, one per day."""
    from datetime import UTC, datetime

    from wordplay.database.models import Game

    with Session(engine) as session:
        for day in days:
            session.add(Game(
                user_id=user.user_id,
                identity_provider=user.identity_provider,
                game_key=day,
                is_daily=True,
                word="crane",
                guesses=["crane"] * guess_count,
                status=status,
                guess_count=guess_count,
                completed_at=datetime.now(UTC),
            ))
        session.commit()


def jan(*days: int) -> list[str]:
    return [f"2024-01-{d:02d}" for d in days]
