"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of rewardledger.api.deps which
# validates the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, date, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from rewardledger.database.models import Base, StickerCollection, User  # noqa: E402
from rewardledger.database.seed import seed_all  # noqa: E402
from rewardledger.engine.cache import RewardCatalogCache  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy drive BEGIN itself so SAVEPOINT rollbacks behave.

    pysqlite's own transaction handling breaks ``begin_nested()``; this is
    the workaround from the SQLAlchemy SQLite dialect docs.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Monday 2026-03-02, 12:00 in America/Denver (MST, UTC-7)
NOON_DENVER = datetime(2026, 3, 2, 19, 0, tzinfo=UTC)
TODAY = date(2026, 3, 2)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all rewardledger tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` and FastAPI's threadpool).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """Engine with default settings, reward rules and milestones."""
    seed_all(db_engine)
    return db_engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """A seeded, file-backed SQLite engine that real threads can share.

    Each thread gets its own connection.  ``BEGIN IMMEDIATE`` takes the
    write lock up front and the busy timeout makes the other writers wait
    for it, the way row locks queue concurrent writers on Postgres.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    seed_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def cache(seeded_engine: Engine) -> RewardCatalogCache:
    """A warmed catalog cache with a TTL long enough to never expire mid-test."""
    c = RewardCatalogCache(seeded_engine, ttl_seconds=3600)
    c.load_all()
    return c


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def active_collection(seeded_engine: Engine) -> int:
    """An open-ended active sticker collection; returns its id."""
    with Session(seeded_engine) as session:
        coll = StickerCollection(
            name="Spring Friends",
            is_active=True,
            start_date=date(2026, 1, 1),
            end_date=None,
            display_order=0,
        )
        session.add(coll)
        session.commit()
        return coll.id


def add_user(engine: Engine, user_id: str, coins: int = 0) -> None:
    with Session(engine) as session:
        session.add(User(id=user_id, display_name=user_id.title(), coins=coins))
        session.commit()


def make_token(sub: str = "member-1", *, is_admin: bool = False, username: str = "Member") -> str:
    """Create a JWT as the identity provider would."""
    import jwt

    from rewardledger.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    return make_token(sub, is_admin=True, username=username)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()
