"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of vallalhatatlan.api.deps which
# validates the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from vallalhatatlan.config import SiteConfig  # noqa: E402
from vallalhatatlan.database.models import Base, ReaderUser  # noqa: E402
from vallalhatatlan.database.seed import seed_system_control  # noqa: E402
from vallalhatatlan.services.identity_service import Identity  # noqa: E402

ADMIN_EMAIL = "editor@example.com"
READER_EMAIL = "reader@example.com"


class FakeIdentityProvider:
    """Maps bearer tokens to identities; unknown tokens resolve to None."""

    def __init__(self, users: dict[str, Identity] | None = None) -> None:
        self.users = dict(users or {})
        self.calls: list[str] = []

    def get_user(self, token: str) -> Identity | None:
        self.calls.append(token)
        return self.users.get(token)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every table and the SAFE control row.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the rate limiter).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_system_control(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def content_dirs(tmp_path):
    stories = tmp_path / "stories"
    playlists = tmp_path / "playlists"
    stories.mkdir()
    playlists.mkdir()
    return stories, playlists


@pytest.fixture
def site_config(content_dirs) -> SiteConfig:
    stories, playlists = content_dirs
    return SiteConfig(
        site_name="Vállalhatatlan",
        site_url="https://vallalhatatlan.test",
        api_port=8000,
        admin_emails=(ADMIN_EMAIL,),
        content_dir=str(stories),
        playlists_dir=str(playlists),
        cookie_secure=False,
    )


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider({
        "reader-token": Identity(id="reader-1", email=READER_EMAIL),
        "other-token": Identity(id="reader-2", email="other@example.com"),
        "admin-token": Identity(id="admin-1", email=ADMIN_EMAIL),
        "noemail-token": Identity(id="reader-3", email=None),
    })


def add_reader(engine: Engine, email: str = READER_EMAIL, user_id: str | None = None) -> str:
    """Put *email* on the allow-list and return the row id."""
    with Session(engine) as session:
        user = ReaderUser(email=email) if user_id is None else ReaderUser(id=user_id, email=email)
        session.add(user)
        session.commit()
        return user.id


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(db_engine, site_config, identity_provider):
    """The FastAPI app with engine, config and identity provider overridden."""
    from vallalhatatlan.api import deps
    from vallalhatatlan.api.main import app as fastapi_app
    from vallalhatatlan.api.rate_limit import configure_rate_limiter

    fastapi_app.dependency_overrides[deps.get_engine] = lambda: db_engine
    fastapi_app.dependency_overrides[deps.get_config] = lambda: site_config
    fastapi_app.dependency_overrides[deps.get_identity_provider] = lambda: identity_provider
    configure_rate_limiter(engine=db_engine)
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """TestClient without lifespan (no real DATABASE_URL needed)."""
    from fastapi.testclient import TestClient

    return TestClient(app, raise_server_exceptions=False)
