"""Pytest configuration and fixtures for TeamChat tests."""

import os

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-key-for-unit-tests-only"
os.environ["ADMIN_KEY"] = "test_admin_key"
os.environ["DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import teamchat.models  # noqa: F401
from teamchat.core.rate_limiter import (
    admin_key_limiter, api_limiter, login_limiter, refresh_limiter, register_limiter,
)
from teamchat.core.security import create_access_token, hash_password
from teamchat.db.base import Base
from teamchat.db.seeds.seed_roles import seed_roles
from teamchat.models.channel import Channel, ChannelVisibility
from teamchat.models.user import User
from teamchat.services import realtime

TEST_PASSWORD = "Passw0rd123"


class FakeBroadcaster:
    """Records realtime events instead of publishing them."""

    def __init__(self):
        self.events = []

    def broadcast(self, channel_id, event, payload):
        self.events.append((channel_id, event, payload))

    def names(self):
        return [event for _, event, _ in self.events]


@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_roles(session)
    yield session
    session.close()


@pytest.fixture(autouse=True)
def broadcaster(monkeypatch) -> FakeBroadcaster:
    fake = FakeBroadcaster()
    monkeypatch.setattr(realtime, "broadcaster", fake)
    return fake


@pytest.fixture(autouse=True)
def reset_rate_limits():
    for limiter in (login_limiter, register_limiter, refresh_limiter, admin_key_limiter, api_limiter):
        limiter.reset()
    yield


@pytest.fixture
def make_user(db, password_hash):
    counter = {"n": 0}

    def _make(username=None, roles=("member",), is_active=True) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"user{counter['n']}",
            hashed_password=password_hash,
            display_name=(username or f"User {counter['n']}").title(),
            is_active=is_active,
        )
        user.roles = list(roles)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_channel(db):
    def _make(name="general", visibility=ChannelVisibility.public, allowed_roles=("member",)) -> Channel:
        channel = Channel(name=name, description="", visibility=visibility)
        channel.allowed_roles = list(allowed_roles)
        db.add(channel)
        db.commit()
        db.refresh(channel)
        return channel

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin", roles=("admin",))


@pytest.fixture
def member(make_user) -> User:
    return make_user("alice", roles=("member",))


@pytest.fixture
def moderator(make_user) -> User:
    return make_user("mod", roles=("moderator",))


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.id, "username": user.username, "roles": user.roles})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db, session_factory):
    from teamchat.db.session import get_db
    from teamchat.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
