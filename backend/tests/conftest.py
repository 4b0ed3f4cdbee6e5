"""Shared fixtures: a throwaway SQLite database per test and an API client bound to it."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ncs_research import models  # noqa: F401  registers tables on Base
from ncs_research.db import Base, get_db
from ncs_research.models import Task
from ncs_research.tasks import seed_tasks


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate connections (threads) share one database."""
    eng = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session with the task catalog loaded."""
    session = session_factory()
    seed_tasks(session)
    yield session
    session.close()


@pytest.fixture
def add_task(db_session):
    """Insert an extra catalog task."""
    def _add(task_id, reward, title="Extra task"):
        db_session.add(Task(id=task_id, title=title, description="", task_type="test", token_reward=reward))
        db_session.commit()
        return task_id
    return _add


@pytest.fixture
def client(session_factory, db_session):
    from ncs_research.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def register_and_login(client, username="alice", password="s3cret-pass"):
    resp = client.post(
        "/auth/register",
        json={
            "username": username,
            "password": password,
            "confirm_password": password,
            "email": f"{username}@example.org",
            "full_name": username.title(),
            "agree_terms": True,
        },
    )
    assert resp.status_code == 201, resp.text
    resp = client.post("/auth/token", data={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)


@pytest.fixture
def login(client):
    """Register and log in another user, returning auth headers."""
    def _login(username):
        return register_and_login(client, username)
    return _login
