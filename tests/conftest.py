from typing import Generator

import pytest
from fastapi.testclient import TestClient

from todo_app.config import Settings
from todo_app.main import create_app

TEST_SECRET = "test-secret-key-for-jwt-signing"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file, with cheap Argon2 costs."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'todos.db'}",
        jwt_secret=TEST_SECRET,
        jwt_ttl_minutes=60,
        password_time_cost=1,
        password_memory_cost=1024,
        password_parallelism=1,
    )


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    """FastAPI test client that also triggers startup/shutdown hooks."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db_session(client, app):
    db = app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def register_user(client):
    def _register(
        username: str = "alice",
        email: str = "alice@example.com",
        password: str = "Secret123!",
        confirm_password: str = None,
    ):
        return client.post(
            "/register",
            data={
                "username": username,
                "email": email,
                "password": password,
                "confirm_password": password if confirm_password is None else confirm_password,
            },
            follow_redirects=False,
        )

    return _register


@pytest.fixture()
def login(client):
    def _login(email: str = "alice@example.com", password: str = "Secret123!"):
        return client.post(
            "/login",
            data={"email": email, "password": password},
            follow_redirects=False,
        )

    return _login


@pytest.fixture()
def logged_in(client, register_user, login):
    """Register and log in the default user; returns the client with its cookie set."""
    assert register_user().status_code == 303
    assert login().status_code == 303
    return client
