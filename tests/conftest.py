from typing import Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient

from bookmarket.config import Settings
from bookmarket.main import create_app


@pytest.fixture()
def settings() -> Settings:
    """Settings for an isolated in-memory database and cheap bcrypt."""
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret-key",
        password_hash_rounds=4,
        db_timeout_seconds=5,
    )


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    """Test client that also triggers startup/shutdown hooks."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db_session(app, client):
    db = app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def user_factory(client) -> Callable[..., dict]:
    """Sign a user up through the API and return the response body."""

    def _signup(email: str = "a@x.com", password: str = "secret1") -> dict:
        response = client.post(
            "/api/auth/signup", json={"email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _signup


@pytest.fixture()
def auth_headers(client, user_factory) -> Callable[..., Dict[str, str]]:
    """Sign up and log in, returning a ready Authorization header."""

    def _headers(email: str = "a@x.com", password: str = "secret1") -> Dict[str, str]:
        user_factory(email, password)
        response = client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _headers
