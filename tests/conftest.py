# tests/conftest.py
import pytest

from contest_platform import create_app, db
from contest_platform.config import Settings


@pytest.fixture
def settings(tmp_path):
    """Isolated settings: temp SQLite file, cheap argon2, no rate limiting."""
    return Settings(
        jwt_secret_key="test-secret-key-with-enough-length-1234",
        database_url=f"sqlite:///{tmp_path / 'contest.db'}",
        environment="testing",
        ratelimit_enabled=False,
        argon2_time_cost=1,
        argon2_memory_cost=8192,
        argon2_parallelism=1,
        audit_log_dir=str(tmp_path / "audit"),
        extra={"TESTING": True},
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def services(app):
    with app.app_context():
        yield app.extensions["contest_platform"]


@pytest.fixture
def register(client):
    """Register a user over HTTP and return (user, auth headers)."""
    def _register(username, email=None, password="secret1"):
        email = email or f"{username}@example.com"
        rv = client.post("/auth/register", json={
            "username": username, "email": email, "password": password,
        })
        assert rv.status_code == 201, rv.get_json()
        body = rv.get_json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}
    return _register


@pytest.fixture
def competition_payload():
    return {
        "title": "Summer Photo Contest",
        "description": "Best summer photo wins",
        "category": "photography",
        "startDate": "2025-01-05T00:00:00Z",
        "endDate": "2025-01-10T00:00:00Z",
    }
