import os
import tempfile
import uuid

import pytest

# Settings are read at import time, so set them before the app is imported.
_db_dir = tempfile.mkdtemp(prefix="kindred-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from fastapi.testclient import TestClient  # noqa: E402

from kindred.main import app  # noqa: E402
from kindred.db.base import Base, engine, SessionLocal  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def register(client, email=None, password="pw123456", **extra):
    """Register a user and return the JSON body (user, token, expiresAt)."""
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    resp = client.post("/api/auth/register", json={"email": email, "password": password, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth(client):
    """Headers for a freshly registered user."""
    return bearer(register(client)["token"])
