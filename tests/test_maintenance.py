from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient

from kindred.auth.models import AuthSession
from kindred.debug_routes import router as debug_router
from scripts.purge_expired_sessions import purge_expired_sessions

from conftest import register


def test_db_diagnostics_hides_password_and_counts_rows(client):
    register(client)
    debug_app = FastAPI()
    debug_app.include_router(debug_router)

    resp = TestClient(debug_app).get("/debug/diagnostics/db")
    assert resp.status_code == 200
    info = resp.json()
    assert info["backend"] == "sqlite"
    assert info["sqlite_exists"] is True
    assert info["row_counts"]["users"] == 1
    assert info["row_counts"]["sessions"] == 1


def test_debug_routes_are_not_mounted_by_default(client):
    assert client.get("/debug/diagnostics/db").status_code == 404


def test_purge_expired_sessions(client, db):
    stale = register(client)["token"]
    fresh = register(client)["token"]
    session = db.query(AuthSession).filter(AuthSession.token == stale).one()
    session.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()

    assert purge_expired_sessions(dry_run=True) == 1
    assert db.query(AuthSession).count() == 2

    assert purge_expired_sessions() == 1
    remaining = [s.token for s in db.query(AuthSession).all()]
    assert remaining == [fresh]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
