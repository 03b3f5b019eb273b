from datetime import datetime, timedelta, timezone

import pytest

from kindred.auth.models import AuthSession, Subscription, User
from kindred.storage import Storage

from conftest import bearer, register


def _assert_no_password(user):
    assert "passwordHash" not in user
    assert "password_hash" not in user
    assert "password" not in user


# =========================
# REGISTER / LOGIN
# =========================

def test_register_returns_user_token_and_expiry(client):
    resp = client.post(
        "/api/auth/register",
        json={"email": "alice@example.com", "password": "pw123456", "displayName": "Alice"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["displayName"] == "Alice"
    assert body["user"]["preferredLanguage"] == "he"
    assert body["user"]["onboardingCompleted"] is False
    assert len(body["token"]) == 64
    assert body["expiresAt"]
    _assert_no_password(body["user"])


def test_register_session_expires_in_thirty_days(client, db):
    body = register(client)
    session = db.query(AuthSession).filter(AuthSession.token == body["token"]).one()
    expires_at = session.expires_at.replace(tzinfo=timezone.utc)
    delta = expires_at - datetime.now(timezone.utc)
    assert timedelta(days=29, hours=23) < delta <= timedelta(days=30)


def test_register_creates_free_subscription(client, db):
    body = register(client)
    sub = db.query(Subscription).filter(Subscription.user_id == body["user"]["id"]).one()
    assert sub.plan == "free"
    assert sub.status == "active"


def test_register_rejects_duplicate_email(client):
    register(client, email="dup@example.com")
    resp = client.post("/api/auth/register", json={"email": "dup@example.com", "password": "pw123456"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Email already registered"


def test_register_maps_unique_violation_to_duplicate_email(client, db, monkeypatch):
    # Lookup misses as it would for the slower of two simultaneous registrations
    register(client, email="race@example.com")
    monkeypatch.setattr(Storage, "get_user_by_email", lambda self, email: None)

    resp = client.post("/api/auth/register", json={"email": "race@example.com", "password": "pw123456"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Email already registered"}
    assert db.query(User).filter(User.email == "race@example.com").count() == 1
    assert db.query(Subscription).count() == 1


def test_register_validation_errors_are_400(client):
    resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": "pw123456"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid input"
    assert resp.json()["details"]

    resp = client.post("/api/auth/register", json={"email": "short@example.com", "password": "123"})
    assert resp.status_code == 400

    resp = client.post(
        "/api/auth/register",
        json={"email": "lang@example.com", "password": "pw123456", "preferredLanguage": "fr"},
    )
    assert resp.status_code == 400


def test_login_success_creates_additional_session(client):
    first = register(client, email="bob@example.com")
    resp = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "pw123456"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token"] != first["token"]
    _assert_no_password(body["user"])

    # Both sessions remain usable
    assert client.get("/api/auth/me", headers=bearer(first["token"])).status_code == 200
    assert client.get("/api/auth/me", headers=bearer(body["token"])).status_code == 200


def test_login_failure_message_does_not_reveal_which_field(client):
    register(client, email="carol@example.com")
    wrong_pw = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "pw123456"})
    assert wrong_pw.status_code == 401
    assert unknown.status_code == 401
    assert wrong_pw.json() == unknown.json() == {"error": "Invalid email or password"}


# =========================
# AUTH REJECTION MATRIX
# =========================

def test_missing_header_is_401(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Authentication required"}


def test_malformed_header_is_401(client):
    token = register(client)["token"]
    for header in (token, f"Token {token}", "Bearer"):
        resp = client.get("/api/auth/me", headers={"Authorization": header})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}


def test_unknown_token_is_401(client):
    resp = client.get("/api/auth/me", headers=bearer("0" * 64))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid or expired session"}


def test_expired_token_is_401_and_stays_dead(client, db):
    token = register(client)["token"]
    session = db.query(AuthSession).filter(AuthSession.token == token).one()
    session.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    resp = client.get("/api/auth/me", headers=bearer(token))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid or expired session"}

    # Deleted on read, not resurrected
    db.expire_all()
    assert db.query(AuthSession).filter(AuthSession.token == token).first() is None
    resp = client.get("/api/auth/me", headers=bearer(token))
    assert resp.status_code == 401


def test_session_for_deleted_user_is_401(client, db):
    body = register(client)
    db.query(User).filter(User.id == body["user"]["id"]).delete()
    db.commit()

    resp = client.get("/api/auth/me", headers=bearer(body["token"]))
    assert resp.status_code == 401
    assert resp.json() == {"error": "User not found"}
    assert "user" not in resp.json()


# =========================
# LOGOUT
# =========================

def test_logout_revokes_only_current_session(client):
    register(client, email="dave@example.com")
    t1 = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "pw123456"}).json()["token"]
    t2 = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "pw123456"}).json()["token"]

    resp = client.post("/api/auth/logout", headers=bearer(t1))
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    assert client.get("/api/auth/me", headers=bearer(t1)).status_code == 401
    assert client.get("/api/auth/me", headers=bearer(t2)).status_code == 200


def test_logout_all_revokes_every_session(client):
    first = register(client, email="erin@example.com")
    second = client.post("/api/auth/login", json={"email": "erin@example.com", "password": "pw123456"}).json()

    resp = client.post("/api/auth/logout-all", headers=bearer(second["token"]))
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "revoked": 2}

    assert client.get("/api/auth/me", headers=bearer(first["token"])).status_code == 401
    assert client.get("/api/auth/me", headers=bearer(second["token"])).status_code == 401


# =========================
# PROFILE
# =========================

def test_me_returns_user_and_subscription(client):
    body = register(client, email="alice@example.com")
    resp = client.get("/api/auth/me", headers=bearer(body["token"]))
    assert resp.status_code == 200
    me = resp.json()
    assert me["user"]["email"] == "alice@example.com"
    assert me["subscription"]["plan"] == "free"
    assert me["subscription"]["status"] == "active"
    _assert_no_password(me["user"])


def test_me_defaults_subscription_when_row_missing(client, db):
    body = register(client)
    db.query(Subscription).filter(Subscription.user_id == body["user"]["id"]).delete()
    db.commit()

    resp = client.get("/api/auth/me", headers=bearer(body["token"]))
    assert resp.status_code == 200
    assert resp.json()["subscription"]["plan"] == "free"
    assert resp.json()["subscription"]["status"] == "active"


def test_patch_me_updates_preferences(client, auth):
    resp = client.patch(
        "/api/auth/me",
        headers=auth,
        json={
            "displayName": "Grandma Rose",
            "preferredLanguage": "en",
            "textSizePreference": "extra-large",
            "highContrastMode": True,
            "emergencyContactPhone": "+972-50-000-0000",
        },
    )
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["displayName"] == "Grandma Rose"
    assert user["preferredLanguage"] == "en"
    assert user["textSizePreference"] == "extra-large"
    assert user["highContrastMode"] is True
    assert user["voiceGuidanceEnabled"] is True
    assert user["emergencyContactPhone"] == "+972-50-000-0000"
    _assert_no_password(user)


def test_patch_me_clears_free_text_fields(client, auth):
    client.patch("/api/auth/me", headers=auth, json={"displayName": "Ruth", "phoneNumber": "050-1234567"})
    resp = client.patch("/api/auth/me", headers=auth, json={"displayName": None, "phoneNumber": None})
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["displayName"] is None
    assert user["phoneNumber"] is None


@pytest.mark.parametrize("body", [
    {"highContrastMode": None},
    {"preferredLanguage": None},
    {"textSizePreference": None, "displayName": "Ruth"},
])
def test_patch_me_rejects_null_for_flags_and_enums(client, auth, body):
    resp = client.patch("/api/auth/me", headers=auth, json=body)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid input"

    user = client.get("/api/auth/me", headers=auth).json()["user"]
    assert user["highContrastMode"] is False
    assert user["preferredLanguage"] == "he"
    assert user["displayName"] is None


def test_patch_me_rejects_invalid_values(client, auth):
    resp = client.patch("/api/auth/me", headers=auth, json={"textSizePreference": "huge"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid input"


def test_complete_onboarding_grants_achievement_once(client, auth):
    resp = client.post("/api/auth/complete-onboarding", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["user"]["onboardingCompleted"] is True
    _assert_no_password(resp.json()["user"])

    # Repeat calls succeed without duplicating the achievement
    assert client.post("/api/auth/complete-onboarding", headers=auth).status_code == 200

    achievements = client.get("/api/progress/achievements/all", headers=auth).json()["achievements"]
    types = [a["achievementType"] for a in achievements]
    assert types.count("onboarding_complete") == 1


# =========================
# SUBSCRIPTION STATUS
# =========================

def test_subscription_status_free_plan(client, auth):
    resp = client.get("/api/auth/subscription", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["isPremium"] is False
    assert resp.json()["plan"] == "free"
    assert resp.json()["status"] == "active"


def test_subscription_status_premium_requires_open_period(client, db):
    body = register(client)
    headers = bearer(body["token"])
    sub = db.query(Subscription).filter(Subscription.user_id == body["user"]["id"]).one()
    sub.plan = "premium"
    sub.current_period_end = datetime.now(timezone.utc) + timedelta(days=10)
    db.commit()

    assert client.get("/api/auth/subscription", headers=headers).json()["isPremium"] is True

    sub.current_period_end = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()
    assert client.get("/api/auth/subscription", headers=headers).json()["isPremium"] is False


def test_subscription_status_without_row(client, db):
    body = register(client)
    db.query(Subscription).filter(Subscription.user_id == body["user"]["id"]).delete()
    db.commit()

    resp = client.get("/api/auth/subscription", headers=bearer(body["token"]))
    assert resp.json() == {"isPremium": False, "plan": "free", "status": "none", "currentPeriodEnd": None}
