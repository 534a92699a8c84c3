from __future__ import annotations

import sys
import uuid
from pathlib import Path

import pytest
from fastapi import HTTPException, Response
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from auth.utils import (  # noqa: E402
    clear_session_cookie,
    create_token,
    decode_token,
    resolve_test_login_user,
    start_session,
)
from config import settings  # noqa: E402
from db.database import Base  # noqa: E402
from db.models import User  # noqa: E402
from main import app  # noqa: E402

PASSWORD = "Vital!Pass123"


def _new_email(prefix: str = "auth") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}@vitalplus.de"


def _register(client: TestClient, email: str, name: str = "Erika Muster"):
    return client.post("/api/auth/register", json={"email": email, "password": PASSWORD, "name": name})


def test_token_roundtrip_carries_user_and_version():
    payload = decode_token(create_token(42, token_version=3))
    assert payload["sub"] == "42"
    assert payload["tv"] == 3


def test_start_session_sets_cookie_matching_the_token(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_COOKIE_SAMESITE", "seltsam")
    monkeypatch.setattr(settings, "JWT_EXPIRY_HOURS", 2)
    response = Response()
    token = start_session(response, User(id=7, email="s@vitalplus.de", name="S", token_version=4))

    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith(f"{settings.AUTH_COOKIE_NAME}={token}")
    assert "Max-Age=7200" in set_cookie
    assert "SameSite=lax" in set_cookie
    assert decode_token(token)["tv"] == 4

    cleared = Response()
    clear_session_cookie(cleared)
    assert "Max-Age=0" in cleared.headers["set-cookie"]


def test_resolve_test_login_user_guards(monkeypatch):
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(User(email="e2e@vitalplus.de", name="E2E", password_hash="hash"))
    db.commit()

    assert resolve_test_login_user(db, " E2E@VitalPlus.de ").email == "e2e@vitalplus.de"
    for email, code in ((None, 400), ("  ", 400), ("ghost@vitalplus.de", 404)):
        with pytest.raises(HTTPException) as exc:
            resolve_test_login_user(db, email)
        assert exc.value.status_code == code

    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    with pytest.raises(HTTPException) as exc:
        resolve_test_login_user(db, "e2e@vitalplus.de")
    assert exc.value.status_code == 403


def test_register_login_me_logout_flow():
    client = TestClient(app)
    email = _new_email()

    register = _register(client, email.upper())
    assert register.status_code == 201
    assert register.json()["access_token"]
    set_cookie = register.headers.get("set-cookie", "").lower()
    assert f"{settings.AUTH_COOKIE_NAME}=" in set_cookie
    assert "httponly" in set_cookie

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == email
    assert me.json()["activity_level"] == "normal"

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401

    login = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert login.status_code == 200
    token = login.json()["access_token"]

    bearer = TestClient(app)
    assert bearer.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_register_rejects_duplicates_and_invalid_input():
    client = TestClient(app)
    email = _new_email()
    assert _register(client, email).status_code == 201
    assert _register(TestClient(app), email).status_code == 409

    assert _register(TestClient(app), "kein-email").status_code == 400
    short = client.post("/api/auth/register", json={"email": _new_email(), "password": "kurz", "name": "Erika"})
    assert short.status_code == 400


def test_login_with_wrong_password_is_unauthorized():
    client = TestClient(app)
    email = _new_email()
    _register(client, email)
    resp = TestClient(app).post("/api/auth/login", json={"email": email, "password": "falsch-falsch"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Ungültige Anmeldedaten"


def test_invalid_token_is_rejected():
    client = TestClient(app)
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_test_login_outcomes(monkeypatch):
    email = _new_email("e2e")
    _register(TestClient(app), email)

    client = TestClient(app)
    ok = client.post("/api/auth/test-login", json={"email": email})
    assert ok.status_code == 200
    assert ok.json()["success"] is True
    assert ok.json()["user"]["email"] == email
    assert client.get("/api/auth/me").status_code == 200

    assert client.post("/api/auth/test-login", json={}).status_code == 400
    assert client.post("/api/auth/test-login", json={"email": _new_email("ghost")}).status_code == 404

    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    assert TestClient(app).post("/api/auth/test-login", json={"email": email}).status_code == 403


def test_users_can_only_read_themselves():
    client = TestClient(app)
    _register(client, _new_email())
    me = client.get("/api/auth/me").json()

    assert client.get(f"/api/users/{me['id']}").status_code == 200
    assert client.get(f"/api/users/{me['id'] + 100000}").status_code == 403


def test_profile_update_changes_alert_thresholds():
    client = TestClient(app)
    _register(client, _new_email())

    resp = client.put(
        "/api/users",
        json={"activity_level": "athlete", "health_goal": "abnehmen", "custom_alert_thresholds": {"min_sleep": 7}},
    )
    assert resp.status_code == 200
    assert resp.json()["activity_level"] == "athlete"
    assert resp.json()["custom_alert_thresholds"] == {"min_sleep": 7.0}

    thresholds = client.get("/api/health/alerts/thresholds").json()
    assert thresholds["max_heart_rate"] == 95
    assert thresholds["min_steps"] == 6000
    assert thresholds["max_calories"] == 1800
    assert thresholds["min_sleep"] == 7

    assert client.put("/api/users", json={"activity_level": "couch"}).status_code == 400


def test_profile_update_rejects_taken_email():
    taken = _new_email()
    _register(TestClient(app), taken)

    client = TestClient(app)
    _register(client, _new_email())
    assert client.put("/api/users", json={"email": taken}).status_code == 409
