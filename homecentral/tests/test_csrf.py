from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from homecentral.auth.session import create_session
from homecentral.config import get_settings
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.db.models import User
from homecentral.main import create_app

pytestmark = [pytest.mark.security, pytest.mark.csrf]

ORIGIN = "http://localhost:3000"
TARGET = "/api/user/onboarding-complete"


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "csrf.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _seed_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    try:
        user = User(email="csrf@example.com", name="Csrf")
        db.add(user)
        db.commit()
        return create_session(db, user)
    finally:
        db.close()


def _client_with_session(app, session):
    settings = get_settings()
    token, csrf = session
    client = TestClient(app)
    client.cookies.set(settings.session_cookie_name, token)
    client.cookies.set(settings.csrf_cookie_name, csrf)
    return client, csrf


def test_valid_csrf_request_succeeds(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    session = _seed_session(engine)
    client, csrf = _client_with_session(create_app(), session)

    with client:
        headers = {get_settings().csrf_header_name: csrf, "Origin": ORIGIN}
        resp = client.post(TARGET, headers=headers)
        assert resp.status_code == 200
        status = client.get("/api/user/onboarding-status").json()
        assert status["completed"] is True

    dispose_engine()


def test_missing_origin_returns_e2004(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    client, csrf = _client_with_session(create_app(), _seed_session(engine))

    with client:
        resp = client.post(TARGET, headers={get_settings().csrf_header_name: csrf})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "E2004"

    dispose_engine()


def test_foreign_origin_returns_e2003(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    client, csrf = _client_with_session(create_app(), _seed_session(engine))

    with client:
        for origin in ("https://evil.example.com", "http://localhost:3001", "null"):
            resp = client.post(TARGET, headers={get_settings().csrf_header_name: csrf, "Origin": origin})
            assert resp.status_code == 403, origin
            assert resp.json()["error"]["code"] == "E2003"

    dispose_engine()


def test_referer_is_accepted_without_origin(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    client, csrf = _client_with_session(create_app(), _seed_session(engine))

    with client:
        resp = client.post(
            TARGET,
            headers={get_settings().csrf_header_name: csrf, "Referer": f"{ORIGIN}/app/tools/punchlist"},
        )
        assert resp.status_code == 200

    dispose_engine()


def test_csrf_mismatch_returns_e2002(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    client, csrf = _client_with_session(create_app(), _seed_session(engine))
    settings = get_settings()

    with client:
        missing = client.post(TARGET, headers={"Origin": ORIGIN})
        assert missing.status_code == 403
        assert missing.json()["error"]["code"] == "E2002"

        wrong = client.post(TARGET, headers={settings.csrf_header_name: "not-the-token", "Origin": ORIGIN})
        assert wrong.json()["error"]["code"] == "E2002"

        # Header and cookie agree but neither belongs to the session.
        client.cookies.set(settings.csrf_cookie_name, "forged-token")
        forged = client.post(TARGET, headers={settings.csrf_header_name: "forged-token", "Origin": ORIGIN})
        assert forged.status_code == 403
        assert forged.json()["error"]["code"] == "E2002"

    dispose_engine()


def test_no_session_cookie_skips_csrf(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)

    with TestClient(create_app()) as client:
        # Falls through to the auth dependency.
        resp = client.post(TARGET)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "E2000"

    dispose_engine()


def test_stale_session_cookie_answers_401(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)

    with TestClient(create_app()) as client:
        settings = get_settings()
        client.cookies.set(settings.session_cookie_name, "expired-or-made-up")
        resp = client.post(TARGET, headers={"Origin": ORIGIN})
        assert resp.status_code == 401

    dispose_engine()


def test_safe_methods_are_not_checked(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    client, _ = _client_with_session(create_app(), _seed_session(engine))

    with client:
        assert client.get("/api/user/onboarding-status").status_code == 200

    dispose_engine()
