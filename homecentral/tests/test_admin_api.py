from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from homecentral.auth.session import create_session
from homecentral.config import get_settings
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.db.models import AdminAllowlist, AuditLog, Session, User
from homecentral.main import create_app

ORIGIN = "http://localhost:3000"


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "admin.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    monkeypatch.setenv("ADMIN_ALLOWLIST", "admin@example.com")
    monkeypatch.setenv("EARLY_ACCESS_ALLOWLIST", "friend@example.com")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _get_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def _seed(engine, editor_email="editor@example.com"):
    db = _get_session(engine)
    try:
        admin = User(email="admin@example.com", name="Admin")
        editor = User(email=editor_email, name="Editor")
        member = User(email="member@example.com", name="Member")
        db.add_all([admin, editor, member])
        db.commit()
        db.add(AdminAllowlist(email=editor_email, role="EDITOR", added_by_id=admin.id))
        db.commit()
        return {user.email: (user.id, *create_session(db, user)) for user in (admin, editor, member)}
    finally:
        db.close()


def _login(client, session):
    settings = get_settings()
    _, token, csrf = session
    client.cookies.clear()
    client.cookies.set(settings.session_cookie_name, token)
    client.cookies.set(settings.csrf_cookie_name, csrf)
    return {settings.csrf_header_name: csrf, "Origin": ORIGIN}


def test_site_settings_round_trip(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["editor@example.com"])
        assert client.get("/api/admin/settings").json() == {}

        resp = client.put(
            "/api/admin/settings",
            json={"site_contact_email": "aloha@example.com", "report_hide_notes_in_public_share": True},
            headers=headers,
        )
        assert resp.status_code == 200
        assert sorted(resp.json()["keys"]) == ["report_hide_notes_in_public_share", "site_contact_email"]

        stored = client.get("/api/admin/settings").json()
        assert stored == {"site_contact_email": "aloha@example.com", "report_hide_notes_in_public_share": "True"}

        _login(client, sessions["member@example.com"])
        assert client.get("/api/admin/settings").status_code == 403

    db = _get_session(engine)
    try:
        assert db.query(AuditLog).filter(AuditLog.event_type == "admin.settings_update").count() == 1
        assert db.query(AuditLog).filter(AuditLog.event_type == "admin_access_denied").count() == 1
    finally:
        db.close()
    dispose_engine()


def test_editor_cannot_manage_access(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["editor@example.com"])
        assert client.get("/api/admin/content").status_code == 200
        for method, path in (
            ("get", "/api/admin/access"),
            ("get", "/api/admin/users"),
            ("get", "/api/admin/audit"),
            ("get", "/api/admin/early-access-allowlist"),
        ):
            resp = getattr(client, method)(path, headers=headers)
            assert resp.status_code == 403, path
        denied = client.post("/api/admin/access", json={"email": "x@example.com"}, headers=headers)
        assert denied.status_code == 403

    dispose_engine()


def test_admin_access_lifecycle(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["admin@example.com"])

        listing = client.get("/api/admin/access").json()
        assert listing["envEmails"] == ["admin@example.com"]
        assert [row["email"] for row in listing["rows"]] == ["editor@example.com"]

        assert client.post("/api/admin/access", json={"email": "not-an-email"}, headers=headers).status_code == 400

        created = client.post(
            "/api/admin/access", json={"email": "  New.Editor@Example.com ", "role": "EDITOR"}, headers=headers
        )
        assert created.status_code == 201
        entry = created.json()
        assert entry["email"] == "new.editor@example.com"
        assert entry["role"] == "EDITOR"

        dup = client.post("/api/admin/access", json={"email": "new.editor@example.com"}, headers=headers)
        assert dup.status_code == 409

        promoted = client.patch("/api/admin/access", json={"id": entry["id"], "role": "ADMIN"}, headers=headers)
        assert promoted.status_code == 200
        assert promoted.json()["role"] == "ADMIN"
        assert client.patch("/api/admin/access", json={"id": entry["id"], "role": "OWNER"}, headers=headers).status_code == 400
        assert client.patch("/api/admin/access", json={"id": "ghost", "role": "ADMIN"}, headers=headers).status_code == 404

        assert client.delete("/api/admin/access", headers=headers).status_code == 400
        removed = client.delete("/api/admin/access", params={"id": entry["id"]}, headers=headers)
        assert removed.json() == {"ok": True}
        assert client.delete("/api/admin/access", params={"id": entry["id"]}, headers=headers).status_code == 404

        # An admin cannot drop their own allowlist row.
        own = client.post("/api/admin/access", json={"email": "admin@example.com"}, headers=headers).json()
        self_remove = client.delete("/api/admin/access", params={"id": own["id"]}, headers=headers)
        assert self_remove.status_code == 400
        assert self_remove.json()["detail"] == "Cannot remove your own admin access"

    dispose_engine()


def test_early_access_allowlist(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["admin@example.com"])

        created = client.post(
            "/api/admin/early-access-allowlist", json={"email": "Neighbor@Example.com"}, headers=headers
        )
        assert created.status_code == 201
        row = created.json()
        assert row["email"] == "neighbor@example.com"
        assert row["note"] == "admin@example.com"

        dup = client.post("/api/admin/early-access-allowlist", json={"email": "neighbor@example.com"}, headers=headers)
        assert dup.status_code == 409

        listing = client.get("/api/admin/early-access-allowlist").json()
        assert listing["envEmails"] == ["friend@example.com"]
        assert [r["email"] for r in listing["rows"]] == ["neighbor@example.com"]

        removed = client.delete("/api/admin/early-access-allowlist", params={"id": row["id"]}, headers=headers)
        assert removed.json() == {"ok": True}
        assert client.get("/api/admin/early-access-allowlist").json()["rows"] == []

    dispose_engine()


def test_deactivating_user_revokes_sessions(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    member_id = sessions["member@example.com"][0]
    admin_id = sessions["admin@example.com"][0]
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["admin@example.com"])

        users = client.get("/api/admin/users").json()
        assert {u["email"] for u in users} == {"admin@example.com", "editor@example.com", "member@example.com"}

        self_off = client.patch(f"/api/admin/users/{admin_id}", json={"is_active": False}, headers=headers)
        assert self_off.status_code == 400
        assert client.patch("/api/admin/users/ghost", json={"is_active": False}, headers=headers).status_code == 404

        resp = client.patch(f"/api/admin/users/{member_id}", json={"is_active": False}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        _login(client, sessions["member@example.com"])
        assert client.get("/api/auth/me").status_code == 401

    db = _get_session(engine)
    try:
        active = db.query(Session).filter(Session.user_id == member_id).count()
        assert active == 0
    finally:
        db.close()
    dispose_engine()


def test_audit_log_filters(tmp_path, monkeypatch):
    engine = _setup_db(tmp_path, monkeypatch)
    sessions = _seed(engine)
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["admin@example.com"])
        client.put("/api/admin/settings", json={"site_footer_tagline": "Mahalo"}, headers=headers)
        client.post("/api/admin/access", json={"email": "helper@example.com"}, headers=headers)

        everything = client.get("/api/admin/audit").json()["entries"]
        events = {e["event_type"] for e in everything}
        assert {"admin.settings_update", "admin.access_grant"} <= events

        filtered = client.get("/api/admin/audit", params={"event": "admin.access_grant"}).json()["entries"]
        assert len(filtered) == 1
        assert filtered[0]["data_json"] == {"email": "h***@example.com", "role": "ADMIN"}

        future = client.get("/api/admin/audit", params={"from_date": "2999-01-01T00:00:00"}).json()["entries"]
        assert future == []
        assert client.get("/api/admin/audit", params={"from_date": "yesterday"}).status_code == 400

    dispose_engine()
