from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from homecentral.auth.session import create_session
from homecentral.config import get_settings
from homecentral.core.time import utcnow
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.db.models import ProjectInvite, ProjectMember, SiteSetting, ToolShareToken, User
from homecentral.main import create_app
from homecentral.repositories import SQLAlchemyProjectRepository

ORIGIN = "http://localhost:3000"

PUNCHLIST = {
    "version": 3,
    "nextItemNumber": 3,
    "items": [
        {
            "id": "p1",
            "itemNumber": 1,
            "title": "Loose railing",
            "location": "Lanai",
            "status": "OPEN",
            "assigneeLabel": "Kimo",
            "notes": "Owner-only note",
            "photos": [{"id": "ph1", "url": "https://img.test/1.jpg", "exif": {"gps": "21.3,-157.8"}}],
            "comments": [{"id": "c1", "text": "On it", "authorName": "Kimo", "authorEmail": "kimo@example.com"}],
            "internalCost": 450,
        },
        {"id": "p2", "itemNumber": 2, "title": "Touch-up paint", "location": "Kitchen", "status": "DONE"},
    ],
}


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "sharing.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://hawaiihomecentral.test")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _get_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def _seed(engine, *emails):
    db = _get_session(engine)
    try:
        users = [User(email=email, name=email.split("@")[0].title()) for email in emails]
        db.add_all(users)
        db.commit()
        owner = users[0]
        project = SQLAlchemyProjectRepository(db).create(owner.id, "Manoa Bungalow")
        owner.current_project_id = project.id
        db.commit()
        sessions = {user.email: (user.id, *create_session(db, user)) for user in users}
        return project.id, sessions
    finally:
        db.close()


def _login(client, session):
    settings = get_settings()
    _, token, csrf = session
    client.cookies.clear()
    client.cookies.set(settings.session_cookie_name, token)
    client.cookies.set(settings.csrf_cookie_name, csrf)
    return {settings.csrf_header_name: csrf, "Origin": ORIGIN}


# --- Invites ----------------------------------------------------------------


def test_invite_preview_and_accept(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com", "friend@example.com")
    app = create_app()
    share_url = f"/api/projects/{project_id}/tools/punchlist/share"

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        res = client.post(share_url, json={"email": " Friend@Example.com ", "level": "VIEW"}, headers=headers)
        assert res.status_code == 201
        body = res.json()
        assert body["invite"]["email"] == "friend@example.com"
        assert body["invite"]["level"] == "VIEW"
        assert body["inviteUrl"].startswith("https://hawaiihomecentral.test/invite/")
        token = body["inviteUrl"].rsplit("/", 1)[1]

        # Duplicate pending invite
        res = client.post(share_url, json={"email": "friend@example.com"}, headers=headers)
        assert res.status_code == 409

        state = client.get(share_url).json()
        assert [i["email"] for i in state["invites"]] == ["friend@example.com"]
        assert state["maxEditShares"] == 3

        # Preview needs no session.
        client.cookies.clear()
        preview = client.get(f"/api/invites/{token}")
        assert preview.status_code == 200
        assert preview.json()["projectName"] == "Manoa Bungalow"
        assert preview.json()["invitedBy"] == "Owner"
        assert preview.headers["Cache-Control"] == "no-store"

        headers = _login(client, sessions["friend@example.com"])
        res = client.post(f"/api/invites/{token}", headers=headers)
        assert res.status_code == 200
        assert res.json() == {"projectId": project_id, "toolKey": "punchlist", "level": "VIEW"}

        res = client.get("/api/tools/punchlist", params={"projectId": project_id})
        assert res.status_code == 200
        assert res.json()["access"] == "VIEW"

        # Accepted invites cannot be reused.
        res = client.post(f"/api/invites/{token}", headers=headers)
        assert res.status_code == 410

    dispose_engine()


def test_invite_for_other_email_is_refused(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com", "friend@example.com", "stranger@example.com")
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        res = client.post(
            f"/api/projects/{project_id}/tools/mood_boards/share",
            json={"email": "friend@example.com"},
            headers=headers,
        )
        token = res.json()["inviteUrl"].rsplit("/", 1)[1]

        headers = _login(client, sessions["stranger@example.com"])
        res = client.post(f"/api/invites/{token}", headers=headers)
        assert res.status_code == 403

    db = _get_session(engine)
    try:
        stranger_id = sessions["stranger@example.com"][0]
        assert db.query(ProjectMember).filter(ProjectMember.user_id == stranger_id).count() == 0
    finally:
        db.close()
    dispose_engine()


def test_expired_invite_is_marked_expired(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com")

    db = _get_session(engine)
    try:
        db.add(
            ProjectInvite(
                token="expired-token",
                project_id=project_id,
                tool_key="punchlist",
                email="late@example.com",
                level="EDIT",
                status="PENDING",
                invited_by_id=sessions["owner@example.com"][0],
                expires_at=utcnow() - timedelta(days=1),
            )
        )
        db.commit()
    finally:
        db.close()

    app = create_app()
    with TestClient(app) as client:
        res = client.get("/api/invites/expired-token")
        assert res.status_code == 410
        assert res.json()["status"] == "EXPIRED"
        assert client.get("/api/invites/missing-token").status_code == 404

    db = _get_session(engine)
    try:
        invite = db.query(ProjectInvite).filter(ProjectInvite.token == "expired-token").one()
        assert invite.status == "EXPIRED"
    finally:
        db.close()
    dispose_engine()


def test_edit_share_cap(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    monkeypatch.setenv("MAX_EDIT_SHARES", "2")
    get_settings.cache_clear()
    project_id, sessions = _seed(engine, "owner@example.com")
    app = create_app()
    share_url = f"/api/projects/{project_id}/tools/finish_decisions/share"

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        assert client.post(share_url, json={"email": "a@example.com"}, headers=headers).status_code == 201
        assert client.post(share_url, json={"email": "b@example.com"}, headers=headers).status_code == 201
        res = client.post(share_url, json={"email": "c@example.com"}, headers=headers)
        assert res.status_code == 409
        assert "Maximum 2" in res.json()["detail"]
        # VIEW invites are not capped.
        res = client.post(share_url, json={"email": "c@example.com", "level": "VIEW"}, headers=headers)
        assert res.status_code == 201

        res = client.post(share_url, json={"email": "owner@example.com"}, headers=headers)
        assert res.status_code == 400

    dispose_engine()


def test_revoking_last_grant_removes_membership(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com", "friend@example.com")
    friend_id = sessions["friend@example.com"][0]
    owner_id = sessions["owner@example.com"][0]

    db = _get_session(engine)
    try:
        repo = SQLAlchemyProjectRepository(db)
        repo.add_member(project_id, friend_id, "MEMBER")
        repo.upsert_tool_access(project_id, "punchlist", friend_id, "EDIT", owner_id)
        repo.upsert_tool_access(project_id, "mood_boards", friend_id, "VIEW", owner_id)
        db.commit()
    finally:
        db.close()

    app = create_app()
    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        res = client.request(
            "DELETE",
            f"/api/projects/{project_id}/tools/punchlist/share",
            json={"userId": friend_id},
            headers=headers,
        )
        assert res.status_code == 200

        db = _get_session(engine)
        try:
            assert SQLAlchemyProjectRepository(db).get_membership(project_id, friend_id) is not None
        finally:
            db.close()

        client.request(
            "DELETE",
            f"/api/projects/{project_id}/tools/mood_boards/share",
            json={"userId": friend_id},
            headers=headers,
        )
        res = client.request(
            "DELETE", f"/api/projects/{project_id}/tools/mood_boards/share", json={}, headers=headers
        )
        assert res.status_code == 400

    db = _get_session(engine)
    try:
        assert SQLAlchemyProjectRepository(db).get_membership(project_id, friend_id) is None
    finally:
        db.close()
    dispose_engine()


# --- Public share links -----------------------------------------------------


def _save_punchlist(client, headers, project_id):
    res = client.put("/api/tools/punchlist", json={"payload": PUNCHLIST, "projectId": project_id}, headers=headers)
    assert res.status_code == 200


@pytest.mark.security
def test_public_share_exposes_only_allowlisted_fields(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com")
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        _save_punchlist(client, headers, project_id)

        res = client.post(
            "/api/tools/punchlist/share-token",
            params={"projectId": project_id},
            json={"includeComments": True},
            headers=headers,
        )
        assert res.status_code == 201
        token = res.json()["token"]
        assert res.json()["includeNotes"] is False

        client.cookies.clear()
        res = client.get(f"/api/share/punchlist/{token}")
        assert res.status_code == 200
        assert res.headers["Cache-Control"] == "no-store"
        body = res.json()
        assert body["projectName"] == "Manoa Bungalow"
        item = body["payload"]["items"][0]
        assert "notes" not in item
        assert "internalCost" not in item
        assert item["photos"] == [{"id": "ph1", "url": "https://img.test/1.jpg"}]
        assert item["comments"] == [{"id": "c1", "text": "On it", "authorName": "Kimo"}]
        assert "kimo@example.com" not in res.text

        assert client.get(f"/api/share/mood_boards/{token}").status_code == 404
        assert client.get("/api/share/punchlist/not-a-token").status_code == 404

    dispose_engine()


def test_share_filters_and_notes_failsafe(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com")
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        _save_punchlist(client, headers, project_id)

        res = client.post(
            "/api/tools/punchlist/share-token",
            params={"projectId": project_id},
            json={"includeNotes": True, "locations": ["Lanai"]},
            headers=headers,
        )
        token = res.json()["token"]

        public = client.get(f"/api/share/punchlist/{token}").json()
        assert [i["id"] for i in public["payload"]["items"]] == ["p1"]
        assert public["payload"]["items"][0]["notes"] == "Owner-only note"
        assert public["filters"]["locations"] == ["Lanai"]

    # Flipping the admin failsafe hides notes on links that already exist.
    db = _get_session(engine)
    try:
        db.add(SiteSetting(key="report_hide_notes_in_public_share", value="true"))
        db.commit()
    finally:
        db.close()

    with TestClient(app) as client:
        public = client.get(f"/api/share/punchlist/{token}").json()
        assert public["includeNotes"] is False
        assert "notes" not in public["payload"]["items"][0]

    dispose_engine()


def test_share_token_lifecycle(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com", "friend@example.com")
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        _save_punchlist(client, headers, project_id)

        res = client.post("/api/tools/before_you_sign/share-token", json={}, headers=headers)
        assert res.status_code == 400

        created = client.post("/api/tools/punchlist/share-token", json={}, headers=headers).json()
        tokens = client.get("/api/tools/punchlist/share-token").json()["tokens"]
        assert [t["id"] for t in tokens] == [created["id"]]

        res = client.request(
            "DELETE", "/api/tools/punchlist/share-token", json={"tokenId": created["id"]}, headers=headers
        )
        assert res.status_code == 200
        assert client.get("/api/tools/punchlist/share-token").json()["tokens"] == []
        assert client.get(f"/api/share/punchlist/{created['token']}").status_code == 404

        # Members cannot mint links.
        db = _get_session(engine)
        try:
            repo = SQLAlchemyProjectRepository(db)
            friend_id = sessions["friend@example.com"][0]
            repo.add_member(project_id, friend_id, "MEMBER")
            repo.upsert_tool_access(project_id, "punchlist", friend_id, "EDIT", None)
            db.commit()
        finally:
            db.close()
        headers = _login(client, sessions["friend@example.com"])
        res = client.post(
            "/api/tools/punchlist/share-token", params={"projectId": project_id}, json={}, headers=headers
        )
        assert res.status_code == 403
        assert res.json()["error"]["code"] == "OWNER_REQUIRED"

    dispose_engine()


def test_expired_share_token_is_invalid(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    project_id, sessions = _seed(engine, "owner@example.com")
    app = create_app()

    with TestClient(app) as client:
        headers = _login(client, sessions["owner@example.com"])
        _save_punchlist(client, headers, project_id)
        token = client.post("/api/tools/punchlist/share-token", json={}, headers=headers).json()["token"]

    db = _get_session(engine)
    try:
        record = db.query(ToolShareToken).filter(ToolShareToken.token == token).one()
        record.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()
    finally:
        db.close()

    with TestClient(app) as client:
        res = client.get(f"/api/share/punchlist/{token}")
        assert res.status_code == 404
        assert res.json()["detail"] == "Invalid or expired link"

    dispose_engine()
