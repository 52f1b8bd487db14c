import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from homecentral.auth.bootstrap import BootstrapRefusedError, ensure_bootstrap_admin
from homecentral.config import Settings, get_settings
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.db.models import AdminAllowlist
from homecentral.main import create_app
from homecentral.scripts import grant_admin
from homecentral.services.allowlist_service import get_admin_role


def _setup_db(tmp_path: Path, monkeypatch, **env):
    db_path = tmp_path / "bootstrap_admin.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _get_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def test_bootstrap_allowlists_admin_once(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch, BOOTSTRAP_ADMIN_EMAIL=" Owner@Example.com ")

    settings = get_settings()
    assert ensure_bootstrap_admin(settings) is True
    assert ensure_bootstrap_admin(settings) is False

    db = _get_session(engine)
    try:
        rows = db.query(AdminAllowlist).all()
        assert [(r.email, r.role) for r in rows] == [("owner@example.com", "ADMIN")]
        assert get_admin_role(db, "OWNER@example.com") == "ADMIN"
    finally:
        db.close()
    dispose_engine()


def test_bootstrap_disabled_without_email(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch, BOOTSTRAP_ADMIN_EMAIL="")

    assert ensure_bootstrap_admin(get_settings()) is False
    db = _get_session(engine)
    try:
        assert db.query(AdminAllowlist).count() == 0
    finally:
        db.close()
    dispose_engine()


def test_bootstrap_refused_in_production():
    settings = Settings(
        environment="production",
        cors_origins="https://hawaiihomecentral.test",
        bootstrap_admin_email="owner@example.com",
    )
    with pytest.raises(BootstrapRefusedError):
        ensure_bootstrap_admin(settings)


def test_bootstrap_runs_at_startup(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch, BOOTSTRAP_ADMIN_EMAIL="owner@example.com")
    app = create_app()

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    db = _get_session(engine)
    try:
        assert db.query(AdminAllowlist).filter(AdminAllowlist.email == "owner@example.com").count() == 1
    finally:
        db.close()
    dispose_engine()


def test_grant_admin_upserts_role(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    db = _get_session(engine)
    try:
        row, created = grant_admin.grant(db, "editor@example.com", "EDITOR")
        assert created is True
        assert row.role == "EDITOR"

        row, created = grant_admin.grant(db, "editor@example.com", "ADMIN")
        assert created is False
        assert db.query(AdminAllowlist).one().role == "ADMIN"
    finally:
        db.close()
    dispose_engine()


def test_grant_admin_cli(monkeypatch, tmp_path, capsys):
    engine = _setup_db(tmp_path, monkeypatch)

    monkeypatch.setattr(sys, "argv", ["grant_admin", "--email", "Kai@Example.com", "--role", "EDITOR"])
    grant_admin.main()
    assert "Granted EDITOR access for kai@example.com" in capsys.readouterr().out

    monkeypatch.setattr(sys, "argv", ["grant_admin", "--email", "not-an-email"])
    with pytest.raises(SystemExit) as exc:
        grant_admin.main()
    assert exc.value.code == 1

    db = _get_session(engine)
    try:
        assert get_admin_role(db, "kai@example.com") == "EDITOR"
    finally:
        db.close()
    dispose_engine()
