from pathlib import Path

from fastapi.testclient import TestClient

from homecentral import __version__
from homecentral.config import get_settings
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.main import create_app


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "health.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    get_settings.cache_clear()
    dispose_engine()
    Base.metadata.create_all(bind=get_engine())


def test_health_reports_build_metadata(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    monkeypatch.setenv("BUILD_SHA", "abc1234")
    monkeypatch.delenv("BUILD_TIME", raising=False)
    app = create_app()

    with TestClient(app) as client:
        for path in ("/health", "/healthz"):
            resp = client.get(path)
            assert resp.status_code == 200
            body = resp.json()
            assert body["status"] == "ok"
            assert body["version"] == __version__
            assert body["build_sha"] == "abc1234"
            assert body["build_time"] == "unknown"
            assert body["environment"] == "test"
            assert resp.headers["x-content-type-options"] == "nosniff"
            assert resp.headers["x-frame-options"] == "DENY"

    dispose_engine()


def test_readyz_checks_database(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    app = create_app()

    with TestClient(app) as client:
        resp = client.get("/readyz")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ready"
        assert resp.json()["checks"]["database"] is True

        monkeypatch.setattr("homecentral.api.health.verify_database_connection", lambda: False)
        down = client.get("/readyz")
        assert down.status_code == 503
        assert down.json()["status"] == "not_ready"

    dispose_engine()


def test_health_probes_are_not_rate_limited(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    monkeypatch.setenv("RATE_LIMIT_RPM", "2")
    get_settings.cache_clear()
    app = create_app()

    with TestClient(app) as client:
        for _ in range(5):
            assert client.get("/healthz").status_code == 200
        assert client.get("/api/content").status_code == 200
        assert client.get("/api/content").status_code == 200
        limited = client.get("/api/content")
        assert limited.status_code == 429
        assert limited.json()["error"]["code"] == "E1005"

    dispose_engine()
