"""Tests for the request-level middleware stack."""

from pathlib import Path

import pytest
pytestmark = pytest.mark.security

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from homecentral.config import get_settings
from homecentral.core.middleware import (
    HotPathRateLimitMiddleware,
    RequestSizeLimitMiddleware,
    _is_origin_allowed,
    _is_trusted_proxy,
    get_client_ip,
)
from homecentral.db import Base, dispose_engine
from homecentral.db.database import get_engine
from homecentral.main import create_app


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "middleware.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    get_settings.cache_clear()
    dispose_engine()
    Base.metadata.create_all(bind=get_engine())


def _request(client_host: str, forwarded_for: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded_for.encode())] if forwarded_for else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": (client_host, 4321)})


class TestClientIp:
    def test_trusted_proxy_networks(self):
        assert _is_trusted_proxy("127.0.0.1") is True
        assert _is_trusted_proxy("::1") is True
        assert _is_trusted_proxy("172.17.5.5") is True
        assert _is_trusted_proxy("10.1.2.3") is True
        assert _is_trusted_proxy("8.8.8.8") is False
        assert _is_trusted_proxy("not-an-ip") is False
        assert _is_trusted_proxy("") is False

    def test_forwarded_for_from_trusted_proxy_is_used(self):
        assert get_client_ip(_request("127.0.0.1", "203.0.113.9, 127.0.0.1")) == ("203.0.113.9", True)

    def test_forwarded_for_from_untrusted_source_is_ignored(self):
        assert get_client_ip(_request("198.51.100.7", "203.0.113.9")) == ("198.51.100.7", False)

    def test_direct_connection(self):
        assert get_client_ip(_request("198.51.100.7")) == ("198.51.100.7", False)


class TestOriginMatching:
    def test_exact_scheme_host_and_port(self):
        allowed = {"https://hawaiihomecentral.test"}
        assert _is_origin_allowed("https://hawaiihomecentral.test", allowed)
        assert _is_origin_allowed("https://hawaiihomecentral.test:443", allowed)
        assert not _is_origin_allowed("http://hawaiihomecentral.test", allowed)
        assert not _is_origin_allowed("https://hawaiihomecentral.test:8443", allowed)
        assert not _is_origin_allowed("https://evil-hawaiihomecentral.test", allowed)

    def test_wildcard_hostname(self):
        allowed = {"https://*.hawaiihomecentral.test"}
        assert _is_origin_allowed("https://preview.hawaiihomecentral.test", allowed)
        assert not _is_origin_allowed("http://preview.hawaiihomecentral.test", allowed)

    def test_null_and_empty_rejected(self):
        allowed = {"https://hawaiihomecentral.test"}
        assert not _is_origin_allowed("null", allowed)
        assert not _is_origin_allowed("", allowed)


def _echo_app(middleware, **kwargs) -> FastAPI:
    app = FastAPI()
    app.add_middleware(middleware, **kwargs)

    @app.post("/x")
    async def x(payload: dict):
        return {"ok": True}

    @app.get("/api/share/{tool_key}/{token}")
    async def share(tool_key: str, token: str):
        return {"ok": True}

    return app


class TestRequestSizeLimit:
    def test_rejects_large_body_by_content_length(self):
        client = TestClient(_echo_app(RequestSizeLimitMiddleware, max_bytes=100))
        response = client.post("/x", json={"data": "a" * 500})
        assert response.status_code == 413
        assert response.json()["error"]["code"] == "E4130"

    def test_allows_small_body(self):
        client = TestClient(_echo_app(RequestSizeLimitMiddleware, max_bytes=10_000))
        assert client.post("/x", json={"data": "ok"}).status_code == 200

    def test_rejects_invalid_content_length(self):
        client = TestClient(_echo_app(RequestSizeLimitMiddleware, max_bytes=1000))
        response = client.post("/x", json={"data": "test"}, headers={"content-length": "not-a-number"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E1400"


class TestHotPathRateLimit:
    def test_share_tokens_are_throttled_per_ip(self):
        client = TestClient(_echo_app(HotPathRateLimitMiddleware, token_rpm=3))
        for i in range(3):
            assert client.get(f"/api/share/punchlist/guess{i}").status_code == 200
        limited = client.get("/api/share/punchlist/guess9")
        assert limited.status_code == 429
        assert limited.json()["error"]["code"] == "E1102"
        assert limited.headers["retry-after"] == "60"
        # Other paths are unaffected.
        assert client.post("/x", json={}).status_code == 200

    def test_preflight_is_exempt(self):
        client = TestClient(_echo_app(HotPathRateLimitMiddleware, token_rpm=1))
        for _ in range(3):
            assert client.options("/api/share/punchlist/abc").status_code != 429


def test_unknown_host_header_rejected(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    app = create_app()

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        resp = client.get("/health", headers={"Host": "evil.example.com"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "E1001"

    dispose_engine()


def test_request_id_is_echoed(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    app = create_app()

    with TestClient(app) as client:
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["x-request-id"] == "req-123"
        assert client.get("/health").headers["x-request-id"]

    dispose_engine()


def test_cors_allows_configured_origin_only(tmp_path, monkeypatch):
    _setup_db(tmp_path, monkeypatch)
    monkeypatch.setenv("CORS_ORIGINS", "https://hawaiihomecentral.test")
    monkeypatch.setenv("ENVIRONMENT", "staging")
    monkeypatch.setenv("SECRET_KEY", "s" * 48)
    monkeypatch.setenv("COOKIE_SECURE", "true")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "client-secret")
    monkeypatch.setenv("GOOGLE_REDIRECT_URI", "https://api.hawaiihomecentral.test/api/auth/google/callback")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://hawaiihomecentral.test")
    get_settings.cache_clear()
    app = create_app()

    with TestClient(app) as client:
        preflight = {"Access-Control-Request-Method": "POST", "Access-Control-Request-Headers": "x-csrf-token"}
        good = client.options("/api/projects", headers={"Origin": "https://hawaiihomecentral.test", **preflight})
        assert good.headers["access-control-allow-origin"] == "https://hawaiihomecentral.test"
        assert good.headers["access-control-allow-credentials"] == "true"

        bad = client.options("/api/projects", headers={"Origin": "https://evil.example.com", **preflight})
        assert bad.status_code in (400, 403)
        assert "access-control-allow-origin" not in bad.headers

    dispose_engine()
