"""Custom middleware for the Hawaii Home Central API."""

import ipaddress
import json
import secrets
import time
from collections import deque
from fnmatch import fnmatch
from typing import Callable, List, Optional, Set, Tuple
from urllib.parse import urlparse

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from homecentral.core.logging import get_logger, request_context

logger = get_logger(__name__)

DEFAULT_ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# Only these sources may supply X-Forwarded-For
TRUSTED_PROXY_NETS: List[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("172.17.0.0/16"),
    ipaddress.ip_network("10.0.0.0/8"),
]


def _is_trusted_proxy(client_ip: str) -> bool:
    try:
        ip = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(ip in net for net in TRUSTED_PROXY_NETS)


def get_client_ip(request: Request) -> Tuple[str, bool]:
    """Get the real client IP, respecting X-Forwarded-For from trusted proxies.

    Returns:
        Tuple of (client_ip, is_trusted) where is_trusted indicates whether
        the IP was taken from a trusted proxy header.
    """
    direct_ip = request.client.host if request.client else None

    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            if direct_ip and _is_trusted_proxy(direct_ip):
                return (first_ip, True)
            logger.warning(
                "Untrusted X-Forwarded-For header ignored",
                data={"direct_ip": direct_ip},
            )
            return (direct_ip or first_ip, False)

    return (direct_ip or "unknown", False)


def _json_error(status_code: int, code: str, message: str, headers: dict | None = None) -> Response:
    ctx = request_context.get()
    request_id = ctx.get("request_id") if ctx else None

    body = json.dumps({
        "detail": message,
        "error": {"code": code, "message": message, "request_id": request_id},
    })
    return Response(content=body, status_code=status_code, media_type="application/json", headers=headers)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to inject request context for logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        start_time = time.perf_counter()

        ctx = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        token = request_context.set(ctx)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )

            response.headers["X-Request-ID"] = request_id
            return response

        finally:
            request_context.reset(token)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to limit request body size."""

    def __init__(self, app, max_bytes: int = 2097152):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return _json_error(400, "E1400", "Invalid Content-Length")
            if size > self.max_bytes:
                logger.warning(
                    f"Request too large: {size} bytes",
                    data={"max_bytes": self.max_bytes},
                )
                return _json_error(413, "E4130", "Request body too large")

        return await call_next(request)


class TrustedHostMiddleware(BaseHTTPMiddleware):
    """Validate Host header to prevent host header injection attacks."""

    def __init__(
        self,
        app,
        allowed_hosts: Optional[List[str]] = None,
        allow_any_host: bool = False,
    ):
        super().__init__(app)
        self.allowed_hosts = allowed_hosts or list(DEFAULT_ALLOWED_HOSTS)
        self.allow_any_host = allow_any_host

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.allow_any_host:
            return await call_next(request)

        host_header = request.headers.get("host", "")
        if not host_header:
            return await call_next(request)

        is_allowed = False
        for allowed in self.allowed_hosts:
            if allowed.startswith("*."):
                domain = allowed[2:]
                hostname = host_header.split(":")[0]
                if hostname == domain or hostname.endswith("." + domain):
                    is_allowed = True
                    break
            elif host_header == allowed or host_header.startswith(allowed + ":"):
                is_allowed = True
                break

        if not is_allowed:
            logger.warning(
                "Rejected request with unauthorized Host header",
                data={"host": host_header},
            )
            return _json_error(400, "E1001", "Host header not authorized")

        return await call_next(request)


def _normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


class _SlidingWindow:
    """Per-key sliding window counters kept in process memory."""

    def __init__(self, window_seconds: int = 60):
        self.window_seconds = window_seconds
        self._buckets: dict[str, deque[float]] = {}

    def allow(self, key: str, limit: int, now: float) -> bool:
        if limit <= 0:
            return True

        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = deque()
            self._buckets[key] = bucket

        cutoff = now - self.window_seconds
        while bucket and bucket[0] < cutoff:
            bucket.popleft()

        if len(bucket) >= limit:
            return False

        bucket.append(now)
        return True


class HotPathRateLimitMiddleware(BaseHTTPMiddleware):
    """Stricter per-IP limits for sign-in and token-bearing endpoints.

    Token endpoints (share links, invites) are limited to make guessing
    tokens impractical. CORS preflight and health probes are exempt.
    """

    AUTH_PREFIXES = ("/api/auth/google/",)
    TOKEN_PREFIXES = ("/api/share/", "/api/invites/")
    EXEMPT_METHODS = frozenset({"OPTIONS"})

    def __init__(self, app, auth_rpm: int = 20, token_rpm: int = 60):
        super().__init__(app)
        self.auth_rpm = max(0, int(auth_rpm))
        self.token_rpm = max(0, int(token_rpm))
        self._auth = _SlidingWindow()
        self._tokens = _SlidingWindow()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method in self.EXEMPT_METHODS:
            return await call_next(request)

        path = _normalize_path(request.url.path)
        client_ip, _ = get_client_ip(request)
        now = time.monotonic()

        if path.startswith(self.AUTH_PREFIXES):
            if not self._auth.allow(client_ip, self.auth_rpm, now):
                logger.warning("Auth rate limit exceeded", data={"path": path, "ip": client_ip})
                return _json_error(429, "E1101", "Too many sign-in requests", {"Retry-After": "60"})

        if path.startswith(self.TOKEN_PREFIXES):
            if not self._tokens.allow(client_ip, self.token_rpm, now):
                logger.warning("Token rate limit exceeded", data={"ip": client_ip})
                return _json_error(429, "E1102", "Too many requests", {"Retry-After": "60"})

        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple in-memory rate limiting middleware."""

    EXEMPT_PATHS = {"/health", "/healthz", "/readyz"}

    def __init__(
        self,
        app,
        ip_requests_per_minute: int = 120,
        user_requests_per_minute: int = 120,
    ):
        """Initialize rate limiter with per-IP and per-user RPM.

        Per-user limits require a valid session cookie; they are enforced
        in addition to per-IP limits.
        """
        super().__init__(app)
        self.ip_requests_per_minute = max(0, int(ip_requests_per_minute))
        self.user_requests_per_minute = max(0, int(user_requests_per_minute))
        self._ip = _SlidingWindow()
        self._user = _SlidingWindow()

    def _session_user_id(self, request: Request) -> str | None:
        from homecentral.auth.session import validate_session
        from homecentral.config import get_settings
        from homecentral.db.database import get_session_local

        settings = get_settings()
        session_cookie = request.cookies.get(settings.session_cookie_name)
        if not session_cookie:
            return None
        db = get_session_local()()
        try:
            session = validate_session(db, session_cookie)
            return session.user_id if session else None
        finally:
            db.close()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.ip_requests_per_minute <= 0 and self.user_requests_per_minute <= 0:
            return await call_next(request)

        if _normalize_path(request.url.path) in self.EXEMPT_PATHS:
            return await call_next(request)

        client_ip, _ = get_client_ip(request)
        now = time.monotonic()

        if not self._ip.allow(client_ip, self.ip_requests_per_minute, now):
            logger.warning(
                "Rate limit exceeded",
                data={"scope": "ip", "ip": client_ip, "rpm": self.ip_requests_per_minute},
            )
            return _json_error(429, "E1005", "Rate limit exceeded")

        if self.user_requests_per_minute > 0:
            try:
                user_id = self._session_user_id(request)
            except Exception as exc:
                # Fail open for user limiting; IP limiting still applies.
                logger.warning("User rate limit lookup failed", data={"error": type(exc).__name__})
                user_id = None
            if user_id and not self._user.allow(user_id, self.user_requests_per_minute, now):
                logger.warning(
                    "Rate limit exceeded",
                    data={"scope": "user", "user_id": user_id, "rpm": self.user_requests_per_minute},
                )
                return _json_error(429, "E1006", "Rate limit exceeded")

        return await call_next(request)


def _parse_origin(origin: str) -> tuple[str, str, int] | None:
    """Parse origin into (scheme, hostname, port).

    Rejects the opaque "null" origin and anything without scheme and host.
    Ports default to 443 for https and 80 for http.
    """
    if origin.lower() == "null":
        return None

    try:
        if origin.startswith("//"):
            origin = "https:" + origin
        elif not origin.startswith("http"):
            origin = "https://" + origin

        parsed = urlparse(origin)
        scheme = parsed.scheme
        hostname = parsed.hostname or ""
        port = parsed.port if parsed.port else (443 if scheme == "https" else 80)

        if not scheme or not hostname:
            return None

        return (scheme, hostname.lower(), port)
    except ValueError:
        return None


def _is_origin_allowed(origin: str, allowed_origins: Set[str]) -> bool:
    """Exact scheme+hostname+port match, with fnmatch wildcards on hostname only."""
    if not origin:
        return False

    parsed = _parse_origin(origin)
    if not parsed:
        return False

    origin_scheme, origin_hostname, origin_port = parsed

    for allowed in allowed_origins:
        allowed_parsed = _parse_origin(allowed)
        if not allowed_parsed:
            continue

        allowed_scheme, allowed_hostname, allowed_port = allowed_parsed
        if origin_scheme == allowed_scheme and origin_port == allowed_port:
            if origin_hostname == allowed_hostname:
                return True
            if "*" in allowed_hostname and fnmatch(origin_hostname, allowed_hostname):
                return True

    return False


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
        "X-Frame-Options": "DENY",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        for header, value in self.SECURITY_HEADERS.items():
            if header not in response.headers:
                response.headers[header] = value

        # Public share payloads must never be cached by intermediaries
        if request.url.path.startswith(("/api/share/", "/api/invites/")):
            response.headers["Cache-Control"] = "no-store"

        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit CSRF protection for cookie-authenticated API writes.

    Applies to unsafe methods under /api/ when a session cookie is present:
    Origin (or Referer) must be an allowed origin, and the CSRF header must
    match both the CSRF cookie and the session row.
    """

    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

    def __init__(self, app):
        super().__init__(app)
        self._allowed_origins: Set[str] = set()

    def _get_allowed_origins(self) -> Set[str]:
        if not self._allowed_origins:
            from homecentral.config import get_settings

            self._allowed_origins = set(get_settings().cors_origins_list)
        return self._allowed_origins

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        from homecentral.config import get_settings

        if request.method in self.SAFE_METHODS or not request.url.path.startswith("/api/"):
            return await call_next(request)

        settings = get_settings()
        session_cookie = request.cookies.get(settings.session_cookie_name)
        if not session_cookie:
            return await call_next(request)

        origin = request.headers.get("origin")
        referer = request.headers.get("referer")
        if not (origin or referer):
            logger.warning(
                "Missing Origin/Referer for authenticated request",
                data={"path": request.url.path},
            )
            return _json_error(403, "E2004", "Missing Origin/Referer header")

        check_origin = origin
        if not check_origin and referer:
            referer_parsed = _parse_origin(referer)
            if referer_parsed:
                check_origin = f"{referer_parsed[0]}://{referer_parsed[1]}:{referer_parsed[2]}"

        allowed_origins = self._get_allowed_origins()
        if allowed_origins and not _is_origin_allowed(check_origin or "", allowed_origins):
            logger.warning(
                "Origin validation failed",
                data={"origin": origin, "path": request.url.path},
            )
            return _json_error(403, "E2003", "Origin validation failed")

        from homecentral.auth.session import validate_session
        from homecentral.db.database import get_session_local

        db = get_session_local()()
        try:
            session = validate_session(db, session_cookie)
        finally:
            db.close()

        # Stale cookies fall through to the auth dependency, which answers 401.
        if not session:
            return await call_next(request)

        csrf_cookie = request.cookies.get(settings.csrf_cookie_name)
        csrf_header = request.headers.get(settings.csrf_header_name)
        if (
            not csrf_cookie
            or not csrf_header
            or csrf_cookie != csrf_header
            or csrf_cookie != session.csrf_token
        ):
            logger.warning("CSRF validation failed", data={"path": request.url.path})
            return _json_error(403, "E2002", "CSRF validation failed")

        return await call_next(request)
