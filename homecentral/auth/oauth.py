"""Google OAuth authorization-code flow.

The ``state`` parameter is a random nonce signed with the app secret. It is
set as a short-lived cookie on login and must come back unchanged on the
callback.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from homecentral.config import get_settings
from homecentral.core.exceptions import AuthenticationError, OAuthError
from homecentral.core.logging import get_logger

logger = get_logger(__name__)

STATE_TTL_SECONDS = 600
GOOGLE_SCOPES = "openid email profile"


@dataclass
class GoogleProfile:
    email: str
    name: Optional[str]
    image: Optional[str]


def _sign(nonce: str) -> str:
    key = get_settings().secret_key.encode()
    return hmac.new(key, nonce.encode(), hashlib.sha256).hexdigest()


def create_state() -> str:
    nonce = secrets.token_urlsafe(24)
    return f"{nonce}.{_sign(nonce)}"


def verify_state(returned: Optional[str], cookie_value: Optional[str]) -> bool:
    """The returned state must equal the cookie and carry a valid signature."""
    if not returned or not cookie_value:
        return False
    if not hmac.compare_digest(returned, cookie_value):
        return False
    nonce, _, signature = returned.partition(".")
    return bool(nonce) and hmac.compare_digest(signature, _sign(nonce))


def build_authorization_url(state: str) -> str:
    settings = get_settings()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "state": state,
        "prompt": "select_account",
    }
    return f"{settings.google_auth_url}?{urlencode(params)}"


async def fetch_google_profile(
    code: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GoogleProfile:
    """Exchange an authorization code and fetch the signed-in user's profile.

    Raises:
        OAuthError: Google rejected the exchange or was unreachable.
        AuthenticationError: The Google account has no verified email.
    """
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=settings.oauth_timeout_seconds, transport=transport) as client:
            token_response = await client.post(
                settings.google_token_url,
                data={
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            if token_response.status_code != 200:
                logger.warning("Google token exchange failed", data={"status": token_response.status_code})
                raise OAuthError("Google sign-in failed")
            access_token = token_response.json().get("access_token")
            if not access_token:
                raise OAuthError("Google sign-in failed")

            userinfo_response = await client.get(
                settings.google_userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if userinfo_response.status_code != 200:
                logger.warning("Google userinfo failed", data={"status": userinfo_response.status_code})
                raise OAuthError("Google sign-in failed")
            info = userinfo_response.json()
    except httpx.HTTPError as exc:
        logger.error("Google OAuth request error", data={"error": type(exc).__name__})
        raise OAuthError("Google sign-in unavailable") from exc

    email = (info.get("email") or "").strip().lower()
    if not email or info.get("email_verified") is False:
        raise AuthenticationError("Google account has no verified email")
    return GoogleProfile(email=email, name=info.get("name"), image=info.get("picture"))
