"""Exception types and handlers for the FastAPI application."""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from homecentral.core.logging import get_logger, request_context

logger = get_logger(__name__)


class HomeCentralError(Exception):
    """Base exception for Hawaii Home Central."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: dict = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(HomeCentralError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E2000")


class AuthorizationError(HomeCentralError):
    """Authorization failed."""

    def __init__(self, message: str = "Access denied", code: str = "E2001"):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code=code)


class AccessDeniedError(AuthorizationError):
    """Project or tool level permission failure.

    ``code`` is one of NOT_A_MEMBER, NO_TOOL_ACCESS, VIEW_ONLY, OWNER_REQUIRED.
    """

    NOT_A_MEMBER = "NOT_A_MEMBER"
    NO_TOOL_ACCESS = "NO_TOOL_ACCESS"
    VIEW_ONLY = "VIEW_ONLY"
    OWNER_REQUIRED = "OWNER_REQUIRED"

    _MESSAGES = {
        NOT_A_MEMBER: "Not a member of this project",
        NO_TOOL_ACCESS: "No access to this tool",
        VIEW_ONLY: "View-only access",
        OWNER_REQUIRED: "Only the project owner can do this",
    }

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or self._MESSAGES.get(code, "Access denied"), code=code)


class SignInDeniedError(AuthorizationError):
    """Sign-in refused by maintenance mode or the early access allowlist."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__("Sign-in is not available for this account", code="E2005")
        self.details = {"reason": reason}


class NotFoundError(HomeCentralError):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class ConflictError(HomeCentralError):
    """State conflict (duplicates, caps, stale writes)."""

    def __init__(self, message: str, code: str = "E4090", details: dict = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, code=code, details=details)


class GoneError(HomeCentralError):
    """Resource existed but is no longer usable."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=status.HTTP_410_GONE, code="E4100", details=details)


class BadRequestError(HomeCentralError):
    """Request is well-formed but semantically invalid."""

    def __init__(self, message: str, code: str = "E4000", details: dict = None):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, code=code, details=details)


class InvalidPayloadError(BadRequestError):
    """Tool payload rejected by validation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__("Invalid payload", code="E4001", details={"reason": reason})


class RateLimitedError(HomeCentralError):
    """Application-level rate limit."""

    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, code="E1005")


class OAuthError(HomeCentralError):
    """Upstream identity provider error."""

    def __init__(self, message: str, provider: str = "google"):
        super().__init__(
            message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="E3000",
            details={"provider": provider},
        )


def _request_id() -> str | None:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(HomeCentralError)
    async def homecentral_exception_handler(
        request: Request, exc: HomeCentralError
    ) -> JSONResponse:
        """Handle application exceptions."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Request failed: {exc.message}",
            data={"status_code": exc.status_code, "code": exc.code},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder({
                "detail": exc.message,
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "request_id": _request_id(),
                },
                **exc.details,
            }),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request body/query validation errors."""
        errors = jsonable_encoder(exc.errors())
        logger.warning("Request validation error", data={"error_count": len(errors)})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": errors,
                "error": {
                    "code": "E4220",
                    "message": "Validation error",
                    "request_id": _request_id(),
                },
            },
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors."""
        errors = jsonable_encoder(exc.errors())
        logger.warning("Validation error", data={"error_count": len(errors)})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": errors,
                "error": {
                    "code": "E4220",
                    "message": "Validation error",
                    "request_id": _request_id(),
                },
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": {
                    "code": "E5000",
                    "message": "Internal server error",
                    "request_id": _request_id(),
                },
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        code = f"E{exc.status_code}0"
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error": {
                    "code": code,
                    "message": exc.detail,
                    "request_id": _request_id(),
                },
            },
            headers=exc.headers,
        )
