"""Exception → HTTP response mapping for the auth error taxonomy.

Learn: Routes and dependencies raise domain errors (CredentialError,
RegistrationConflict, ...) and never build error responses themselves.
The bodies keep FastAPI's usual {"detail": "..."} shape. Anything that is
not an AuthError is logged with its traceback and reaches the client as
a generic 500 — no stack traces, store messages or internal ids leak.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from promptdex.auth.authorization_requests import get_authorization_request_store
from promptdex.auth.errors import (
    AccessDenied,
    AuthError,
    CredentialError,
    ProcessingError,
    ProviderError,
    RegistrationConflict,
    TokenError,
)

logger = structlog.get_logger()

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"

_UNAUTHENTICATED_HEADERS = {"WWW-Authenticate": "Bearer"}


def _error(
    request: Request, status_code: int, message: str, headers: dict | None = None
) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code, content={"detail": message}, headers=headers
    )
    # The OAuth2 callback must drop the authorization-request cookie on
    # every response, including ones that never reached the route.
    store = get_authorization_request_store()
    if request.url.path.startswith(store.path + "/"):
        store.remove(response)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for every AuthError subclass plus a 500 fallback."""

    @app.exception_handler(CredentialError)
    async def handle_credential_error(request: Request, exc: CredentialError):
        return _error(request, 401, CredentialError.default_message)

    @app.exception_handler(TokenError)
    async def handle_token_error(request: Request, exc: TokenError):
        # Expired, malformed, bad signature, missing: all look the same.
        return _error(request, 401, TokenError.default_message, _UNAUTHENTICATED_HEADERS)

    @app.exception_handler(AccessDenied)
    async def handle_access_denied(request: Request, exc: AccessDenied):
        logger.info(
            "auth.access_denied", path=request.url.path, method=request.method
        )
        return _error(request, 403, exc.message)

    @app.exception_handler(RegistrationConflict)
    async def handle_registration_conflict(request: Request, exc: RegistrationConflict):
        return _error(request, 400, exc.message)

    @app.exception_handler(ProcessingError)
    async def handle_processing_error(request: Request, exc: ProcessingError):
        return _error(request, 400, ProcessingError.default_message)

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError):
        return _error(request, 502, ProviderError.default_message)

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        return _error(request, 400, AuthError.default_message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return _error(request, 500, INTERNAL_ERROR_MESSAGE)
