"""Federated login API — Google and GitHub.

Learn: Two browser-facing endpoints, both answering with 302 redirects:
- GET /oauth2/authorize/{provider} → to the provider; stores state, PKCE
  verifier and nonce in the authorization-request cookie
- GET /login/oauth2/code/{provider} → provider callback; checks the cookie,
  fetches the profile, resolves the account, then back to the frontend
  with ?token=... (or ?error=... on any failure)

The callback never answers with a JSON error: whatever goes wrong, the
user ends up on an allow-listed frontend page and the cookie is gone.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import RedirectResponse

from promptdex.auth.authorization_requests import (
    AuthorizationRequest,
    AuthorizationRequestStore,
    get_authorization_request_store,
)
from promptdex.auth.errors import ProcessingError, ProviderError
from promptdex.auth.identity import IdentityResolver
from promptdex.auth.providers import (
    OAuth2Client,
    ProviderRegistration,
    get_oauth2_client,
    get_provider_registry,
)
from promptdex.auth.redirects import (
    FailureRedirectHandler,
    SuccessRedirectHandler,
    get_failure_handler,
    get_success_handler,
)
from promptdex.config import settings
from promptdex.db.engine import get_db

logger = structlog.get_logger()

router = APIRouter()

# Error codes handed to the frontend.
ERROR_INVALID_REQUEST = "invalid_request"
ERROR_ACCESS_DENIED = "access_denied"
ERROR_PROVIDER = "provider_error"
ERROR_PROFILE = "profile_incomplete"
ERROR_SERVER = "server_error"


def callback_uri(provider: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/login/oauth2/code/{provider}"


@router.get("/oauth2/authorize/{provider}")
async def authorize(
    provider: str,
    redirect_uri: Optional[str] = None,
    registry: dict[str, ProviderRegistration] = Depends(get_provider_registry),
    oauth: OAuth2Client = Depends(get_oauth2_client),
    store: AuthorizationRequestStore = Depends(get_authorization_request_store),
):
    """Start a federated login: redirect the browser to the provider."""
    registration = registry.get(provider)
    if registration is None:
        raise HTTPException(status_code=404, detail="Unknown identity provider")

    auth_request = AuthorizationRequest.new(
        registration.name, oidc=registration.is_oidc, redirect_uri=redirect_uri
    )
    response = RedirectResponse(
        oauth.authorization_url(registration, auth_request, callback_uri(provider)),
        status_code=302,
    )
    store.save(response, auth_request)
    logger.info("oauth2.authorize_started", provider=provider)
    return response


@router.get("/login/oauth2/code/{provider}")
async def callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    registry: dict[str, ProviderRegistration] = Depends(get_provider_registry),
    oauth: OAuth2Client = Depends(get_oauth2_client),
    store: AuthorizationRequestStore = Depends(get_authorization_request_store),
    on_success: SuccessRedirectHandler = Depends(get_success_handler),
    on_failure: FailureRedirectHandler = Depends(get_failure_handler),
):
    """Provider callback: finish the login and hand the token to the frontend."""
    auth_request = store.load(request)
    log = logger.bind(provider=provider)

    registration = registry.get(provider)
    if registration is None or auth_request is None:
        log.warning("oauth2.callback_failed", reason="no_pending_request")
        return on_failure.on_failure(ERROR_INVALID_REQUEST, auth_request)
    if auth_request.provider != registration.name or not auth_request.matches_state(state):
        log.warning("oauth2.callback_failed", reason="state_mismatch")
        return on_failure.on_failure(ERROR_INVALID_REQUEST, auth_request)
    if error or not code:
        log.info("oauth2.callback_failed", reason="provider_denied", error=error)
        return on_failure.on_failure(ERROR_ACCESS_DENIED, auth_request)

    try:
        profile = await oauth.fetch_profile(
            registration,
            code=code,
            auth_request=auth_request,
            redirect_uri=callback_uri(provider),
        )
        resolver = IdentityResolver(db, noreply_domain=settings.github_noreply_domain)
        resolution = await resolver.resolve_federated(
            registration.provider,
            profile.attributes,
            oidc_claims=profile.oidc_claims,
        )
    except ProviderError as e:
        log.warning("oauth2.callback_failed", reason="provider", error=e.message)
        return on_failure.on_failure(ERROR_PROVIDER, auth_request)
    except ProcessingError as e:
        log.warning("oauth2.callback_failed", reason="profile", error=e.message)
        return on_failure.on_failure(ERROR_PROFILE, auth_request)
    except Exception:
        log.exception("oauth2.callback_failed", reason="internal")
        return on_failure.on_failure(ERROR_SERVER, auth_request)

    log.info(
        "oauth2.login_succeeded",
        user_id=str(resolution.principal.id),
        created=resolution.created,
    )
    return on_success.on_success(resolution.principal, auth_request)
