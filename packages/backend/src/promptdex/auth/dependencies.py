"""FastAPI auth dependencies — the per-request security gate.

Learn: security_gate is installed on the whole app (FastAPI(dependencies=...))
so it runs once for every routed request:

1. Pull the bearer token out of the Authorization header. No header is
   fine — the request is simply anonymous.
2. validate() the token; only then read its subject and load the account.
   An invalid token is treated exactly like no token.
3. Ask the route policy whether this method+path is allowed for this
   (possibly anonymous) principal → 401 / 403 / carry on.

Business routes then take `Depends(get_current_principal)` and receive the
same Principal — FastAPI caches a dependency's result per request, so the
token is only checked once.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex.auth.errors import AccessDenied, AuthenticationRequired
from promptdex.auth.policy import AccessDecision, route_policy
from promptdex.auth.principal import Principal
from promptdex.auth.store import UserStore
from promptdex.auth.tokens import TokenService, get_token_service
from promptdex.db.engine import get_db

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """The token part of `Authorization: Bearer <token>`, or None."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def authenticate_token(
    token: Optional[str], db: AsyncSession, tokens: TokenService
) -> Optional[Principal]:
    """Principal for a bearer token, or None when there is no usable one."""
    if token is None or not tokens.validate(token):
        return None
    username = tokens.subject_of(token)
    if username is None:
        return None
    user = await UserStore(db).find_by_username(username)
    if user is None:
        return None
    return Principal.from_user(user)


async def security_gate(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[Principal]:
    """Authenticate the request and apply route policy."""
    principal = await authenticate_token(
        extract_bearer_token(authorization), db, tokens
    )
    request.state.principal = principal

    decision = route_policy.decide(request.method, request.url.path, principal)
    if decision is AccessDecision.UNAUTHENTICATED:
        raise AuthenticationRequired()
    if decision is AccessDecision.FORBIDDEN:
        raise AccessDenied()
    return principal


async def get_optional_principal(
    principal: Optional[Principal] = Depends(security_gate),
) -> Optional[Principal]:
    """The caller's principal, or None on anonymous requests."""
    return principal


async def get_current_principal(
    principal: Optional[Principal] = Depends(security_gate),
) -> Principal:
    """The caller's principal (required — 401 if anonymous)."""
    if principal is None:
        raise AuthenticationRequired()
    return principal


def require_role(role: str):
    """Dependency factory: 403 unless the principal holds `role`."""

    async def _require_role(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.has_role(role):
            raise AccessDenied()
        return principal

    return _require_role


def require_owner(principal: Principal, owner_id) -> None:
    """Ownership check for the business layer: acting user must own the resource."""
    if str(principal.id) != str(owner_id):
        raise AccessDenied("You do not have permission to modify this resource")
