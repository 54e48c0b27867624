"""External identity providers — Google (OIDC) and GitHub (OAuth2).

Learn: Both use the authorization-code flow with PKCE:

1. authorization_url() → browser goes to the provider with state,
   code_challenge and (Google only) nonce
2. provider redirects back with ?code=...
3. fetch_profile() exchanges the code at the token endpoint, then
   - Google: verifies the ID token (RS256 against Google's JWKS; issuer,
     audience, nonce) and merges in the userinfo response
   - GitHub: reads the profile from the /user API

Every HTTP call goes through one httpx.AsyncClient with a fixed timeout.
Any transport failure or non-2xx answer becomes a ProviderError, which
aborts this one login attempt and nothing else.
"""

import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
import jwt
import structlog

from promptdex.auth.authorization_requests import AuthorizationRequest
from promptdex.auth.errors import ProviderError
from promptdex.auth.principal import Provider
from promptdex.config import Settings, settings

logger = structlog.get_logger()

JWKS_CACHE_SECONDS = 3600


@dataclass(frozen=True)
class ProviderRegistration:
    name: str
    provider: Provider
    client_id: str
    client_secret: str
    authorization_uri: str
    token_uri: str
    user_info_uri: str
    scopes: tuple[str, ...]
    jwks_uri: Optional[str] = None
    issuers: tuple[str, ...] = ()

    @property
    def is_oidc(self) -> bool:
        return self.jwks_uri is not None


@dataclass(frozen=True)
class ProviderProfile:
    """What a provider told us about the user."""

    attributes: dict[str, Any]
    oidc_claims: Optional[dict[str, Any]] = field(default=None)


def google_registration(client_id: str, client_secret: str) -> ProviderRegistration:
    return ProviderRegistration(
        name="google",
        provider=Provider.GOOGLE,
        client_id=client_id,
        client_secret=client_secret,
        authorization_uri="https://accounts.google.com/o/oauth2/v2/auth",
        token_uri="https://oauth2.googleapis.com/token",
        user_info_uri="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
        jwks_uri="https://www.googleapis.com/oauth2/v3/certs",
        issuers=("https://accounts.google.com", "accounts.google.com"),
    )


def github_registration(client_id: str, client_secret: str) -> ProviderRegistration:
    return ProviderRegistration(
        name="github",
        provider=Provider.GITHUB,
        client_id=client_id,
        client_secret=client_secret,
        authorization_uri="https://github.com/login/oauth/authorize",
        token_uri="https://github.com/login/oauth/access_token",
        user_info_uri="https://api.github.com/user",
        scopes=("read:user", "user:email"),
    )


def build_registry(cfg: Settings) -> dict[str, ProviderRegistration]:
    """Registrations for every provider with client credentials configured."""
    registry = {}
    if cfg.google_client_id and cfg.google_client_secret:
        registry["google"] = google_registration(
            cfg.google_client_id, cfg.google_client_secret
        )
    if cfg.github_client_id and cfg.github_client_secret:
        registry["github"] = github_registration(
            cfg.github_client_id, cfg.github_client_secret
        )
    return registry


@lru_cache(maxsize=1)
def get_provider_registry() -> dict[str, ProviderRegistration]:
    """FastAPI dependency — enabled providers, keyed by URL name."""
    return build_registry(settings)


class OAuth2Client:
    """Talks to providers. One instance per process; holds only a JWKS cache."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self._jwks_cache: dict[str, tuple[float, dict]] = {}

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        )

    def authorization_url(
        self,
        registration: ProviderRegistration,
        auth_request: AuthorizationRequest,
        redirect_uri: str,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": registration.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(registration.scopes),
            "state": auth_request.state,
            "code_challenge": auth_request.code_challenge,
            "code_challenge_method": "S256",
        }
        if auth_request.nonce is not None:
            params["nonce"] = auth_request.nonce
        return f"{registration.authorization_uri}?{urlencode(params)}"

    async def fetch_profile(
        self,
        registration: ProviderRegistration,
        *,
        code: str,
        auth_request: AuthorizationRequest,
        redirect_uri: str,
    ) -> ProviderProfile:
        try:
            async with self._http() as client:
                tokens = await self._exchange_code(
                    client, registration, code, auth_request, redirect_uri
                )
                access_token = tokens.get("access_token")
                if not isinstance(access_token, str) or not access_token:
                    raise ProviderError("Token response missing access_token")

                if not registration.is_oidc:
                    attributes = await self._user_info(client, registration, access_token)
                    return ProviderProfile(attributes=attributes)

                claims = await self._verify_id_token(
                    client, registration, tokens.get("id_token"), auth_request.nonce
                )
                user_info = await self._user_info(client, registration, access_token)
        except httpx.HTTPError as e:
            logger.warning(
                "oauth2.provider_unreachable",
                provider=registration.name,
                error=type(e).__name__,
            )
            raise ProviderError() from e

        if user_info.get("sub") not in (None, claims["sub"]):
            raise ProviderError("UserInfo subject does not match ID token")
        return ProviderProfile(attributes={**claims, **user_info}, oidc_claims=claims)

    async def _exchange_code(
        self,
        client: httpx.AsyncClient,
        registration: ProviderRegistration,
        code: str,
        auth_request: AuthorizationRequest,
        redirect_uri: str,
    ) -> dict:
        r = await client.post(
            registration.token_uri,
            data={
                "grant_type": "authorization_code",
                "client_id": registration.client_id,
                "client_secret": registration.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": auth_request.code_verifier,
            },
        )
        return self._json_object(r, registration, "token")

    async def _user_info(
        self,
        client: httpx.AsyncClient,
        registration: ProviderRegistration,
        access_token: str,
    ) -> dict:
        r = await client.get(
            registration.user_info_uri,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._json_object(r, registration, "userinfo")

    async def _jwks(self, client: httpx.AsyncClient, jwks_uri: str) -> dict:
        ts, cached = self._jwks_cache.get(jwks_uri, (0.0, None))
        now = time.monotonic()
        if cached is not None and now - ts < JWKS_CACHE_SECONDS:
            return cached
        r = await client.get(jwks_uri)
        if r.status_code >= 400:
            raise ProviderError(f"JWKS fetch failed (status={r.status_code})")
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError("JWKS response is not JSON") from e
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise ProviderError("Invalid JWKS")
        self._jwks_cache[jwks_uri] = (now, data)
        return data

    async def _verify_id_token(
        self,
        client: httpx.AsyncClient,
        registration: ProviderRegistration,
        id_token: Any,
        expected_nonce: Optional[str],
    ) -> dict:
        if not isinstance(id_token, str) or not id_token:
            raise ProviderError("Token response missing id_token")
        try:
            kid = jwt.get_unverified_header(id_token).get("kid")
            jwks = await self._jwks(client, registration.jwks_uri)
            jwk = next(
                (k for k in jwks["keys"] if isinstance(k, dict) and k.get("kid") == kid),
                None,
            )
            if jwk is None:
                raise ProviderError("Unknown ID token signing key")
            claims = jwt.decode(
                id_token,
                key=jwt.PyJWK(jwk).key,
                algorithms=["RS256"],
                audience=registration.client_id,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as e:
            logger.warning(
                "oauth2.id_token_rejected",
                provider=registration.name,
                error=type(e).__name__,
            )
            raise ProviderError("Invalid ID token") from e

        if registration.issuers and claims.get("iss") not in registration.issuers:
            raise ProviderError("ID token issuer mismatch")
        if not expected_nonce or claims.get("nonce") != expected_nonce:
            raise ProviderError("ID token nonce mismatch")
        return claims

    @staticmethod
    def _json_object(
        r: httpx.Response, registration: ProviderRegistration, step: str
    ) -> dict:
        if r.status_code >= 400:
            # Avoid leaking provider error bodies; status is enough.
            logger.warning(
                "oauth2.provider_error",
                provider=registration.name,
                step=step,
                status=r.status_code,
            )
            raise ProviderError(f"{step} request failed (status={r.status_code})")
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(f"{step} response is not JSON") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{step} response is not an object")
        if step == "token" and "error" in data:
            # GitHub reports bad codes as 200 + {"error": ...}
            raise ProviderError("Token exchange rejected")
        return data


@lru_cache(maxsize=1)
def get_oauth2_client() -> OAuth2Client:
    """FastAPI dependency — shared provider client."""
    return OAuth2Client(timeout=settings.oauth2_http_timeout_seconds)
