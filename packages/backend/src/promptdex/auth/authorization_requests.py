"""Pending OAuth2 authorization requests, carried in a cookie.

Learn: Between "redirect the browser to GitHub" and "GitHub redirects
back with ?code=...&state=..." we must remember the state, the PKCE
verifier and (for OIDC) the nonce. There is no server-side session, so
the browser holds them: a short-lived JWT (type="authorization_request")
in an HttpOnly cookie scoped to the callback path.

The cookie is single-use. The callback reads it once and every response
the callback produces deletes it, success or failure.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt
from starlette.requests import Request
from starlette.responses import Response

from promptdex.config import Settings, settings

AUTHORIZATION_REQUEST_TYPE = "authorization_request"
CALLBACK_PATH = "/login/oauth2"


def pkce_challenge(verifier: str) -> str:
    """S256 PKCE challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class AuthorizationRequest:
    provider: str
    state: str
    code_verifier: str
    nonce: Optional[str] = None
    redirect_uri: Optional[str] = None  # as requested by the client; untrusted

    @classmethod
    def new(
        cls, provider: str, *, oidc: bool, redirect_uri: Optional[str] = None
    ) -> "AuthorizationRequest":
        return cls(
            provider=provider,
            state=secrets.token_urlsafe(32),
            code_verifier=secrets.token_urlsafe(64),
            nonce=secrets.token_urlsafe(32) if oidc else None,
            redirect_uri=redirect_uri,
        )

    @property
    def code_challenge(self) -> str:
        return pkce_challenge(self.code_verifier)

    def matches_state(self, state: Optional[str]) -> bool:
        return bool(state) and secrets.compare_digest(self.state, state)


class AuthorizationRequestStore:
    """Serializes authorization requests into a signed, expiring cookie."""

    def __init__(
        self,
        secret: str,
        *,
        cookie_name: str = "oauth2_auth_request",
        max_age_seconds: int = 180,
        secure: bool = False,
        path: str = CALLBACK_PATH,
        algorithm: str = "HS256",
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self.secure = secure
        self.path = path

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AuthorizationRequestStore":
        return cls(
            cfg.jwt_secret,
            cookie_name=cfg.oauth2_cookie_name,
            max_age_seconds=cfg.oauth2_cookie_max_age_seconds,
            secure=cfg.cookie_secure,
            algorithm=cfg.jwt_algorithm,
        )

    def serialize(self, auth_request: AuthorizationRequest) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "type": AUTHORIZATION_REQUEST_TYPE,
            "provider": auth_request.provider,
            "state": auth_request.state,
            "code_verifier": auth_request.code_verifier,
            "iat": now,
            "exp": now + timedelta(seconds=self.max_age_seconds),
        }
        if auth_request.nonce is not None:
            payload["nonce"] = auth_request.nonce
        if auth_request.redirect_uri is not None:
            payload["redirect_uri"] = auth_request.redirect_uri
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def deserialize(self, value: Optional[str]) -> Optional[AuthorizationRequest]:
        """None for a missing, expired, tampered or foreign value."""
        if not value:
            return None
        try:
            payload = jwt.decode(
                value,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.InvalidTokenError:
            return None
        if payload.get("type") != AUTHORIZATION_REQUEST_TYPE:
            return None

        provider = payload.get("provider")
        state = payload.get("state")
        verifier = payload.get("code_verifier")
        if not all(isinstance(v, str) and v for v in (provider, state, verifier)):
            return None
        nonce = payload.get("nonce")
        redirect_uri = payload.get("redirect_uri")
        return AuthorizationRequest(
            provider=provider,
            state=state,
            code_verifier=verifier,
            nonce=nonce if isinstance(nonce, str) else None,
            redirect_uri=redirect_uri if isinstance(redirect_uri, str) else None,
        )

    def save(self, response: Response, auth_request: AuthorizationRequest) -> None:
        response.set_cookie(
            key=self.cookie_name,
            value=self.serialize(auth_request),
            max_age=self.max_age_seconds,
            path=self.path,
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def load(self, request: Request) -> Optional[AuthorizationRequest]:
        return self.deserialize(request.cookies.get(self.cookie_name))

    def remove(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path=self.path,
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )


@lru_cache(maxsize=1)
def get_authorization_request_store() -> AuthorizationRequestStore:
    """FastAPI dependency — cookie store built from settings."""
    return AuthorizationRequestStore.from_settings(settings)
