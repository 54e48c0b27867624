"""Bearer token issuance and verification.

Learn: JWT (JSON Web Token) gives us stateless authentication — nothing is
stored server-side, so a token is valid exactly when its HS256 signature
checks out and `exp` is in the future. There is no refresh token and no
revocation list; tokens simply expire after 24 hours.

Claims: sub (username), iat, exp, type="access". The `type` claim keeps
other JWTs signed with the same secret (the OAuth2 authorization-request
cookie) from being accepted as bearer tokens.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt

from promptdex.auth.principal import Principal
from promptdex.config import Settings, settings

ACCESS_TOKEN_TYPE = "access"


class TokenService:
    """Issues and validates signed bearer tokens.

    The secret is captured once at construction and never changes for
    the lifetime of the process. All methods are pure, so one instance
    is shared by every request.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        lifetime: timedelta = timedelta(hours=24),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._lifetime = lifetime

    @classmethod
    def from_settings(cls, cfg: Settings) -> "TokenService":
        return cls(
            secret=cfg.jwt_secret,
            algorithm=cfg.jwt_algorithm,
            lifetime=timedelta(hours=cfg.token_expire_hours),
        )

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, principal: Principal) -> str:
        """Create a token whose subject is the principal's username."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": principal.username,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> bool:
        """True only for a well-formed, correctly signed, unexpired token.

        Every failure collapses to False — callers never learn whether the
        token was expired, tampered with or garbage.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.InvalidTokenError:
            return False
        return payload.get("type") == ACCESS_TOKEN_TYPE and isinstance(
            payload.get("sub"), str
        )

    def subject_of(self, token: str) -> Optional[str]:
        """Read the username out of a token.

        Does NOT verify the signature or expiry: callers must have called
        validate() on the same token first. Returns None when the token
        cannot be decoded at all.
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None
        subject = payload.get("sub")
        return subject if isinstance(subject, str) else None


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    """FastAPI dependency — the process-wide token service."""
    return TokenService.from_settings(settings)
