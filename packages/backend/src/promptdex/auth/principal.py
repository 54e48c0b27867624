"""The authenticated principal handed to business routes.

Learn: One frozen value object covers every way of signing in. A local
login populates `credentials`; a GitHub login populates
`provider_attributes`; a Google (OIDC) login populates both
`provider_attributes` and `oidc_claims`. Downstream code only ever needs
id, username and roles, so there is no class hierarchy to dispatch on.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from promptdex.db.models import User


class Provider(str, enum.Enum):
    """Where an account came from. Written once at creation."""

    LOCAL = "LOCAL"
    GOOGLE = "GOOGLE"  # OIDC
    GITHUB = "GITHUB"  # plain OAuth2


ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
DEFAULT_ROLES = frozenset({ROLE_USER})


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID
    username: str
    email: str
    provider: Provider
    roles: frozenset[str] = DEFAULT_ROLES
    credentials: Optional[str] = field(default=None, repr=False)
    provider_attributes: Optional[Mapping[str, Any]] = None
    oidc_claims: Optional[Mapping[str, Any]] = None

    @property
    def authorities(self) -> frozenset[str]:
        """Granted authorities — the principal's roles."""
        return self.roles

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @classmethod
    def from_user(
        cls,
        user: User,
        *,
        provider_attributes: Optional[Mapping[str, Any]] = None,
        oidc_claims: Optional[Mapping[str, Any]] = None,
    ) -> "Principal":
        """Build a principal from a stored account row."""
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            provider=Provider(user.provider),
            roles=frozenset(user.roles or ()) or DEFAULT_ROLES,
            credentials=user.password_hash,
            provider_attributes=provider_attributes,
            oidc_claims=oidc_claims,
        )

    def public_view(self) -> dict:
        """Fields safe to return to the client."""
        return {
            "id": str(self.id),
            "username": self.username,
            "email": self.email,
            "provider": self.provider.value,
            "roles": sorted(self.roles),
        }
