"""Route-level authorization rules.

Learn: Coarse, path-based policy evaluated once per request:

- OPTIONS anywhere is allowed (CORS preflight carries no credentials)
- auth endpoints and read-only "browse" routes are open to anonymous users
- everything under /api/admin needs the ADMIN role
- everything else needs an authenticated principal

Ownership ("can this user edit that prompt?") is not handled here: the
business layer compares principal.id with the resource owner itself.
"""

import enum
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Optional

from promptdex.auth.principal import ROLE_ADMIN, Principal


class AccessDecision(enum.Enum):
    ALLOW = "allow"
    UNAUTHENTICATED = "unauthenticated"  # → 401
    FORBIDDEN = "forbidden"  # → 403


@dataclass(frozen=True)
class RouteRule:
    """A method + glob path pattern. `*` matches within one segment only."""

    method: str
    pattern: str

    def matches(self, method: str, path: str) -> bool:
        if method != self.method:
            return False
        if self.pattern.endswith("/**"):
            prefix = self.pattern[:-3]
            return path == prefix or path.startswith(prefix + "/")
        if not fnmatchcase(path, self.pattern):
            return False
        # fnmatch's `*` also matches "/", so compare segment counts.
        return path.count("/") == self.pattern.count("/")


PUBLIC_ROUTES = (
    RouteRule("POST", "/auth/login"),
    RouteRule("POST", "/auth/register"),
    RouteRule("GET", "/oauth2/authorize/*"),
    RouteRule("GET", "/login/oauth2/code/*"),
    RouteRule("GET", "/health"),
)

BROWSE_ROUTES = (
    RouteRule("GET", "/api/prompts"),
    RouteRule("GET", "/api/prompts/**"),
    RouteRule("GET", "/api/tags"),
    RouteRule("GET", "/api/users/*/profile"),
    RouteRule("GET", "/api/users/*/prompts"),
)

ADMIN_PREFIX = "/api/admin"


class RoutePolicy:
    def __init__(
        self,
        open_routes: tuple[RouteRule, ...] = PUBLIC_ROUTES + BROWSE_ROUTES,
        admin_prefix: str = ADMIN_PREFIX,
    ):
        self.open_routes = open_routes
        self.admin_prefix = admin_prefix.rstrip("/")

    def is_open(self, method: str, path: str) -> bool:
        return any(rule.matches(method, path) for rule in self.open_routes)

    def is_admin(self, path: str) -> bool:
        return path == self.admin_prefix or path.startswith(self.admin_prefix + "/")

    def decide(
        self, method: str, path: str, principal: Optional[Principal]
    ) -> AccessDecision:
        method = method.upper()
        if method == "OPTIONS":
            return AccessDecision.ALLOW
        if len(path) > 1:
            path = path.rstrip("/")

        if self.is_admin(path):
            if principal is None:
                return AccessDecision.UNAUTHENTICATED
            if not principal.has_role(ROLE_ADMIN):
                return AccessDecision.FORBIDDEN
            return AccessDecision.ALLOW

        if self.is_open(method, path):
            return AccessDecision.ALLOW
        if principal is None:
            return AccessDecision.UNAUTHENTICATED
        return AccessDecision.ALLOW


route_policy = RoutePolicy()
