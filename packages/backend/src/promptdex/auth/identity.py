"""Federated identity resolution and account provisioning.

Learn: Google and GitHub hand us a bag of profile attributes. This module
turns that bag into a Principal:

1. Find an email. GitHub users may hide theirs, so a GitHub login without
   one gets `<login>@users.noreply.github.com`. Any other provider without
   an email is a ProcessingError, and so is an OIDC login whose claims
   say the email is not verified.
2. An account with that email already exists → reuse it exactly as stored.
   Display name, avatar etc. are NOT refreshed on later logins.
3. Otherwise provision a new account with role USER and a generated,
   unique username.

Username uniqueness under concurrency: two first-time logins for "octocat"
can both see the name as free before either commits. The existence probe
is only a hint; the UNIQUE constraint on users.username decides. A
violation at insert time is a retry signal, not an error.
"""

import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex.auth.errors import ProcessingError, ProvisioningError
from promptdex.auth.principal import ROLE_USER, Principal, Provider
from promptdex.auth.store import UserStore
from promptdex.db.models import USERNAME_MAX_LENGTH, User

logger = structlog.get_logger()

# Profile attributes tried, in order, before falling back to the email.
USERNAME_SOURCE_ATTRIBUTES = ("login", "preferred_username", "name")

# After base1..base50 are all taken, switch to random suffixes.
SEQUENTIAL_SUFFIX_LIMIT = 50
MAX_USERNAME_PROBES = 60
MAX_INSERT_ATTEMPTS = 10

_DISALLOWED_USERNAME_CHARS = re.compile(r"[^a-z0-9_.-]")


@dataclass(frozen=True)
class Resolution:
    """Outcome of a federated login: who it is, and whether we just created them."""

    principal: Principal
    created: bool


def sanitize_username(raw: str) -> str:
    """Lowercase and keep only [a-z0-9_.-]."""
    return _DISALLOWED_USERNAME_CHARS.sub("", raw.lower())


def base_username(
    attributes: Mapping[str, Any], email: str, *, now_ms: Optional[int] = None
) -> str:
    """Derive the preferred username before any collision handling."""
    source = email.split("@", 1)[0]
    for key in USERNAME_SOURCE_ATTRIBUTES:
        value = attributes.get(key)
        if isinstance(value, str) and value.strip():
            source = value
            break

    candidate = sanitize_username(source)
    if not candidate:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        candidate = f"user{now_ms}"
    return candidate[:USERNAME_MAX_LENGTH]


def with_suffix(base: str, suffix: str) -> str:
    """Append a suffix, trimming the base so the result still fits."""
    return base[: USERNAME_MAX_LENGTH - len(suffix)] + suffix


def username_candidates(base: str) -> Iterator[str]:
    """base, base1, base2, ... base50, then random hex suffixes forever."""
    yield base
    for n in range(1, SEQUENTIAL_SUFFIX_LIMIT + 1):
        yield with_suffix(base, str(n))
    while True:
        yield with_suffix(base, secrets.token_hex(4))


class IdentityResolver:
    """Maps provider profiles onto accounts, creating them on first login."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        noreply_domain: str = "users.noreply.github.com",
    ):
        self.store = UserStore(db)
        self.noreply_domain = noreply_domain

    async def resolve_federated(
        self,
        provider: Provider,
        attributes: Mapping[str, Any],
        *,
        oidc_claims: Optional[Mapping[str, Any]] = None,
    ) -> Resolution:
        """Resolve (or provision) the account behind a provider profile."""
        email = self.extract_email(provider, attributes)
        if oidc_claims is not None and oidc_claims.get("email_verified") in (False, "false"):
            # An unverified address must not match (and take over) an account.
            raise ProcessingError("Email address is not verified by the provider")

        user = await self.store.find_by_email(email)
        created = False
        if user is None:
            user, created = await self._provision(provider, email, attributes)
        elif user.provider != provider.value:
            # Same email, different origin: the existing account wins and
            # keeps its original provider.
            logger.info(
                "identity.linked_by_email",
                user_id=str(user.id),
                account_provider=user.provider,
                login_provider=provider.value,
            )

        principal = Principal.from_user(
            user,
            provider_attributes=dict(attributes),
            oidc_claims=dict(oidc_claims) if oidc_claims is not None else None,
        )
        return Resolution(principal=principal, created=created)

    def extract_email(self, provider: Provider, attributes: Mapping[str, Any]) -> str:
        email = attributes.get("email")
        if isinstance(email, str) and email.strip():
            return email.strip()

        if provider is Provider.GITHUB:
            login = attributes.get("login")
            if isinstance(login, str) and login.strip():
                return f"{login.strip()}@{self.noreply_domain}"

        raise ProcessingError("Email not found from OAuth2 provider")

    async def generate_unique_username(
        self, attributes: Mapping[str, Any], email: str
    ) -> str:
        """First candidate the store does not already know about.

        Advisory only — see _provision() for the authoritative check.
        """
        candidates = username_candidates(base_username(attributes, email))
        return await self._first_unused(candidates)

    async def _first_unused(self, candidates: Iterator[str]) -> str:
        for _ in range(MAX_USERNAME_PROBES):
            candidate = next(candidates)
            if not await self.store.username_exists(candidate):
                return candidate
            logger.debug("identity.username_taken", username=candidate)
        raise ProvisioningError("Could not allocate a unique username")

    async def _provision(
        self, provider: Provider, email: str, attributes: Mapping[str, Any]
    ) -> tuple[User, bool]:
        candidates = username_candidates(base_username(attributes, email))

        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            username = await self._first_unused(candidates)
            user = User(
                username=username,
                email=email,
                password_hash=None,
                provider=provider.value,
                roles=[ROLE_USER],
            )
            try:
                await self.store.insert(user)
            except IntegrityError:
                # Lost a race. If it was for the email, someone else just
                # created this very account, so use theirs.
                existing = await self.store.find_by_email(email)
                if existing is not None:
                    logger.info(
                        "identity.concurrent_signup_reused",
                        user_id=str(existing.id),
                        provider=provider.value,
                    )
                    return existing, False
                logger.warning(
                    "identity.username_collision",
                    username=username,
                    attempt=attempt,
                )
                continue

            logger.info(
                "identity.user_provisioned",
                user_id=str(user.id),
                username=user.username,
                provider=provider.value,
            )
            return user, True

        raise ProvisioningError("Could not allocate a unique username")
