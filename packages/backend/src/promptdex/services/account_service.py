"""Account service — local registration and password login.

Learn: Service layer separates business logic from HTTP routing. The API
routes call this; it talks to the identity store. Failures are raised as
the auth error taxonomy and mapped to HTTP responses in one place
(promptdex.api.errors), not here.
"""

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex.auth.errors import CredentialError, RegistrationConflict
from promptdex.auth.password import hash_password, verify_password
from promptdex.auth.principal import ROLE_USER, Principal, Provider
from promptdex.auth.store import UserStore
from promptdex.db.models import User

logger = structlog.get_logger()

USERNAME_TAKEN = "Username is already taken"
EMAIL_TAKEN = "Email is already in use"


class AccountService:
    """Local-credential accounts."""

    def __init__(self, db: AsyncSession):
        self.store = UserStore(db)

    async def register(self, username: str, email: str, password: str) -> Principal:
        """Create a LOCAL account with role USER.

        A duplicate username or email raises RegistrationConflict and
        leaves the store untouched, whether we catch it up front or the
        UNIQUE constraint catches it at commit.
        """
        if await self.store.username_exists(username):
            raise RegistrationConflict(USERNAME_TAKEN)
        if await self.store.email_exists(email):
            raise RegistrationConflict(EMAIL_TAKEN)

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            provider=Provider.LOCAL.value,
            roles=[ROLE_USER],
        )
        try:
            await self.store.insert(user)
        except IntegrityError:
            # Raced with another registration between check and commit.
            if await self.store.username_exists(username):
                raise RegistrationConflict(USERNAME_TAKEN)
            raise RegistrationConflict(EMAIL_TAKEN)

        logger.info("auth.user_registered", user_id=str(user.id), username=username)
        return Principal.from_user(user)

    async def authenticate(self, identifier: str, password: str) -> Principal:
        """Check a username-or-email and password.

        Unknown account, federated account without a password, and wrong
        password are indistinguishable to the caller.
        """
        user = await self.store.find_by_login(identifier)
        # Always run the password check so every failure costs the same.
        password_hash = user.password_hash if user is not None else None
        if not verify_password(password, password_hash) or user is None:
            logger.info("auth.login_failed")
            raise CredentialError()

        logger.info("auth.login_succeeded", user_id=str(user.id))
        return Principal.from_user(user)

    # ─── Roles (operator only) ───────────────────────────────

    async def grant_role(self, username: str, role: str) -> Principal:
        user = await self._require(username)
        role = role.upper()
        if role not in user.roles:
            # Reassign so the JSON column is seen as changed.
            user.roles = [*user.roles, role]
            await self.store.db.commit()
            logger.info("auth.role_granted", user_id=str(user.id), role=role)
        return Principal.from_user(user)

    async def revoke_role(self, username: str, role: str) -> Principal:
        user = await self._require(username)
        role = role.upper()
        if role in user.roles:
            remaining = [r for r in user.roles if r != role]
            if not remaining:
                raise ValueError(f"Cannot remove the last role of {username!r}")
            user.roles = remaining
            await self.store.db.commit()
            logger.info("auth.role_revoked", user_id=str(user.id), role=role)
        return Principal.from_user(user)

    async def _require(self, username: str) -> User:
        user = await self.store.find_by_username(username)
        if user is None:
            raise LookupError(f"No account named {username!r}")
        return user
