"""Identity store — account lookups and inserts.

Learn: Lookups return None instead of raising, so callers branch on an
explicit outcome. insert() is the one place a uniqueness violation can
surface; it rolls the session back before re-raising so the caller can
retry with a fresh row.
"""

import uuid
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex.db.models import User


class UserStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def find_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.username == username)
        )
        return result.scalars().first()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def find_by_login(self, identifier: str) -> Optional[User]:
        """Username first, then email — the login form accepts either."""
        user = await self.find_by_username(identifier)
        if user is None:
            user = await self.find_by_email(identifier)
        return user

    async def username_exists(self, username: str) -> bool:
        result = await self.db.execute(
            select(exists().where(User.username == username))
        )
        return bool(result.scalar())

    async def email_exists(self, email: str) -> bool:
        result = await self.db.execute(select(exists().where(User.email == email)))
        return bool(result.scalar())

    async def insert(self, user: User) -> User:
        """Persist a new account and commit.

        Raises IntegrityError (after rolling back) when the username or
        email is already taken.
        """
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return user
