"""User persistence owned by the external auth service.

The permission core only reads principals. The admin routes use the write
operations to manage roles, bans and deletion, and /me lets a user edit
their own name and email.
"""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional, Protocol

from prisma.errors import UniqueViolationError

from orgguard.shared.exceptions import EmailTakenError
from orgguard.shared.permissions.models import AppRole
from orgguard.shared.permissions.types import Principal

if TYPE_CHECKING:
    from prisma import Prisma


class UserStore(Protocol):
    async def get_user(self, user_id: str) -> Optional[Principal]: ...

    async def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Principal]: ...

    async def count_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
    ) -> int: ...

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[Principal]: ...

    async def set_role(self, user_id: str, role: AppRole) -> Optional[Principal]: ...

    async def set_ban(
        self,
        user_id: str,
        banned: bool,
        reason: Optional[str] = None,
        expires: Optional[datetime] = None,
    ) -> Optional[Principal]: ...

    async def delete_user(self, user_id: str) -> bool: ...


class InMemoryUserStore:
    """Process-local user store for development and tests."""

    def __init__(self, users: Optional[list[Principal]] = None) -> None:
        self._users: dict[str, Principal] = {user.id: user for user in users or []}
        self._lock = asyncio.Lock()

    async def add_user(self, user: Principal) -> Principal:
        async with self._lock:
            self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[Principal]:
        return self._users.get(user_id)

    def _matching(
        self,
        search: Optional[str],
        role: Optional[AppRole],
        banned: Optional[bool],
    ) -> list[Principal]:
        users = sorted(self._users.values(), key=lambda user: user.email)
        if search:
            needle = search.lower()
            users = [
                u
                for u in users
                if needle in u.name.lower() or needle in u.email.lower()
            ]
        if role is not None:
            users = [u for u in users if u.role == role]
        if banned is not None:
            users = [u for u in users if u.banned == banned]
        return users

    async def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Principal]:
        users = self._matching(search, role, banned)
        return users[skip:] if take is None else users[skip : skip + take]

    async def count_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
    ) -> int:
        return len(self._matching(search, role, banned))

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[Principal]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updates: dict[str, Any] = {}
            if name is not None:
                updates["name"] = name
            if email is not None:
                if any(
                    u.email.lower() == email.lower() and u.id != user_id
                    for u in self._users.values()
                ):
                    raise EmailTakenError()
                updates["email"] = email
            updated = user.model_copy(update=updates)
            self._users[user_id] = updated
            return updated

    async def set_role(self, user_id: str, role: AppRole) -> Optional[Principal]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = user.model_copy(update={"role": role})
            self._users[user_id] = updated
            return updated

    async def set_ban(
        self,
        user_id: str,
        banned: bool,
        reason: Optional[str] = None,
        expires: Optional[datetime] = None,
    ) -> Optional[Principal]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = user.model_copy(
                update={
                    "banned": banned,
                    "ban_reason": reason if banned else None,
                    "ban_expires": expires if banned else None,
                }
            )
            self._users[user_id] = updated
            return updated

    async def delete_user(self, user_id: str) -> bool:
        async with self._lock:
            return self._users.pop(user_id, None) is not None


class PrismaUserStore:
    """User store over the auth service's `user` table."""

    def __init__(self, db: "Prisma") -> None:
        self.db = db

    async def get_user(self, user_id: str) -> Optional[Principal]:
        user = await self.db.user.find_unique(where={"id": user_id})
        return Principal.from_prisma(user) if user else None

    @staticmethod
    def _where(
        search: Optional[str],
        role: Optional[AppRole],
        banned: Optional[bool],
    ) -> dict[str, Any]:
        where: dict[str, Any] = {}
        if search:
            where["OR"] = [
                {"name": {"contains": search, "mode": "insensitive"}},
                {"email": {"contains": search, "mode": "insensitive"}},
            ]
        if role is not None:
            where["role"] = role.value
        if banned is not None:
            where["banned"] = banned
        return where

    async def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Principal]:
        users = await self.db.user.find_many(
            where=self._where(search, role, banned),
            skip=skip,
            take=take,
            order={"email": "asc"},
        )
        return [Principal.from_prisma(user) for user in users]

    async def count_users(
        self,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
    ) -> int:
        return await self.db.user.count(where=self._where(search, role, banned))

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[Principal]:
        if not await self.db.user.find_unique(where={"id": user_id}):
            return None
        data: dict[str, Any] = {}
        if name is not None:
            data["name"] = name
        if email is not None:
            data["email"] = email
        try:
            user = await self.db.user.update(where={"id": user_id}, data=data)
        except UniqueViolationError as e:
            raise EmailTakenError() from e
        return Principal.from_prisma(user) if user else None

    async def set_role(self, user_id: str, role: AppRole) -> Optional[Principal]:
        if not await self.db.user.find_unique(where={"id": user_id}):
            return None
        user = await self.db.user.update(
            where={"id": user_id}, data={"role": role.value}
        )
        return Principal.from_prisma(user) if user else None

    async def set_ban(
        self,
        user_id: str,
        banned: bool,
        reason: Optional[str] = None,
        expires: Optional[datetime] = None,
    ) -> Optional[Principal]:
        if not await self.db.user.find_unique(where={"id": user_id}):
            return None
        user = await self.db.user.update(
            where={"id": user_id},
            data={
                "banned": banned,
                "banReason": reason if banned else None,
                "banExpires": expires if banned else None,
            },
        )
        return Principal.from_prisma(user) if user else None

    async def delete_user(self, user_id: str) -> bool:
        # Memberships, invitations and sessions cascade in the database
        deleted = await self.db.user.delete(where={"id": user_id})
        return deleted is not None
