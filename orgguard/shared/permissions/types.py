"""Types exchanged between the permission core and its collaborators.

The core reads principals and sessions from the external auth service and
memberships from the membership store. It never writes any of them.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol

from pydantic import BaseModel, Field

from .models import AppRole, OrganizationRole


class Principal(BaseModel):
    """The authenticated actor of a request."""

    id: str
    name: str
    email: str
    role: AppRole = AppRole.user
    banned: bool = False
    ban_reason: Optional[str] = None
    ban_expires: Optional[datetime] = None

    def is_banned(self, now: Optional[datetime] = None) -> bool:
        """A ban whose expiry has passed no longer counts."""
        if not self.banned:
            return False
        if self.ban_expires is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.ban_expires
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires > now

    @classmethod
    def from_prisma(cls, user: Any) -> "Principal":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role or AppRole.user,
            banned=bool(user.banned),
            ban_reason=getattr(user, "banReason", None),
            ban_expires=getattr(user, "banExpires", None),
        )


class Session(BaseModel):
    id: str
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    active_organization_id: Optional[str] = None


class AuthenticatedSession(BaseModel):
    principal: Principal
    session: Session


class Membership(BaseModel):
    """Associates a user with an organization at an organization role."""

    id: Optional[str] = None
    organization_id: str
    user_id: str
    role: OrganizationRole = OrganizationRole.member
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_prisma(cls, member: Any) -> "Membership":
        return cls(
            id=member.id,
            organization_id=member.organizationId,
            user_id=member.userId,
            role=member.role or OrganizationRole.member,
            created_at=member.createdAt,
            updated_at=member.updatedAt,
        )


class MembershipStore(Protocol):
    """Read side of the membership store used by the guards."""

    async def find_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[Membership]: ...

    async def list_memberships_for_user(self, user_id: str) -> list[Membership]: ...

    async def list_members_for_organization(
        self, organization_id: str
    ) -> list[Membership]: ...


class PrincipalResolver(Protocol):
    """Boundary to the external authentication service."""

    async def get_session(
        self, headers: Mapping[str, str]
    ) -> Optional[AuthenticatedSession]: ...

    async def is_system_admin(self, principal: Principal) -> bool: ...
