"""Persistence for organizations, memberships, invitations and teams.

The permission guards only use the read side declared by MembershipStore.
Uniqueness (one membership per user and organization, one invitation per
email and organization, unique slugs), the owner-role rule and the last-owner
rule are enforced here so that every caller goes through them.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Protocol

from prisma.errors import UniqueViolationError

from orgguard.shared.exceptions import (
    DuplicateInvitationError,
    DuplicateMembershipError,
    LastOwnerError,
    MemberNotFoundError,
    OwnerRoleProtectedError,
    SlugTakenError,
)
from orgguard.shared.permissions.models import OrganizationRole
from orgguard.shared.permissions.types import Membership, MembershipStore

from .models import Invitation, Organization, Team

if TYPE_CHECKING:
    from prisma import Prisma


def ensure_role_change_allowed(
    current_role: OrganizationRole,
    new_role: OrganizationRole,
    acting_role: Optional[OrganizationRole],
) -> None:
    """
    Only an owner may change an owner's role or hand out the owner role.

    Raises:
        OwnerRoleProtectedError: If the acting role is not owner
    """
    if acting_role == OrganizationRole.owner:
        return
    if current_role == OrganizationRole.owner or new_role == OrganizationRole.owner:
        raise OwnerRoleProtectedError()


def ensure_owner_remains(
    current_role: OrganizationRole,
    new_role: Optional[OrganizationRole],
    owner_count: int,
    message: str,
) -> None:
    """
    Refuse a change that takes the owner role from the only owner.

    A new_role of None means the membership is being removed.

    Raises:
        LastOwnerError: If the member is the organization's only owner
    """
    if current_role != OrganizationRole.owner or new_role == OrganizationRole.owner:
        return
    if owner_count <= 1:
        raise LastOwnerError(message)


class OrganizationStore(MembershipStore, Protocol):
    # Organizations
    async def create_organization(
        self,
        name: str,
        slug: str,
        creator_id: str,
        logo: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Organization: ...

    async def get_organization(
        self, organization_id: str
    ) -> Optional[Organization]: ...

    async def list_organizations(
        self,
        organization_ids: Optional[list[str]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Organization]: ...

    async def count_organizations(self, search: Optional[str] = None) -> int: ...

    async def update_organization(
        self, organization_id: str, data: dict[str, Any]
    ) -> Optional[Organization]: ...

    async def delete_organization(self, organization_id: str) -> bool: ...

    # Memberships
    async def add_membership(
        self, organization_id: str, user_id: str, role: OrganizationRole
    ) -> Membership: ...

    async def update_membership_role(
        self,
        organization_id: str,
        user_id: str,
        role: OrganizationRole,
        acting_role: Optional[OrganizationRole],
    ) -> Membership: ...

    async def remove_membership(self, organization_id: str, user_id: str) -> bool: ...

    async def count_owners(self, organization_id: str) -> int: ...

    async def remove_user(self, user_id: str) -> None: ...

    # Invitations
    async def create_invitation(
        self,
        organization_id: str,
        email: str,
        role: OrganizationRole,
        inviter_id: str,
        expires_at: datetime,
    ) -> Invitation: ...

    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]: ...

    async def list_invitations_for_organization(
        self, organization_id: str
    ) -> list[Invitation]: ...

    async def list_invitations_for_email(self, email: str) -> list[Invitation]: ...

    async def delete_invitation(self, invitation_id: str) -> bool: ...

    # Teams
    async def create_team(self, organization_id: str, name: str) -> Team: ...

    async def get_team(self, organization_id: str, team_id: str) -> Optional[Team]: ...

    async def list_teams(self, organization_id: str) -> list[Team]: ...

    async def delete_team(self, organization_id: str, team_id: str) -> bool: ...


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryOrganizationStore:
    """
    Process-local store for development and tests.

    Writes are serialized by a single lock, which makes the uniqueness checks
    atomic with the inserts they guard.
    """

    def __init__(self) -> None:
        self._organizations: dict[str, Organization] = {}
        self._memberships: dict[tuple[str, str], Membership] = {}
        self._invitations: dict[str, Invitation] = {}
        self._teams: dict[str, Team] = {}
        self._lock = asyncio.Lock()

    # Memberships (read side used by the guards)

    async def find_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[Membership]:
        return self._memberships.get((organization_id, user_id))

    async def list_memberships_for_user(self, user_id: str) -> list[Membership]:
        memberships = [m for m in self._memberships.values() if m.user_id == user_id]
        return sorted(memberships, key=lambda m: m.created_at)

    async def list_members_for_organization(
        self, organization_id: str
    ) -> list[Membership]:
        members = [
            m
            for m in self._memberships.values()
            if m.organization_id == organization_id
        ]
        return sorted(members, key=lambda m: m.created_at)

    # Organizations

    async def create_organization(
        self,
        name: str,
        slug: str,
        creator_id: str,
        logo: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Organization:
        async with self._lock:
            if any(org.slug == slug for org in self._organizations.values()):
                raise SlugTakenError()
            organization = Organization(
                id=_new_id(), name=name, slug=slug, logo=logo, metadata=metadata
            )
            self._organizations[organization.id] = organization
            self._memberships[(organization.id, creator_id)] = Membership(
                id=_new_id(),
                organization_id=organization.id,
                user_id=creator_id,
                role=OrganizationRole.owner,
            )
            return organization

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        return self._organizations.get(organization_id)

    def _matching(
        self, organization_ids: Optional[list[str]], search: Optional[str]
    ) -> list[Organization]:
        needle = search.lower() if search else None
        organizations = [
            org
            for org in self._organizations.values()
            if (organization_ids is None or org.id in organization_ids)
            and (
                needle is None
                or needle in org.name.lower()
                or needle in org.slug.lower()
            )
        ]
        return sorted(organizations, key=lambda org: org.created_at)

    async def list_organizations(
        self,
        organization_ids: Optional[list[str]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Organization]:
        organizations = self._matching(organization_ids, search)
        if take is None:
            return organizations[skip:]
        return organizations[skip : skip + take]

    async def count_organizations(self, search: Optional[str] = None) -> int:
        return len(self._matching(None, search))

    async def update_organization(
        self, organization_id: str, data: dict[str, Any]
    ) -> Optional[Organization]:
        async with self._lock:
            organization = self._organizations.get(organization_id)
            if organization is None:
                return None
            updated = organization.model_copy(update=data)
            self._organizations[organization_id] = updated
            return updated

    async def delete_organization(self, organization_id: str) -> bool:
        async with self._lock:
            if self._organizations.pop(organization_id, None) is None:
                return False
            # Memberships, invitations and teams belong to the organization
            for key in [k for k in self._memberships if k[0] == organization_id]:
                del self._memberships[key]
            for invitation_id in [
                i.id
                for i in self._invitations.values()
                if i.organization_id == organization_id
            ]:
                del self._invitations[invitation_id]
            for team_id in [
                t.id
                for t in self._teams.values()
                if t.organization_id == organization_id
            ]:
                del self._teams[team_id]
            return True

    # Memberships

    async def add_membership(
        self, organization_id: str, user_id: str, role: OrganizationRole
    ) -> Membership:
        async with self._lock:
            if (organization_id, user_id) in self._memberships:
                raise DuplicateMembershipError()
            membership = Membership(
                id=_new_id(),
                organization_id=organization_id,
                user_id=user_id,
                role=role,
            )
            self._memberships[(organization_id, user_id)] = membership
            return membership

    async def update_membership_role(
        self,
        organization_id: str,
        user_id: str,
        role: OrganizationRole,
        acting_role: Optional[OrganizationRole],
    ) -> Membership:
        async with self._lock:
            membership = self._memberships.get((organization_id, user_id))
            if membership is None:
                raise MemberNotFoundError()
            ensure_role_change_allowed(membership.role, role, acting_role)
            ensure_owner_remains(
                membership.role,
                role,
                await self.count_owners(organization_id),
                "Cannot demote the last owner",
            )
            updated = membership.model_copy(
                update={"role": role, "updated_at": datetime.now(timezone.utc)}
            )
            self._memberships[(organization_id, user_id)] = updated
            return updated

    async def remove_membership(self, organization_id: str, user_id: str) -> bool:
        async with self._lock:
            membership = self._memberships.get((organization_id, user_id))
            if membership is None:
                return False
            ensure_owner_remains(
                membership.role,
                None,
                await self.count_owners(organization_id),
                "Cannot remove the last owner",
            )
            del self._memberships[(organization_id, user_id)]
            return True

    async def count_owners(self, organization_id: str) -> int:
        return sum(
            1
            for m in self._memberships.values()
            if m.organization_id == organization_id
            and m.role == OrganizationRole.owner
        )

    async def remove_user(self, user_id: str) -> None:
        async with self._lock:
            for key in [k for k in self._memberships if k[1] == user_id]:
                del self._memberships[key]
            for invitation_id in [
                i.id for i in self._invitations.values() if i.inviter_id == user_id
            ]:
                del self._invitations[invitation_id]

    # Invitations

    async def create_invitation(
        self,
        organization_id: str,
        email: str,
        role: OrganizationRole,
        inviter_id: str,
        expires_at: datetime,
    ) -> Invitation:
        email = email.lower()
        async with self._lock:
            if any(
                i.organization_id == organization_id and i.email == email
                for i in self._invitations.values()
            ):
                raise DuplicateInvitationError()
            invitation = Invitation(
                id=_new_id(),
                organization_id=organization_id,
                email=email,
                role=role,
                inviter_id=inviter_id,
                expires_at=expires_at,
            )
            self._invitations[invitation.id] = invitation
            return invitation

    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        return self._invitations.get(invitation_id)

    async def list_invitations_for_organization(
        self, organization_id: str
    ) -> list[Invitation]:
        return [
            i
            for i in self._invitations.values()
            if i.organization_id == organization_id
        ]

    async def list_invitations_for_email(self, email: str) -> list[Invitation]:
        email = email.lower()
        return [i for i in self._invitations.values() if i.email == email]

    async def delete_invitation(self, invitation_id: str) -> bool:
        async with self._lock:
            return self._invitations.pop(invitation_id, None) is not None

    # Teams

    async def create_team(self, organization_id: str, name: str) -> Team:
        async with self._lock:
            team = Team(id=_new_id(), organization_id=organization_id, name=name)
            self._teams[team.id] = team
            return team

    async def get_team(self, organization_id: str, team_id: str) -> Optional[Team]:
        team = self._teams.get(team_id)
        if team is None or team.organization_id != organization_id:
            return None
        return team

    async def list_teams(self, organization_id: str) -> list[Team]:
        teams = [
            t for t in self._teams.values() if t.organization_id == organization_id
        ]
        return sorted(teams, key=lambda t: t.created_at)

    async def delete_team(self, organization_id: str, team_id: str) -> bool:
        async with self._lock:
            team = self._teams.get(team_id)
            if team is None or team.organization_id != organization_id:
                return False
            del self._teams[team_id]
            return True


class PrismaOrganizationStore:
    """
    Store over the organization tables; cascades are declared in the schema.

    The unique indexes are the enforcement of uniqueness. A write that loses a
    race against a concurrent insert is reported with the same domain error a
    sequential duplicate would get.
    """

    def __init__(self, db: "Prisma") -> None:
        self.db = db

    @staticmethod
    async def _lock_owner_rows(tx: Any, organization_id: str) -> int:
        # Row locks serialize concurrent demotions and removals of owners
        owners = await tx.query_raw(
            'SELECT "id" FROM "organization_member" '
            'WHERE "organizationId" = $1 AND "role" = $2 FOR UPDATE',
            organization_id,
            OrganizationRole.owner.value,
        )
        return len(owners)

    async def find_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[Membership]:
        member = await self.db.organizationmember.find_unique(
            where={
                "organizationId_userId": {
                    "organizationId": organization_id,
                    "userId": user_id,
                }
            }
        )
        return Membership.from_prisma(member) if member else None

    async def list_memberships_for_user(self, user_id: str) -> list[Membership]:
        members = await self.db.organizationmember.find_many(
            where={"userId": user_id}, order={"createdAt": "asc"}
        )
        return [Membership.from_prisma(member) for member in members]

    async def list_members_for_organization(
        self, organization_id: str
    ) -> list[Membership]:
        members = await self.db.organizationmember.find_many(
            where={"organizationId": organization_id}, order={"createdAt": "asc"}
        )
        return [Membership.from_prisma(member) for member in members]

    async def create_organization(
        self,
        name: str,
        slug: str,
        creator_id: str,
        logo: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Organization:
        data: dict[str, Any] = {"name": name, "slug": slug, "logo": logo}
        if metadata is not None:
            from prisma import Json

            data["metadata"] = Json(metadata)

        try:
            async with self.db.tx() as tx:
                organization = await tx.organization.create(data=data)
                await tx.organizationmember.create(
                    data={
                        "organizationId": organization.id,
                        "userId": creator_id,
                        "role": OrganizationRole.owner.value,
                    }
                )
        except UniqueViolationError as e:
            raise SlugTakenError() from e
        return Organization.from_prisma(organization)

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        organization = await self.db.organization.find_unique(
            where={"id": organization_id}
        )
        return Organization.from_prisma(organization) if organization else None

    @staticmethod
    def _where(
        organization_ids: Optional[list[str]], search: Optional[str]
    ) -> dict[str, Any]:
        where: dict[str, Any] = {}
        if organization_ids is not None:
            where["id"] = {"in": organization_ids}
        if search:
            where["OR"] = [
                {"name": {"contains": search, "mode": "insensitive"}},
                {"slug": {"contains": search, "mode": "insensitive"}},
            ]
        return where

    async def list_organizations(
        self,
        organization_ids: Optional[list[str]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> list[Organization]:
        organizations = await self.db.organization.find_many(
            where=self._where(organization_ids, search),
            skip=skip,
            take=take,
            order={"createdAt": "asc"},
        )
        return [Organization.from_prisma(org) for org in organizations]

    async def count_organizations(self, search: Optional[str] = None) -> int:
        return await self.db.organization.count(where=self._where(None, search))

    async def update_organization(
        self, organization_id: str, data: dict[str, Any]
    ) -> Optional[Organization]:
        if not await self.db.organization.find_unique(where={"id": organization_id}):
            return None
        data = dict(data)
        if data.get("metadata") is not None:
            from prisma import Json

            data["metadata"] = Json(data["metadata"])
        organization = await self.db.organization.update(
            where={"id": organization_id}, data=data
        )
        return Organization.from_prisma(organization) if organization else None

    async def delete_organization(self, organization_id: str) -> bool:
        if not await self.db.organization.find_unique(where={"id": organization_id}):
            return False
        await self.db.organization.delete(where={"id": organization_id})
        return True

    async def add_membership(
        self, organization_id: str, user_id: str, role: OrganizationRole
    ) -> Membership:
        try:
            member = await self.db.organizationmember.create(
                data={
                    "organizationId": organization_id,
                    "userId": user_id,
                    "role": role.value,
                }
            )
        except UniqueViolationError as e:
            raise DuplicateMembershipError() from e
        return Membership.from_prisma(member)

    async def update_membership_role(
        self,
        organization_id: str,
        user_id: str,
        role: OrganizationRole,
        acting_role: Optional[OrganizationRole],
    ) -> Membership:
        async with self.db.tx() as tx:
            owner_count = await self._lock_owner_rows(tx, organization_id)
            member = await tx.organizationmember.find_unique(
                where={
                    "organizationId_userId": {
                        "organizationId": organization_id,
                        "userId": user_id,
                    }
                }
            )
            if member is None:
                raise MemberNotFoundError()
            current_role = OrganizationRole(member.role)
            ensure_role_change_allowed(current_role, role, acting_role)
            ensure_owner_remains(
                current_role, role, owner_count, "Cannot demote the last owner"
            )
            member = await tx.organizationmember.update(
                where={"id": member.id}, data={"role": role.value}
            )
        if not member:
            raise MemberNotFoundError()
        return Membership.from_prisma(member)

    async def remove_membership(self, organization_id: str, user_id: str) -> bool:
        async with self.db.tx() as tx:
            owner_count = await self._lock_owner_rows(tx, organization_id)
            member = await tx.organizationmember.find_unique(
                where={
                    "organizationId_userId": {
                        "organizationId": organization_id,
                        "userId": user_id,
                    }
                }
            )
            if member is None:
                return False
            ensure_owner_remains(
                OrganizationRole(member.role),
                None,
                owner_count,
                "Cannot remove the last owner",
            )
            await tx.organizationmember.delete(where={"id": member.id})
        return True

    async def count_owners(self, organization_id: str) -> int:
        return await self.db.organizationmember.count(
            where={
                "organizationId": organization_id,
                "role": OrganizationRole.owner.value,
            }
        )

    async def remove_user(self, user_id: str) -> None:
        await self.db.organizationmember.delete_many(where={"userId": user_id})
        await self.db.invitation.delete_many(where={"inviterId": user_id})

    async def create_invitation(
        self,
        organization_id: str,
        email: str,
        role: OrganizationRole,
        inviter_id: str,
        expires_at: datetime,
    ) -> Invitation:
        try:
            invitation = await self.db.invitation.create(
                data={
                    "organizationId": organization_id,
                    "email": email.lower(),
                    "role": role.value,
                    "inviterId": inviter_id,
                    "expiresAt": expires_at,
                }
            )
        except UniqueViolationError as e:
            raise DuplicateInvitationError() from e
        return Invitation.from_prisma(invitation)

    async def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        invitation = await self.db.invitation.find_unique(where={"id": invitation_id})
        return Invitation.from_prisma(invitation) if invitation else None

    async def list_invitations_for_organization(
        self, organization_id: str
    ) -> list[Invitation]:
        invitations = await self.db.invitation.find_many(
            where={"organizationId": organization_id}, order={"createdAt": "asc"}
        )
        return [Invitation.from_prisma(i) for i in invitations]

    async def list_invitations_for_email(self, email: str) -> list[Invitation]:
        invitations = await self.db.invitation.find_many(
            where={"email": email.lower()}, order={"createdAt": "asc"}
        )
        return [Invitation.from_prisma(i) for i in invitations]

    async def delete_invitation(self, invitation_id: str) -> bool:
        deleted = await self.db.invitation.delete_many(where={"id": invitation_id})
        return deleted > 0

    async def create_team(self, organization_id: str, name: str) -> Team:
        team = await self.db.team.create(
            data={"organizationId": organization_id, "name": name}
        )
        return Team.from_prisma(team)

    async def get_team(self, organization_id: str, team_id: str) -> Optional[Team]:
        team = await self.db.team.find_first(
            where={"id": team_id, "organizationId": organization_id}
        )
        return Team.from_prisma(team) if team else None

    async def list_teams(self, organization_id: str) -> list[Team]:
        teams = await self.db.team.find_many(
            where={"organizationId": organization_id}, order={"createdAt": "asc"}
        )
        return [Team.from_prisma(team) for team in teams]

    async def delete_team(self, organization_id: str, team_id: str) -> bool:
        deleted = await self.db.team.delete_many(
            where={"id": team_id, "organizationId": organization_id}
        )
        return deleted > 0
