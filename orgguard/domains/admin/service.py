# orgguard/domains/admin/service.py
import logging
import math
from datetime import datetime, timezone
from typing import Optional

from orgguard.domains.auth.store import UserStore
from orgguard.domains.organizations.models import (
    OrganizationResponse,
    OrganizationWithRoleResponse,
)
from orgguard.domains.organizations.store import OrganizationStore
from orgguard.shared.exceptions import (
    InvalidDataError,
    OrganizationNotFoundError,
    SelfActionError,
    UserNotFoundError,
)
from orgguard.shared.permissions import AppRole, OrganizationRole, Principal

from .models import (
    AdminOrganizationCreate,
    AdminOrganizationListResponse,
    AdminStatsResponse,
    AdminUserListResponse,
    AdminUserResponse,
    AdminUserUpdate,
    BanUserRequest,
    OrganizationStats,
    PaginationMetadata,
    UserStats,
)

logger = logging.getLogger(__name__)


def paginate(page: int, limit: int, total: int) -> PaginationMetadata:
    return PaginationMetadata(
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if total > 0 else 1,
        has_next=page * limit < total,
        has_prev=page > 1,
    )


class AdminService:
    """
    Platform administration of users and organizations.

    Every action is logged with the acting admin's ID.
    """

    def __init__(self, users: UserStore, organizations: OrganizationStore):
        self.users = users
        self.organizations = organizations

    async def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        role: Optional[AppRole] = None,
        banned: Optional[bool] = None,
    ) -> AdminUserListResponse:
        """
        List users one page at a time.

        Args:
            page: Page number (1-based)
            limit: Number of users per page
            search: Case-insensitive match on name or email
            role: Only users with this system role
            banned: Only users whose ban flag is set (or unset)
        """
        users = await self.users.list_users(
            search=search,
            role=role,
            banned=banned,
            skip=(page - 1) * limit,
            take=limit,
        )
        total = await self.users.count_users(search=search, role=role, banned=banned)
        return AdminUserListResponse(
            users=[AdminUserResponse.from_principal(user) for user in users],
            pagination=paginate(page, limit, total),
        )

    async def get_user(self, user_id: str) -> AdminUserResponse:
        user = await self.users.get_user(user_id)
        if not user:
            raise UserNotFoundError()
        return AdminUserResponse.from_principal(user)

    async def update_user(
        self, user_id: str, update: AdminUserUpdate, admin: Principal
    ) -> AdminUserResponse:
        """
        Update a user's name, email and system role.

        Raises:
            UserNotFoundError: If the user does not exist
            EmailTakenError: If another user has the email
        """
        user = await self.users.update_user(
            user_id, name=update.name, email=update.email
        )
        if not user:
            raise UserNotFoundError()
        if update.role is not None:
            user = await self.users.set_role(user_id, update.role)
            if not user:
                raise UserNotFoundError()
        logger.info(
            f"Admin {admin.id} updated user {user_id}: "
            f"{update.model_dump(mode='json', exclude_unset=True)}"
        )
        return AdminUserResponse.from_principal(user)

    async def set_role(
        self, user_id: str, role: AppRole, admin: Principal
    ) -> AdminUserResponse:
        user = await self.users.set_role(user_id, role)
        if not user:
            raise UserNotFoundError()
        logger.info(f"Admin {admin.id} set role of user {user_id} to {role.value}")
        return AdminUserResponse.from_principal(user)

    async def ban_user(
        self, user_id: str, ban: BanUserRequest, admin: Principal
    ) -> AdminUserResponse:
        """
        Ban a user, optionally until a given time.

        Raises:
            SelfActionError: If the admin tries to ban themselves
            InvalidDataError: If the expiry is not in the future
            UserNotFoundError: If the user does not exist
        """
        if user_id == admin.id:
            raise SelfActionError("Cannot ban your own account")

        expires_at = ban.expires_at
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                raise InvalidDataError("Ban expiry must be in the future")

        user = await self.users.set_ban(
            user_id, True, reason=ban.reason, expires=expires_at
        )
        if not user:
            raise UserNotFoundError()
        logger.info(f"Admin {admin.id} banned user {user_id}: {ban.reason}")
        return AdminUserResponse.from_principal(user)

    async def unban_user(self, user_id: str, admin: Principal) -> AdminUserResponse:
        user = await self.users.set_ban(user_id, False)
        if not user:
            raise UserNotFoundError()
        logger.info(f"Admin {admin.id} unbanned user {user_id}")
        return AdminUserResponse.from_principal(user)

    async def delete_user(self, user_id: str, admin: Principal) -> None:
        """
        Delete a user with their memberships and sent invitations.

        Self-deletion is refused regardless of system role.
        """
        if user_id == admin.id:
            raise SelfActionError("Cannot delete your own account")

        if not await self.users.get_user(user_id):
            raise UserNotFoundError()

        await self.organizations.remove_user(user_id)
        await self.users.delete_user(user_id)
        logger.info(f"Admin {admin.id} deleted user {user_id}")

    async def list_organizations(
        self, page: int = 1, limit: int = 20, search: Optional[str] = None
    ) -> AdminOrganizationListResponse:
        organizations = await self.organizations.list_organizations(
            search=search, skip=(page - 1) * limit, take=limit
        )
        total = await self.organizations.count_organizations(search=search)
        return AdminOrganizationListResponse(
            organizations=[
                OrganizationResponse.from_organization(org) for org in organizations
            ],
            pagination=paginate(page, limit, total),
        )

    async def get_organization(self, organization_id: str) -> OrganizationResponse:
        organization = await self.organizations.get_organization(organization_id)
        if not organization:
            raise OrganizationNotFoundError()
        return OrganizationResponse.from_organization(organization)

    async def create_organization(
        self, organization_data: AdminOrganizationCreate, admin: Principal
    ) -> OrganizationWithRoleResponse:
        """Create an organization on behalf of an existing user, who becomes owner."""
        if not await self.users.get_user(organization_data.owner_id):
            raise UserNotFoundError()

        organization = await self.organizations.create_organization(
            name=organization_data.name,
            slug=organization_data.slug,
            creator_id=organization_data.owner_id,
            logo=organization_data.logo,
            metadata=organization_data.metadata,
        )
        logger.info(
            f"Admin {admin.id} created organization {organization.id} "
            f"owned by {organization_data.owner_id}"
        )
        return OrganizationWithRoleResponse(
            organization=OrganizationResponse.from_organization(organization),
            role=OrganizationRole.owner,
        )

    async def delete_organization(self, organization_id: str, admin: Principal) -> None:
        if not await self.organizations.delete_organization(organization_id):
            raise OrganizationNotFoundError()
        logger.info(f"Admin {admin.id} deleted organization {organization_id}")

    async def get_stats(self) -> AdminStatsResponse:
        users = await self.users.list_users()
        organization_count = await self.organizations.count_organizations()
        return AdminStatsResponse(
            users=UserStats(
                total=len(users),
                banned=sum(1 for u in users if u.is_banned()),
                admins=sum(1 for u in users if u.role == AppRole.admin),
            ),
            organizations=OrganizationStats(total=organization_count),
        )
