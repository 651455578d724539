# orgguard/domains/organizations/service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from orgguard.core.settings import settings
from orgguard.domains.auth.store import UserStore
from orgguard.shared.exceptions import (
    DuplicateMembershipError,
    ForbiddenError,
    InvitationExpiredError,
    InvitationNotFoundError,
    MemberNotFoundError,
    OrganizationLimitError,
    OrganizationNotFoundError,
    SelfActionError,
    TeamNotFoundError,
)
from orgguard.shared.permissions import (
    Membership,
    OrganizationRole,
    Principal,
    RequestContext,
    is_system_admin,
)

from .models import (
    Invitation,
    InvitationResponse,
    InviteMemberRequest,
    OrganizationCreate,
    OrganizationDetailResponse,
    OrganizationMemberResponse,
    OrganizationResponse,
    OrganizationUpdate,
    OrganizationWithRoleResponse,
    TeamCreate,
    TeamResponse,
)
from .store import OrganizationStore

logger = logging.getLogger(__name__)


def acting_organization_role(context: RequestContext) -> Optional[OrganizationRole]:
    """
    The authority the principal acts with inside the targeted organization.

    A system admin who passed a guard through the admin bypass has no
    membership and acts with owner authority.
    """
    if context.organization_role is not None:
        return context.organization_role
    if is_system_admin(context.principal):
        return OrganizationRole.owner
    return None


class OrganizationService:
    def __init__(self, store: OrganizationStore, users: UserStore):
        self.store = store
        self.users = users

    async def list_user_organizations(
        self, principal: Principal
    ) -> List[OrganizationWithRoleResponse]:
        """List the organizations the principal belongs to, with their role."""
        memberships = await self.store.list_memberships_for_user(principal.id)
        roles = {m.organization_id: m.role for m in memberships}
        organizations = await self.store.list_organizations(list(roles))
        return [
            OrganizationWithRoleResponse(
                organization=OrganizationResponse.from_organization(org),
                role=roles.get(org.id),
            )
            for org in organizations
        ]

    async def create_organization(
        self, organization_data: OrganizationCreate, principal: Principal
    ) -> OrganizationWithRoleResponse:
        """
        Create a new organization and add the principal as its owner.

        Raises:
            OrganizationLimitError: If the principal already belongs to
                ORGANIZATION_LIMIT organizations
            SlugTakenError: If the slug is in use
        """
        memberships = await self.store.list_memberships_for_user(principal.id)
        if len(memberships) >= settings.ORGANIZATION_LIMIT:
            raise OrganizationLimitError()

        organization = await self.store.create_organization(
            name=organization_data.name,
            slug=organization_data.slug,
            creator_id=principal.id,
            logo=organization_data.logo,
            metadata=organization_data.metadata,
        )
        logger.info(f"User {principal.id} created organization {organization.id}")

        return OrganizationWithRoleResponse(
            organization=OrganizationResponse.from_organization(organization),
            role=OrganizationRole.owner,
        )

    async def get_organization(
        self, organization_id: str, role: Optional[OrganizationRole]
    ) -> OrganizationDetailResponse:
        organization = await self.store.get_organization(organization_id)
        if not organization:
            raise OrganizationNotFoundError()

        members = await self.store.list_members_for_organization(organization_id)
        teams = await self.store.list_teams(organization_id)
        return OrganizationDetailResponse(
            organization=OrganizationResponse.from_organization(organization),
            role=role,
            member_count=len(members),
            team_count=len(teams),
        )

    async def update_organization(
        self, organization_id: str, updates: OrganizationUpdate
    ) -> OrganizationResponse:
        organization = await self.store.update_organization(
            organization_id, updates.model_dump(exclude_unset=True)
        )
        if not organization:
            raise OrganizationNotFoundError()
        return OrganizationResponse.from_organization(organization)

    async def delete_organization(self, organization_id: str) -> None:
        """Delete an organization with its memberships, invitations and teams."""
        if not await self.store.delete_organization(organization_id):
            raise OrganizationNotFoundError()
        logger.info(f"Organization {organization_id} deleted")

    async def get_organization_members(
        self, organization_id: str
    ) -> List[OrganizationMemberResponse]:
        """
        Get all members of an organization with their profile details.

        Args:
            organization_id: The organization ID to get members for

        Returns:
            Members in the order they joined
        """
        members = await self.store.list_members_for_organization(organization_id)
        return [await self._format_member_response(member) for member in members]

    async def update_member_role(
        self,
        organization_id: str,
        user_id: str,
        role: OrganizationRole,
        acting_role: Optional[OrganizationRole],
    ) -> OrganizationMemberResponse:
        """
        Change a member's organization role.

        Raises:
            MemberNotFoundError: If the user is not a member
            OwnerRoleProtectedError: If a non-owner touches the owner role
            LastOwnerError: If the change would leave no owner
        """
        membership = await self.store.find_membership(organization_id, user_id)
        if not membership:
            raise MemberNotFoundError()

        updated = await self.store.update_membership_role(
            organization_id, user_id, role, acting_role
        )
        logger.info(
            f"Role of user {user_id} in organization {organization_id} "
            f"changed from {membership.role.value} to {role.value}"
        )
        return await self._format_member_response(updated)

    async def remove_member(
        self, organization_id: str, user_id: str, requester: Principal
    ) -> None:
        """
        Remove a member from an organization.

        Business rules:
        - Cannot remove yourself from the organization
        - Cannot remove the last owner
        """
        if user_id == requester.id:
            raise SelfActionError("Cannot remove yourself from the organization")

        membership = await self.store.find_membership(organization_id, user_id)
        if not membership:
            raise MemberNotFoundError()

        await self.store.remove_membership(organization_id, user_id)
        logger.info(f"User {user_id} removed from organization {organization_id}")

    async def list_teams(self, organization_id: str) -> List[TeamResponse]:
        teams = await self.store.list_teams(organization_id)
        return [TeamResponse.from_team(team) for team in teams]

    async def create_team(
        self, organization_id: str, team_data: TeamCreate
    ) -> TeamResponse:
        if not await self.store.get_organization(organization_id):
            raise OrganizationNotFoundError()
        team = await self.store.create_team(organization_id, team_data.name)
        return TeamResponse.from_team(team)

    async def get_team(self, organization_id: str, team_id: str) -> TeamResponse:
        team = await self.store.get_team(organization_id, team_id)
        if not team:
            raise TeamNotFoundError()
        return TeamResponse.from_team(team)

    async def delete_team(self, organization_id: str, team_id: str) -> None:
        if not await self.store.delete_team(organization_id, team_id):
            raise TeamNotFoundError()

    async def _format_member_response(
        self, member: Membership
    ) -> OrganizationMemberResponse:
        user = await self.users.get_user(member.user_id)
        return OrganizationMemberResponse(
            id=member.id,
            user_id=member.user_id,
            organization_id=member.organization_id,
            role=member.role,
            name=user.name if user else None,
            email=user.email if user else None,
            joined_at=member.created_at.isoformat() if member.created_at else None,
        )


class InvitationService:
    def __init__(self, store: OrganizationStore):
        self.store = store

    async def invite_member(
        self,
        organization_id: str,
        invitation_data: InviteMemberRequest,
        inviter: Principal,
        users: UserStore,
    ) -> InvitationResponse:
        """
        Invite an email address to join an organization.

        Raises:
            OrganizationNotFoundError: If the organization does not exist
            DuplicateMembershipError: If a user with that email is already a member
            DuplicateInvitationError: If the email already has a pending invitation
        """
        if not await self.store.get_organization(organization_id):
            raise OrganizationNotFoundError()

        email = invitation_data.email.lower()
        for member in await self.store.list_members_for_organization(organization_id):
            user = await users.get_user(member.user_id)
            if user and user.email.lower() == email:
                raise DuplicateMembershipError()

        expires_at = datetime.now(timezone.utc) + timedelta(
            days=settings.INVITATION_EXPIRES_IN_DAYS
        )
        invitation = await self.store.create_invitation(
            organization_id=organization_id,
            email=email,
            role=OrganizationRole(invitation_data.role),
            inviter_id=inviter.id,
            expires_at=expires_at,
        )
        logger.info(
            f"User {inviter.id} invited {email} to organization {organization_id}"
        )
        return InvitationResponse.from_invitation(invitation)

    async def list_organization_invitations(
        self, organization_id: str
    ) -> List[InvitationResponse]:
        invitations = await self.store.list_invitations_for_organization(
            organization_id
        )
        return [InvitationResponse.from_invitation(i) for i in invitations]

    async def cancel_invitation(self, organization_id: str, invitation_id: str) -> None:
        invitation = await self.store.get_invitation(invitation_id)
        if not invitation or invitation.organization_id != organization_id:
            raise InvitationNotFoundError()
        await self.store.delete_invitation(invitation_id)

    async def list_principal_invitations(
        self, principal: Principal
    ) -> List[InvitationResponse]:
        """Pending, unexpired invitations addressed to the principal's email."""
        invitations = await self.store.list_invitations_for_email(principal.email)
        return [
            InvitationResponse.from_invitation(i)
            for i in invitations
            if not i.is_expired()
        ]

    async def accept_invitation(
        self, invitation_id: str, principal: Principal
    ) -> Membership:
        """
        Accept an invitation addressed to the principal.

        An expired invitation is removed, so a second attempt reports it as
        not found rather than expired.

        Raises:
            InvitationNotFoundError: If the invitation does not exist
            ForbiddenError: If the invitation is addressed to another email
            InvitationExpiredError: If the invitation has expired
            DuplicateMembershipError: If the principal is already a member
        """
        invitation = await self._get_addressed_invitation(invitation_id, principal)

        if invitation.is_expired():
            await self.store.delete_invitation(invitation_id)
            logger.info(f"Expired invitation {invitation_id} removed on accept")
            raise InvitationExpiredError()

        membership = await self.store.add_membership(
            invitation.organization_id, principal.id, invitation.role
        )
        await self.store.delete_invitation(invitation_id)
        logger.info(
            f"User {principal.id} joined organization {invitation.organization_id} "
            f"as {invitation.role.value}"
        )
        return membership

    async def reject_invitation(self, invitation_id: str, principal: Principal) -> None:
        await self._get_addressed_invitation(invitation_id, principal)
        await self.store.delete_invitation(invitation_id)

    async def _get_addressed_invitation(
        self, invitation_id: str, principal: Principal
    ) -> Invitation:
        invitation = await self.store.get_invitation(invitation_id)
        if not invitation:
            raise InvitationNotFoundError()
        if invitation.email.lower() != principal.email.lower():
            raise ForbiddenError("Invitation is addressed to another email")
        return invitation
