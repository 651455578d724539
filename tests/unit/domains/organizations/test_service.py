"""
Tests for organization and invitation services in
orgguard/domains/organizations/service.py

Covers the business rules layered over the store: organization limits,
last-owner protection, self-removal and the invitation lifecycle.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, get_type_hints
from unittest.mock import patch

import pytest

from orgguard.core.settings import settings
from orgguard.domains.auth.store import InMemoryUserStore
from orgguard.domains.organizations.models import (
    Invitation,
    InviteMemberRequest,
    OrganizationCreate,
    OrganizationUpdate,
    TeamCreate,
)
from orgguard.domains.organizations.service import (
    InvitationService,
    OrganizationService,
    acting_organization_role,
)
from orgguard.domains.organizations.store import InMemoryOrganizationStore
from orgguard.shared.exceptions import (
    DuplicateInvitationError,
    DuplicateMembershipError,
    ForbiddenError,
    InvitationExpiredError,
    InvitationNotFoundError,
    LastOwnerError,
    MemberNotFoundError,
    OrganizationLimitError,
    OrganizationNotFoundError,
    OwnerRoleProtectedError,
    SelfActionError,
    TeamNotFoundError,
)
from orgguard.shared.permissions import OrganizationRole, Principal
from tests.utils.permission_testing import make_context


@pytest.fixture
def organization_service(
    organization_store: InMemoryOrganizationStore, user_store: InMemoryUserStore
) -> OrganizationService:
    return OrganizationService(organization_store, user_store)


@pytest.fixture
def invitation_service(
    organization_store: InMemoryOrganizationStore,
) -> InvitationService:
    return InvitationService(organization_store)


class TestActingOrganizationRole:
    def test_cached_role_is_used(self, user_principal: Principal):
        context = make_context(user_principal)
        context.organization_role = OrganizationRole.admin
        assert acting_organization_role(context) == OrganizationRole.admin

    def test_system_admin_acts_as_owner(self, admin_principal: Principal):
        context = make_context(admin_principal)
        assert acting_organization_role(context) == OrganizationRole.owner

    def test_banned_admin_has_no_authority(self, banned_admin_principal: Principal):
        context = make_context(banned_admin_principal)
        assert acting_organization_role(context) is None

    def test_plain_user_without_membership(self, user_principal: Principal):
        assert acting_organization_role(make_context(user_principal)) is None


class TestOrganizationService:
    """Test OrganizationService for organization management."""

    @pytest.mark.asyncio
    async def test_create_organization_makes_creator_owner(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        user_principal: Principal,
    ):
        result = await organization_service.create_organization(
            OrganizationCreate(name="Widgets", slug="widgets"), user_principal
        )

        assert result.role == OrganizationRole.owner
        assert result.organization.slug == "widgets"
        membership = await organization_store.find_membership(
            result.organization.id, user_principal.id
        )
        assert membership.role == OrganizationRole.owner

    @pytest.mark.asyncio
    async def test_create_organization_respects_limit(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        user_principal: Principal,
    ):
        with patch.object(settings, "ORGANIZATION_LIMIT", 1):
            await organization_service.create_organization(
                OrganizationCreate(name="First", slug="first"), user_principal
            )
            with pytest.raises(OrganizationLimitError) as exc_info:
                await organization_service.create_organization(
                    OrganizationCreate(name="Second", slug="second"), user_principal
                )

        assert exc_info.value.status_code == 403
        memberships = await organization_store.list_memberships_for_user(
            user_principal.id
        )
        assert len(memberships) == 1

    @pytest.mark.asyncio
    async def test_list_user_organizations_includes_role(
        self,
        organization_service: OrganizationService,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        result = await organization_service.list_user_organizations(
            org_users[OrganizationRole.admin]
        )

        assert len(result) == 1
        assert result[0].organization.id == seeded_organization.id
        assert result[0].role == OrganizationRole.admin

    @pytest.mark.asyncio
    async def test_get_organization_counts(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
    ):
        await organization_store.create_team(seeded_organization.id, "Platform")

        result = await organization_service.get_organization(
            seeded_organization.id, OrganizationRole.member
        )

        assert result.member_count == 3
        assert result.team_count == 1
        assert result.role == OrganizationRole.member

    @pytest.mark.asyncio
    async def test_get_missing_organization(
        self, organization_service: OrganizationService
    ):
        with pytest.raises(OrganizationNotFoundError):
            await organization_service.get_organization("nope", None)

    @pytest.mark.asyncio
    async def test_update_organization(
        self, organization_service: OrganizationService, seeded_organization
    ):
        result = await organization_service.update_organization(
            seeded_organization.id, OrganizationUpdate(logo="https://x/logo.png")
        )
        assert result.logo == "https://x/logo.png"
        assert result.name == "Acme"

    @pytest.mark.asyncio
    async def test_delete_missing_organization(
        self, organization_service: OrganizationService
    ):
        with pytest.raises(OrganizationNotFoundError):
            await organization_service.delete_organization("nope")

    @pytest.mark.asyncio
    async def test_members_carry_profile_details(
        self, organization_service: OrganizationService, seeded_organization
    ):
        members = await organization_service.get_organization_members(
            seeded_organization.id
        )

        by_user = {m.user_id: m for m in members}
        assert by_user["owner-1"].email == "owner@example.com"
        assert by_user["member-1"].role == OrganizationRole.member
        assert by_user["org-admin-1"].name == "Org Admin"


class TestUpdateMemberRole:
    @pytest.mark.asyncio
    async def test_admin_promotes_member(
        self, organization_service: OrganizationService, seeded_organization
    ):
        result = await organization_service.update_member_role(
            seeded_organization.id,
            "member-1",
            OrganizationRole.admin,
            OrganizationRole.admin,
        )
        assert result.role == OrganizationRole.admin

    @pytest.mark.asyncio
    async def test_last_owner_cannot_be_demoted(
        self, organization_service: OrganizationService, seeded_organization
    ):
        with pytest.raises(LastOwnerError) as exc_info:
            await organization_service.update_member_role(
                seeded_organization.id,
                "owner-1",
                OrganizationRole.admin,
                OrganizationRole.owner,
            )
        assert exc_info.value.detail == "Cannot demote the last owner"

    @pytest.mark.asyncio
    async def test_owner_can_step_down_when_another_owner_exists(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
    ):
        await organization_service.update_member_role(
            seeded_organization.id,
            "org-admin-1",
            OrganizationRole.owner,
            OrganizationRole.owner,
        )

        result = await organization_service.update_member_role(
            seeded_organization.id,
            "owner-1",
            OrganizationRole.member,
            OrganizationRole.owner,
        )

        assert result.role == OrganizationRole.member
        assert await organization_store.count_owners(seeded_organization.id) == 1

    @pytest.mark.asyncio
    async def test_admin_cannot_grant_owner(
        self, organization_service: OrganizationService, seeded_organization
    ):
        with pytest.raises(OwnerRoleProtectedError):
            await organization_service.update_member_role(
                seeded_organization.id,
                "member-1",
                OrganizationRole.owner,
                OrganizationRole.admin,
            )

    @pytest.mark.asyncio
    async def test_missing_member(
        self, organization_service: OrganizationService, seeded_organization
    ):
        with pytest.raises(MemberNotFoundError):
            await organization_service.update_member_role(
                seeded_organization.id,
                "nobody",
                OrganizationRole.admin,
                OrganizationRole.owner,
            )


class TestRemoveMember:
    @pytest.mark.asyncio
    async def test_remove_member(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        await organization_service.remove_member(
            seeded_organization.id, "member-1", org_users[OrganizationRole.admin]
        )
        assert (
            await organization_store.find_membership(seeded_organization.id, "member-1")
            is None
        )

    @pytest.mark.asyncio
    async def test_cannot_remove_yourself(
        self,
        organization_service: OrganizationService,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        admin = org_users[OrganizationRole.admin]
        with pytest.raises(SelfActionError) as exc_info:
            await organization_service.remove_member(
                seeded_organization.id, admin.id, admin
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_remove_last_owner(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        admin_principal: Principal,
    ):
        with pytest.raises(LastOwnerError):
            await organization_service.remove_member(
                seeded_organization.id, "owner-1", admin_principal
            )
        assert await organization_store.count_owners(seeded_organization.id) == 1

    @pytest.mark.asyncio
    async def test_remove_missing_member(
        self,
        organization_service: OrganizationService,
        seeded_organization,
        admin_principal: Principal,
    ):
        with pytest.raises(MemberNotFoundError):
            await organization_service.remove_member(
                seeded_organization.id, "nobody", admin_principal
            )


class TestTeams:
    @pytest.mark.asyncio
    async def test_team_lifecycle(
        self, organization_service: OrganizationService, seeded_organization
    ):
        team = await organization_service.create_team(
            seeded_organization.id, TeamCreate(name="Platform")
        )

        listed = await organization_service.list_teams(seeded_organization.id)
        assert [t.id for t in listed] == [team.id]
        fetched = await organization_service.get_team(seeded_organization.id, team.id)
        assert fetched.name == "Platform"

        await organization_service.delete_team(seeded_organization.id, team.id)
        with pytest.raises(TeamNotFoundError):
            await organization_service.get_team(seeded_organization.id, team.id)

    @pytest.mark.asyncio
    async def test_delete_missing_team(
        self, organization_service: OrganizationService, seeded_organization
    ):
        with pytest.raises(TeamNotFoundError):
            await organization_service.delete_team(seeded_organization.id, "nope")

    @pytest.mark.asyncio
    async def test_team_requires_existing_organization(
        self,
        organization_service: OrganizationService,
        organization_store: InMemoryOrganizationStore,
    ):
        with pytest.raises(OrganizationNotFoundError):
            await organization_service.create_team("nope", TeamCreate(name="Ghost"))
        assert await organization_store.list_teams("nope") == []


class TestInvitationService:
    """Test the invitation lifecycle."""

    @pytest.mark.asyncio
    async def test_invite_then_accept(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        user_store: InMemoryUserStore,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
        user_principal: Principal,
    ):
        invitation = await invitation_service.invite_member(
            seeded_organization.id,
            InviteMemberRequest(email="User@Example.com", role="admin"),
            org_users[OrganizationRole.owner],
            user_store,
        )
        assert invitation.email == "user@example.com"
        assert invitation.role == OrganizationRole.admin

        pending = await invitation_service.list_principal_invitations(user_principal)
        assert [i.id for i in pending] == [invitation.id]

        membership = await invitation_service.accept_invitation(
            invitation.id, user_principal
        )

        assert membership.role == OrganizationRole.admin
        assert membership.organization_id == seeded_organization.id
        assert await organization_store.get_invitation(invitation.id) is None

    @pytest.mark.asyncio
    async def test_invitation_expiry_uses_setting(
        self,
        invitation_service: InvitationService,
        user_store: InMemoryUserStore,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        before = datetime.now(timezone.utc)
        invitation = await invitation_service.invite_member(
            seeded_organization.id,
            InviteMemberRequest(email="new@example.com"),
            org_users[OrganizationRole.owner],
            user_store,
        )

        expires_at = datetime.fromisoformat(invitation.expires_at)
        expected = before + timedelta(days=settings.INVITATION_EXPIRES_IN_DAYS)
        assert abs((expires_at - expected).total_seconds()) < 60

    @pytest.mark.asyncio
    async def test_existing_member_cannot_be_invited(
        self,
        invitation_service: InvitationService,
        user_store: InMemoryUserStore,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        with pytest.raises(DuplicateMembershipError):
            await invitation_service.invite_member(
                seeded_organization.id,
                InviteMemberRequest(email="MEMBER@example.com"),
                org_users[OrganizationRole.owner],
                user_store,
            )

    @pytest.mark.asyncio
    async def test_invitation_requires_existing_organization(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        user_store: InMemoryUserStore,
        admin_principal: Principal,
    ):
        with pytest.raises(OrganizationNotFoundError):
            await invitation_service.invite_member(
                "nope",
                InviteMemberRequest(email="user@example.com"),
                admin_principal,
                user_store,
            )
        assert (
            await organization_store.list_invitations_for_email("user@example.com")
            == []
        )

    @pytest.mark.asyncio
    async def test_duplicate_pending_invitation(
        self,
        invitation_service: InvitationService,
        user_store: InMemoryUserStore,
        seeded_organization,
        org_users: Dict[OrganizationRole, Principal],
    ):
        owner = org_users[OrganizationRole.owner]
        request = InviteMemberRequest(email="new@example.com")
        await invitation_service.invite_member(
            seeded_organization.id, request, owner, user_store
        )
        with pytest.raises(DuplicateInvitationError):
            await invitation_service.invite_member(
                seeded_organization.id, request, owner, user_store
            )

    @pytest.mark.asyncio
    async def test_expired_invitation_is_discarded_on_accept(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        user_principal: Principal,
    ):
        invitation = await organization_store.create_invitation(
            seeded_organization.id,
            user_principal.email,
            OrganizationRole.member,
            "owner-1",
            datetime.now(timezone.utc) - timedelta(minutes=1),
        )

        assert await invitation_service.list_principal_invitations(user_principal) == []

        with pytest.raises(InvitationExpiredError) as exc_info:
            await invitation_service.accept_invitation(invitation.id, user_principal)
        assert exc_info.value.status_code == 410

        with pytest.raises(InvitationNotFoundError):
            await invitation_service.accept_invitation(invitation.id, user_principal)
        assert (
            await organization_store.find_membership(
                seeded_organization.id, user_principal.id
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_invitation_for_another_email(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        user_principal: Principal,
        other_principal: Principal,
    ):
        invitation = await organization_store.create_invitation(
            seeded_organization.id,
            user_principal.email,
            OrganizationRole.member,
            "owner-1",
            datetime.now(timezone.utc) + timedelta(days=1),
        )

        with pytest.raises(ForbiddenError):
            await invitation_service.accept_invitation(invitation.id, other_principal)
        with pytest.raises(ForbiddenError):
            await invitation_service.reject_invitation(invitation.id, other_principal)
        assert await organization_store.get_invitation(invitation.id) is not None

    @pytest.mark.asyncio
    async def test_addressed_invitation_ignores_email_case(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        user_principal: Principal,
    ):
        created = await organization_store.create_invitation(
            seeded_organization.id,
            user_principal.email,
            OrganizationRole.member,
            "owner-1",
            datetime.now(timezone.utc) + timedelta(days=1),
        )
        shouting = user_principal.model_copy(
            update={"email": user_principal.email.upper()}
        )

        invitation = await invitation_service._get_addressed_invitation(
            created.id, shouting
        )

        assert invitation == created
        hints = get_type_hints(InvitationService._get_addressed_invitation)
        assert hints["return"] is Invitation

    @pytest.mark.asyncio
    async def test_reject_invitation(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
        user_principal: Principal,
    ):
        invitation = await organization_store.create_invitation(
            seeded_organization.id,
            user_principal.email,
            OrganizationRole.member,
            "owner-1",
            datetime.now(timezone.utc) + timedelta(days=1),
        )

        await invitation_service.reject_invitation(invitation.id, user_principal)

        assert await organization_store.get_invitation(invitation.id) is None
        assert (
            await organization_store.find_membership(
                seeded_organization.id, user_principal.id
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_cancel_invitation_from_another_organization(
        self,
        invitation_service: InvitationService,
        organization_store: InMemoryOrganizationStore,
        seeded_organization,
    ):
        invitation = await organization_store.create_invitation(
            seeded_organization.id,
            "new@example.com",
            OrganizationRole.member,
            "owner-1",
            datetime.now(timezone.utc) + timedelta(days=1),
        )

        with pytest.raises(InvitationNotFoundError):
            await invitation_service.cancel_invitation("other-org", invitation.id)

        await invitation_service.cancel_invitation(
            seeded_organization.id, invitation.id
        )
        assert (
            await invitation_service.list_organization_invitations(
                seeded_organization.id
            )
            == []
        )
