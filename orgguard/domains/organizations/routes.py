# orgguard/domains/organizations/routes.py
from typing import List

from fastapi import APIRouter, Depends, status

from orgguard.core.database import get_organization_store, get_user_store
from orgguard.domains.auth.store import UserStore
from orgguard.domains.organizations.models import (
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
    UpdateMemberRoleRequest,
)
from orgguard.domains.organizations.service import (
    InvitationService,
    OrganizationService,
    acting_organization_role,
)
from orgguard.domains.organizations.store import OrganizationStore
from orgguard.shared.permissions import (
    Action,
    RequestContext,
    Resource,
    require_auth,
    require_organization_member,
    require_organization_permission,
    require_organization_role,
)

router = APIRouter(prefix="/organizations", tags=["Organizations"])


@router.get(
    "/",
    response_model=List[OrganizationWithRoleResponse],
    operation_id="listOrganizations",
)
async def list_organizations(
    context: RequestContext = Depends(require_auth()),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> List[OrganizationWithRoleResponse]:
    """List the organizations the current user belongs to."""
    service = OrganizationService(store, users)
    return await service.list_user_organizations(context.principal)


@router.post(
    "/",
    response_model=OrganizationWithRoleResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="createOrganization",
)
async def create_organization(
    organization_data: OrganizationCreate,
    context: RequestContext = Depends(require_auth()),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> OrganizationWithRoleResponse:
    """
    Create a new organization and add the current user as owner.

    The slug must be unique, and users already belonging to the configured
    number of organizations cannot create more.
    """
    service = OrganizationService(store, users)
    return await service.create_organization(organization_data, context.principal)


@router.get(
    "/{organization_id}",
    response_model=OrganizationDetailResponse,
    operation_id="getOrganization",
)
async def get_organization(
    organization_id: str,
    context: RequestContext = Depends(require_organization_member()),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> OrganizationDetailResponse:
    service = OrganizationService(store, users)
    return await service.get_organization(organization_id, context.organization_role)


@router.put(
    "/{organization_id}",
    response_model=OrganizationResponse,
    operation_id="updateOrganization",
    dependencies=[
        Depends(require_organization_permission(Resource.ORGANIZATION, Action.UPDATE))
    ],
)
async def update_organization(
    organization_id: str,
    updates: OrganizationUpdate,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> OrganizationResponse:
    service = OrganizationService(store, users)
    return await service.update_organization(organization_id, updates)


@router.delete(
    "/{organization_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="deleteOrganization",
    dependencies=[Depends(require_organization_role("owner"))],
)
async def delete_organization(
    organization_id: str,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> None:
    """Delete an organization. Only its owners may do this."""
    service = OrganizationService(store, users)
    await service.delete_organization(organization_id)


@router.get(
    "/{organization_id}/members",
    response_model=List[OrganizationMemberResponse],
    operation_id="getOrganizationMembers",
    dependencies=[Depends(require_organization_member())],
)
async def get_organization_members(
    organization_id: str,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> List[OrganizationMemberResponse]:
    service = OrganizationService(store, users)
    return await service.get_organization_members(organization_id)


@router.put(
    "/{organization_id}/members/{user_id}",
    response_model=OrganizationMemberResponse,
    operation_id="updateOrganizationMemberRole",
)
async def update_member_role(
    organization_id: str,
    user_id: str,
    updates: UpdateMemberRoleRequest,
    context: RequestContext = Depends(
        require_organization_permission(Resource.MEMBER, Action.UPDATE)
    ),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> OrganizationMemberResponse:
    """
    Change a member's role.

    Business rules:
    - Only owners may change an owner's role or grant the owner role
    - The last owner cannot be demoted
    """
    service = OrganizationService(store, users)
    return await service.update_member_role(
        organization_id, user_id, updates.role, acting_organization_role(context)
    )


@router.delete(
    "/{organization_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="removeOrganizationMember",
)
async def remove_member(
    organization_id: str,
    user_id: str,
    context: RequestContext = Depends(
        require_organization_permission(Resource.MEMBER, Action.DELETE)
    ),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> None:
    """
    Remove a member from the organization.

    Business rules:
    - Cannot remove yourself from the organization
    - Cannot remove the last owner (maintains organization access)
    """
    service = OrganizationService(store, users)
    await service.remove_member(organization_id, user_id, context.principal)


@router.post(
    "/{organization_id}/invite",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="inviteOrganizationMember",
)
async def invite_member(
    organization_id: str,
    invitation_data: InviteMemberRequest,
    context: RequestContext = Depends(
        require_organization_permission(Resource.INVITATION, Action.CREATE)
    ),
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> InvitationResponse:
    service = InvitationService(store)
    return await service.invite_member(
        organization_id, invitation_data, context.principal, users
    )


@router.get(
    "/{organization_id}/invitations",
    response_model=List[InvitationResponse],
    operation_id="getOrganizationInvitations",
    dependencies=[Depends(require_organization_member())],
)
async def get_organization_invitations(
    organization_id: str,
    store: OrganizationStore = Depends(get_organization_store),
) -> List[InvitationResponse]:
    service = InvitationService(store)
    return await service.list_organization_invitations(organization_id)


@router.delete(
    "/{organization_id}/invitations/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="cancelOrganizationInvitation",
    dependencies=[
        Depends(require_organization_permission(Resource.INVITATION, Action.CANCEL))
    ],
)
async def cancel_invitation(
    organization_id: str,
    invitation_id: str,
    store: OrganizationStore = Depends(get_organization_store),
) -> None:
    service = InvitationService(store)
    await service.cancel_invitation(organization_id, invitation_id)


@router.get(
    "/{organization_id}/teams",
    response_model=List[TeamResponse],
    operation_id="getOrganizationTeams",
    dependencies=[Depends(require_organization_member())],
)
async def list_teams(
    organization_id: str,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> List[TeamResponse]:
    service = OrganizationService(store, users)
    return await service.list_teams(organization_id)


@router.post(
    "/{organization_id}/teams",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="createOrganizationTeam",
    dependencies=[
        Depends(require_organization_permission(Resource.TEAM, Action.CREATE))
    ],
)
async def create_team(
    organization_id: str,
    team_data: TeamCreate,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> TeamResponse:
    service = OrganizationService(store, users)
    return await service.create_team(organization_id, team_data)


@router.get(
    "/{organization_id}/teams/{team_id}",
    response_model=TeamResponse,
    operation_id="getOrganizationTeam",
    dependencies=[Depends(require_organization_member())],
)
async def get_team(
    organization_id: str,
    team_id: str,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> TeamResponse:
    service = OrganizationService(store, users)
    return await service.get_team(organization_id, team_id)


@router.delete(
    "/{organization_id}/teams/{team_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="deleteOrganizationTeam",
    dependencies=[
        Depends(require_organization_permission(Resource.TEAM, Action.DELETE))
    ],
)
async def delete_team(
    organization_id: str,
    team_id: str,
    store: OrganizationStore = Depends(get_organization_store),
    users: UserStore = Depends(get_user_store),
) -> None:
    service = OrganizationService(store, users)
    await service.delete_team(organization_id, team_id)
