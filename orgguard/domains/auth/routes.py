# orgguard/domains/auth/routes.py
import logging
from typing import List

from fastapi import APIRouter, Depends, status

from orgguard.core.database import get_organization_store, get_user_store
from orgguard.domains.auth.dependencies import get_current_principal
from orgguard.domains.auth.models import (
    MembershipSummary,
    MeResponse,
    MyOrganizationsResponse,
    ProfileUpdate,
    PublicProfile,
)
from orgguard.domains.auth.store import UserStore
from orgguard.domains.organizations.models import InvitationResponse
from orgguard.domains.organizations.service import InvitationService
from orgguard.domains.organizations.store import OrganizationStore
from orgguard.shared.exceptions import UserNotFoundError
from orgguard.shared.permissions import Principal, RequestContext, require_auth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Me"])


@router.get("", response_model=MeResponse, operation_id="getMe")
async def get_me(context: RequestContext = Depends(require_auth())) -> MeResponse:
    """Return the current user's profile and session."""
    return MeResponse(
        user=PublicProfile.from_principal(context.principal),
        session_id=context.session.id,
        active_organization_id=context.session.active_organization_id,
    )


@router.put("", response_model=PublicProfile, operation_id="updateMe")
async def update_me(
    update: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    users: UserStore = Depends(get_user_store),
) -> PublicProfile:
    """Update the current user's name or email."""
    user = await users.update_user(principal.id, name=update.name, email=update.email)
    if not user:
        raise UserNotFoundError()
    logger.info(f"User {principal.id} updated their profile")
    return PublicProfile.from_principal(user)


@router.get(
    "/organizations",
    response_model=MyOrganizationsResponse,
    operation_id="getMyOrganizations",
)
async def get_my_organizations(
    principal: Principal = Depends(get_current_principal),
    store: OrganizationStore = Depends(get_organization_store),
) -> MyOrganizationsResponse:
    memberships = await store.list_memberships_for_user(principal.id)
    organizations = {
        org.id: org
        for org in await store.list_organizations(
            [m.organization_id for m in memberships]
        )
    }

    summaries = []
    for membership in memberships:
        organization = organizations.get(membership.organization_id)
        summaries.append(
            MembershipSummary(
                organization_id=membership.organization_id,
                organization_name=organization.name if organization else None,
                organization_slug=organization.slug if organization else None,
                role=membership.role,
                joined_at=(
                    membership.created_at.isoformat() if membership.created_at else None
                ),
            )
        )
    return MyOrganizationsResponse(organizations=summaries)


@router.get(
    "/invitations",
    response_model=List[InvitationResponse],
    operation_id="getMyInvitations",
)
async def get_my_invitations(
    principal: Principal = Depends(get_current_principal),
    store: OrganizationStore = Depends(get_organization_store),
) -> List[InvitationResponse]:
    """Pending invitations addressed to the current user's email."""
    service = InvitationService(store)
    return await service.list_principal_invitations(principal)


@router.post(
    "/invitations/{invitation_id}/accept",
    response_model=MembershipSummary,
    operation_id="acceptInvitation",
)
async def accept_invitation(
    invitation_id: str,
    principal: Principal = Depends(get_current_principal),
    store: OrganizationStore = Depends(get_organization_store),
) -> MembershipSummary:
    """
    Join the organization an invitation is for.

    An expired invitation is discarded and answered with 410 Gone.
    """
    service = InvitationService(store)
    membership = await service.accept_invitation(invitation_id, principal)
    organization = await store.get_organization(membership.organization_id)
    return MembershipSummary(
        organization_id=membership.organization_id,
        organization_name=organization.name if organization else None,
        organization_slug=organization.slug if organization else None,
        role=membership.role,
        joined_at=membership.created_at.isoformat(),
    )


@router.post(
    "/invitations/{invitation_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="rejectInvitation",
)
async def reject_invitation(
    invitation_id: str,
    principal: Principal = Depends(get_current_principal),
    store: OrganizationStore = Depends(get_organization_store),
) -> None:
    service = InvitationService(store)
    await service.reject_invitation(invitation_id, principal)
