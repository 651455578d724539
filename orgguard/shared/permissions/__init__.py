"""
Shared permission system for role-based access control.

Two role spaces are kept apart: system roles (AppRole) checked against the
app-level table, and organization roles (OrganizationRole) checked against
the organization table. Unbanned system admins pass every
organization-permission check.

Usage:
    from orgguard.shared.permissions import (
        Action,
        Resource,
        require_organization_permission,
    )

    @router.post(
        "/{organization_id}/teams",
        dependencies=[
            Depends(require_organization_permission(Resource.TEAM, Action.CREATE))
        ],
    )
    async def create_team(...):
        pass
"""

from .context import (
    RequestContext,
    cache_organization_context,
    get_request_context,
    resolve_organization_id,
)
from .dependencies import (
    GuardChain,
    check_organization_permission,
    check_permission,
    require_auth,
    require_organization_member,
    require_organization_permission,
    require_organization_role,
    require_permission,
    require_role,
)
from .models import (
    APP_ROLE_PERMISSIONS,
    ORGANIZATION_ROLE_PERMISSIONS,
    Action,
    AppRole,
    OrganizationRole,
    Resource,
)
from .services import has_organization_permission, has_permission, is_system_admin
from .types import (
    AuthenticatedSession,
    Membership,
    MembershipStore,
    Principal,
    PrincipalResolver,
    Session,
)

__all__ = [
    "APP_ROLE_PERMISSIONS",
    "ORGANIZATION_ROLE_PERMISSIONS",
    "Action",
    "AppRole",
    "AuthenticatedSession",
    "GuardChain",
    "Membership",
    "MembershipStore",
    "OrganizationRole",
    "Principal",
    "PrincipalResolver",
    "RequestContext",
    "Resource",
    "Session",
    "cache_organization_context",
    "check_organization_permission",
    "check_permission",
    "get_request_context",
    "has_organization_permission",
    "has_permission",
    "is_system_admin",
    "require_auth",
    "require_organization_member",
    "require_organization_permission",
    "require_organization_role",
    "require_permission",
    "require_role",
    "resolve_organization_id",
]
