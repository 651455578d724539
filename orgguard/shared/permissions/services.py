from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .models import (
    APP_ROLE_PERMISSIONS,
    ORGANIZATION_ROLE_PERMISSIONS,
    Action,
    AppRole,
    OrganizationRole,
    Resource,
)
from .types import Membership, MembershipStore, Principal, PrincipalResolver


def has_permission(
    role: Union[AppRole, str, None],
    resource: Union[Resource, str],
    action: Union[Action, str],
) -> bool:
    """
    Check if an app-level role grants an action on a resource.

    Args:
        role: The system role to check
        resource: The resource being accessed
        action: The action being performed

    Returns:
        True if the role grants the action, False otherwise (including
        unknown roles, resources and actions)
    """
    try:
        table = APP_ROLE_PERMISSIONS.get(AppRole(role))
        return table is not None and Action(action) in table.get(
            Resource(resource), frozenset()
        )
    except ValueError:
        return False


def has_organization_permission(
    role: Union[OrganizationRole, str, None],
    resource: Union[Resource, str],
    action: Union[Action, str],
) -> bool:
    """
    Check if an organization role grants an action on a resource.

    Args:
        role: The organization role to check
        resource: The resource being accessed
        action: The action being performed

    Returns:
        True if the role grants the action, False otherwise (including
        unknown roles, resources and actions)
    """
    try:
        table = ORGANIZATION_ROLE_PERMISSIONS.get(OrganizationRole(role))
        return table is not None and Action(action) in table.get(
            Resource(resource), frozenset()
        )
    except ValueError:
        return False


def is_system_admin(
    principal: Optional[Principal], now: Optional[datetime] = None
) -> bool:
    """System admins bypass organization checks unless they are banned."""
    return (
        principal is not None
        and principal.role == AppRole.admin
        and not principal.is_banned(now)
    )


class Verdict(str, Enum):
    ADMIN_BYPASS = "admin_bypass"
    GRANTED = "granted"
    UNAUTHENTICATED = "unauthenticated"
    NOT_A_MEMBER = "not_a_member"
    DENIED = "denied"


@dataclass(frozen=True)
class OrganizationDecision:
    verdict: Verdict
    role: Optional[OrganizationRole] = None
    membership: Optional[Membership] = None

    @property
    def allowed(self) -> bool:
        return self.verdict in (Verdict.ADMIN_BYPASS, Verdict.GRANTED)


async def authorize_organization_action(
    principal: Optional[Principal],
    organization_id: str,
    resource: Resource,
    action: Action,
    *,
    store: MembershipStore,
    resolver: PrincipalResolver,
    cached_role: Optional[OrganizationRole] = None,
) -> OrganizationDecision:
    """
    Decide an organization-scoped permission.

    The admin bypass is evaluated before any membership lookup so that a
    system admin without a membership row still passes. A role already
    resolved earlier in the request is reused instead of querying the store.

    Collaborator errors propagate to the caller.
    """
    if principal is None:
        return OrganizationDecision(Verdict.UNAUTHENTICATED)

    if await resolver.is_system_admin(principal):
        return OrganizationDecision(Verdict.ADMIN_BYPASS, role=cached_role)

    membership = None
    role = cached_role
    if role is None:
        membership = await store.find_membership(organization_id, principal.id)
        if membership is None:
            return OrganizationDecision(Verdict.NOT_A_MEMBER)
        role = membership.role

    if not has_organization_permission(role, resource, action):
        return OrganizationDecision(Verdict.DENIED, role=role, membership=membership)

    return OrganizationDecision(Verdict.GRANTED, role=role, membership=membership)
