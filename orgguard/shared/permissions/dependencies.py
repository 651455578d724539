import logging
from typing import Awaitable, Callable, Optional, Union

from fastapi import Depends, HTTPException
from fastapi.params import Depends as DependsParam

from orgguard.core.database import get_membership_store, get_principal_resolver
from orgguard.shared.exceptions import (
    ForbiddenError,
    MissingOrganizationContextError,
    NotAMemberError,
    PolicyResolutionError,
    UnauthenticatedError,
)

from .context import (
    RequestContext,
    cache_organization_context,
    get_request_context,
    resolve_organization_id,
)
from .models import (
    APP_PERMISSION_UNIVERSE,
    ORGANIZATION_PERMISSION_UNIVERSE,
    Action,
    AppRole,
    OrganizationRole,
    Resource,
)
from .services import (
    Verdict,
    authorize_organization_action,
    has_permission,
)
from .types import Membership, MembershipStore, Principal, PrincipalResolver

logger = logging.getLogger(__name__)

# Every guard shares this signature so that a chain can call them in turn.
Guard = Callable[
    [RequestContext, MembershipStore, PrincipalResolver], Awaitable[RequestContext]
]


def _permission_pair(
    resource: Union[Resource, str],
    action: Union[Action, str],
    universe: frozenset,
    space: str,
) -> tuple[Resource, Action]:
    """Validate a (resource, action) pair when the guard is declared."""
    pair = (Resource(resource), Action(action))
    if pair not in universe:
        raise ValueError(
            f"{pair[0].value}.{pair[1].value} is not a {space} permission"
        )
    return pair


def _require_principal(context: RequestContext) -> Principal:
    if context.principal is None:
        raise UnauthenticatedError()
    return context.principal


def _require_organization_id(context: RequestContext) -> str:
    organization_id = resolve_organization_id(context)
    if not organization_id:
        raise MissingOrganizationContextError()
    return organization_id


async def _find_membership(
    store: MembershipStore, organization_id: str, user_id: str
) -> Optional[Membership]:
    try:
        return await store.find_membership(organization_id, user_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(
            f"Membership lookup failed for user {user_id} "
            f"in organization {organization_id}: {e}"
        )
        raise PolicyResolutionError() from e


async def _resolve_organization_role(
    context: RequestContext, store: MembershipStore, organization_id: str
) -> OrganizationRole:
    """Return the principal's role, querying the store only once per request."""
    if context.organization_role is not None:
        return context.organization_role

    principal = _require_principal(context)
    membership = await _find_membership(store, organization_id, principal.id)
    if membership is None:
        logger.info(
            f"User {principal.id} is not a member of organization {organization_id}"
        )
        raise NotAMemberError()

    cache_organization_context(context, organization_id, membership.role)
    return membership.role


def require_auth() -> Guard:
    """
    Dependency factory requiring a live principal and session.

    Returns:
        Async guard that returns the request context when authenticated
    """

    async def check_auth(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        if context.principal is None or context.session is None:
            raise UnauthenticatedError()
        return context

    return check_auth


def require_role(*roles: Union[AppRole, str]) -> Guard:
    """
    Dependency factory requiring one of the given system roles.

    Organization roles never satisfy this guard, even when they share a name
    with a system role.
    """
    allowed = frozenset(AppRole(role) for role in roles)

    async def check_role(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        principal = _require_principal(context)
        if principal.role not in allowed:
            logger.info(f"User {principal.id} lacks required system role")
            raise ForbiddenError(
                "Required role: " + " or ".join(sorted(r.value for r in allowed))
            )
        return context

    return check_role


def require_permission(
    resource: Union[Resource, str], action: Union[Action, str]
) -> Guard:
    """
    Dependency factory for app-level authorization.

    Args:
        resource: The resource the endpoint acts on
        action: The action the endpoint performs

    Returns:
        Async guard that validates the principal's system role grants the
        permission

    Raises:
        ValueError: If the pair is not part of the app-level policy
    """
    resource, action = _permission_pair(
        resource, action, APP_PERMISSION_UNIVERSE, "app-level"
    )

    async def check_permission(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        principal = _require_principal(context)
        if not has_permission(principal.role, resource, action):
            logger.info(
                f"User {principal.id} denied {resource.value}.{action.value}"
            )
            raise ForbiddenError(
                f"Insufficient permissions: {resource.value}.{action.value}"
            )
        return context

    return check_permission


def require_organization_member() -> Guard:
    """
    Dependency factory requiring membership of the targeted organization.

    The organization is resolved from the context, the path or the query.
    On success the organization ID and role are cached on the context.
    """

    async def check_organization_member(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        _require_principal(context)
        organization_id = _require_organization_id(context)
        await _resolve_organization_role(context, store, organization_id)
        return context

    return check_organization_member


def require_organization_permission(
    resource: Union[Resource, str], action: Union[Action, str]
) -> Guard:
    """
    Dependency factory for organization-scoped authorization.

    Unbanned system admins pass without a membership lookup. Everyone else
    needs a membership whose role grants the permission.

    Raises:
        ValueError: If the pair is not part of the organization policy
    """
    resource, action = _permission_pair(
        resource, action, ORGANIZATION_PERMISSION_UNIVERSE, "organization"
    )

    async def check_organization_permission(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        principal = _require_principal(context)
        organization_id = _require_organization_id(context)

        try:
            decision = await authorize_organization_action(
                principal,
                organization_id,
                resource,
                action,
                store=store,
                resolver=resolver,
                cached_role=context.organization_role,
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                f"Permission check {resource.value}.{action.value} failed "
                f"for user {principal.id} in organization {organization_id}: {e}"
            )
            raise PolicyResolutionError() from e

        if decision.verdict == Verdict.NOT_A_MEMBER:
            raise NotAMemberError()
        if decision.verdict == Verdict.DENIED:
            logger.info(
                f"User {principal.id} denied {resource.value}.{action.value} "
                f"in organization {organization_id}"
            )
            raise ForbiddenError(
                f"Insufficient organization permissions: "
                f"{resource.value}.{action.value}"
            )

        cache_organization_context(context, organization_id, decision.role)
        return context

    return check_organization_permission


def require_organization_role(*roles: Union[OrganizationRole, str]) -> Guard:
    """
    Dependency factory requiring one of the given organization roles.

    System admin status never satisfies this guard; admins reach
    organization resources through require_organization_permission.
    """
    allowed = frozenset(OrganizationRole(role) for role in roles)

    async def check_organization_role(
        context: RequestContext = Depends(get_request_context),
        store: MembershipStore = Depends(get_membership_store),
        resolver: PrincipalResolver = Depends(get_principal_resolver),
    ) -> RequestContext:
        principal = _require_principal(context)
        organization_id = _require_organization_id(context)
        role = await _resolve_organization_role(context, store, organization_id)
        if role not in allowed:
            logger.info(
                f"User {principal.id} has role {role.value} in organization "
                f"{organization_id}, which is not allowed here"
            )
            raise ForbiddenError(
                "Required organization role: "
                + " or ".join(sorted(r.value for r in allowed))
            )
        return context

    return check_organization_role


class GuardChain:
    """
    An ordered list of guards declared by a route.

    Guards run strictly one after another; the first rejection ends the
    chain with its error.
    """

    def __init__(self, *guards: Guard) -> None:
        self.guards = guards

    @property
    def dependencies(self) -> list[DependsParam]:
        """The chain as FastAPI route or router dependencies, in order."""
        return [Depends(guard) for guard in self.guards]

    async def __call__(
        self,
        context: RequestContext,
        store: MembershipStore,
        resolver: PrincipalResolver,
    ) -> RequestContext:
        for guard in self.guards:
            await guard(context, store, resolver)
        return context


def check_permission(
    context: RequestContext,
    resource: Union[Resource, str],
    action: Union[Action, str],
) -> bool:
    """
    Soft app-level check for use inside a handler body.

    Never raises; any failure counts as not permitted.
    """
    try:
        principal = context.principal
        if principal is None:
            return False
        return has_permission(principal.role, resource, action)
    except Exception as e:
        logger.exception(f"Permission check {resource}.{action} failed: {e}")
        return False


async def check_organization_permission(
    context: RequestContext,
    resource: Union[Resource, str],
    action: Union[Action, str],
    organization_id: Optional[str] = None,
    *,
    store: Optional[MembershipStore] = None,
    resolver: Optional[PrincipalResolver] = None,
) -> bool:
    """
    Soft organization-scoped check for use inside a handler body.

    Applies the same admin bypass and policy table as the guards. Never
    raises; any resolution failure is logged and counts as not permitted.
    """
    try:
        principal = context.principal
        organization_id = organization_id or resolve_organization_id(context)
        if principal is None or not organization_id:
            return False

        store = store or await get_membership_store()
        resolver = resolver or await get_principal_resolver()
        cached_role = (
            context.organization_role
            if context.organization_id == organization_id
            else None
        )
        decision = await authorize_organization_action(
            principal,
            organization_id,
            Resource(resource),
            Action(action),
            store=store,
            resolver=resolver,
            cached_role=cached_role,
        )
        return decision.allowed
    except Exception as e:
        logger.exception(
            f"Organization permission check {resource}.{action} failed "
            f"for organization {organization_id}: {e}"
        )
        return False

