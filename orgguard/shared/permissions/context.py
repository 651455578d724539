import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from fastapi import Depends, Request

from orgguard.core.database import get_principal_resolver
from orgguard.core.settings import settings
from orgguard.shared.exceptions import PolicyResolutionError

from .models import OrganizationRole
from .types import Principal, PrincipalResolver, Session

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """
    Per-request authorization state shared by every guard of a route.

    Guards receive the same instance for the lifetime of one request, so
    organization values cached by an earlier guard are visible to later ones
    and are never invalidated mid-request.
    """

    principal: Optional[Principal] = None
    session: Optional[Session] = None
    path_params: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, str] = field(default_factory=dict)
    organization_id: Optional[str] = None
    organization_role: Optional[OrganizationRole] = None


def _first_present(params: Mapping[str, str], names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value:
            return str(value)
    return None


def resolve_organization_id(
    context: RequestContext,
    param_names: Optional[Iterable[str]] = None,
    use_session_hint: Optional[bool] = None,
) -> Optional[str]:
    """
    Extract the organization ID a request targets.

    Tries the value cached on the context, then path parameters, then query
    parameters. The session's active organization is consulted last, and
    only when enabled.

    Returns:
        The first non-empty organization ID found, or None
    """
    names = list(param_names or settings.ORGANIZATION_ID_PARAMS)
    if use_session_hint is None:
        use_session_hint = settings.USE_ACTIVE_ORGANIZATION_HINT

    organization_id = (
        context.organization_id
        or _first_present(context.path_params, names)
        or _first_present(context.query_params, names)
    )
    if not organization_id and use_session_hint and context.session:
        organization_id = context.session.active_organization_id
    return organization_id or None


def cache_organization_context(
    context: RequestContext,
    organization_id: str,
    organization_role: Optional[OrganizationRole] = None,
) -> None:
    """Record resolved organization values for later guards of the request."""
    context.organization_id = organization_id
    if organization_role is not None:
        context.organization_role = organization_role


async def get_request_context(
    request: Request,
    resolver: PrincipalResolver = Depends(get_principal_resolver),
) -> RequestContext:
    """
    Build the request context, attaching the current principal and session.

    FastAPI caches this dependency per request, which makes the returned
    object the shared context bag of the guard chain.
    """
    try:
        authenticated = await resolver.get_session(request.headers)
    except Exception as e:
        logger.error(f"Principal resolution failed: {e}")
        raise PolicyResolutionError("Could not resolve session") from e

    context = RequestContext(
        path_params=dict(request.path_params),
        query_params=dict(request.query_params),
    )
    if authenticated is not None:
        context.principal = authenticated.principal
        context.session = authenticated.session
    return context
