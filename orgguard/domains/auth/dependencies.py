# orgguard/domains/auth/dependencies.py
from fastapi import Depends

from orgguard.shared.exceptions import UnauthenticatedError
from orgguard.shared.permissions import Principal, RequestContext, require_auth


async def get_current_principal(
    context: RequestContext = Depends(require_auth()),
) -> Principal:
    """
    Returns the authenticated principal of the request.
    """
    if context.principal is None:
        raise UnauthenticatedError()
    return context.principal
