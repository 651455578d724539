"""
Dynamic permission testing utilities for sustainable test maintenance.

These utilities derive expected grants from the policy tables themselves, so
tests stay valid when resources or actions are added.
"""

from typing import Any, Iterator, Mapping, Optional, Set, Tuple

from orgguard.shared.permissions import (
    APP_ROLE_PERMISSIONS,
    ORGANIZATION_ROLE_PERMISSIONS,
    Action,
    AppRole,
    OrganizationRole,
    Principal,
    RequestContext,
    Session,
)
from orgguard.shared.permissions.services import is_system_admin
from orgguard.shared.permissions.types import AuthenticatedSession

Pair = Tuple[Any, Action]


def make_context(
    principal: Optional[Principal] = None,
    path_params: Optional[Mapping[str, str]] = None,
    query_params: Optional[Mapping[str, str]] = None,
    active_organization_id: Optional[str] = None,
) -> RequestContext:
    """Build a request context with a session for the given principal."""
    session = (
        Session(
            id=f"session-{principal.id}",
            user_id=principal.id,
            active_organization_id=active_organization_id,
        )
        if principal
        else None
    )
    return RequestContext(
        principal=principal,
        session=session,
        path_params=dict(path_params or {}),
        query_params=dict(query_params or {}),
    )


class StubPrincipalResolver:
    """Principal resolver returning a fixed session, or raising a fixed error."""

    def __init__(
        self,
        authenticated: Optional[AuthenticatedSession] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.authenticated = authenticated
        self.error = error
        self.admin_checks = 0

    async def get_session(self, headers: Mapping[str, str]):
        if self.error:
            raise self.error
        return self.authenticated

    async def is_system_admin(self, principal: Principal) -> bool:
        self.admin_checks += 1
        if self.error:
            raise self.error
        return is_system_admin(principal)


class PermissionTestHelpers:
    """Helper class for dynamic permission testing."""

    @staticmethod
    def app_pairs(role: AppRole) -> Set[Pair]:
        """Every (resource, action) pair granted to a system role."""
        return {
            (resource, action)
            for resource, actions in APP_ROLE_PERMISSIONS[role].items()
            for action in actions
        }

    @staticmethod
    def organization_pairs(role: OrganizationRole) -> Set[Pair]:
        """Every (resource, action) pair granted to an organization role."""
        return {
            (resource, action)
            for resource, actions in ORGANIZATION_ROLE_PERMISSIONS[role].items()
            for action in actions
        }

    @staticmethod
    def all_organization_pairs() -> Iterator[Pair]:
        for role in OrganizationRole:
            yield from PermissionTestHelpers.organization_pairs(role)

    @staticmethod
    def assert_role_has_exactly_pairs(
        role: OrganizationRole, expected: Set[Pair]
    ) -> None:
        """
        Assert that an organization role grants exactly the expected pairs.

        Provides detailed error messages about missing or unexpected grants.
        """
        actual = PermissionTestHelpers.organization_pairs(role)
        missing = expected - actual
        unexpected = actual - expected

        error_parts = []
        if missing:
            error_parts.append(
                f"Missing: {sorted(f'{r.value}.{a.value}' for r, a in missing)}"
            )
        if unexpected:
            error_parts.append(
                f"Unexpected: {sorted(f'{r.value}.{a.value}' for r, a in unexpected)}"
            )
        if error_parts:
            raise AssertionError(
                f"Role {role.value} permission mismatch. " + "; ".join(error_parts)
            )
