# orgguard/core/database.py
from typing import TYPE_CHECKING, Optional

from orgguard.core.settings import settings

if TYPE_CHECKING:
    from prisma import Prisma

    from orgguard.domains.auth.service import JwtSessionResolver
    from orgguard.domains.auth.store import UserStore
    from orgguard.domains.organizations.store import OrganizationStore


# Global instances, created on first use
_prisma: Optional["Prisma"] = None
_organization_store: Optional["OrganizationStore"] = None
_user_store: Optional["UserStore"] = None
_principal_resolver: Optional["JwtSessionResolver"] = None


def get_prisma() -> "Prisma":
    """Return the shared Prisma client (requires a generated client)."""
    global _prisma
    if _prisma is None:
        from prisma import Prisma

        _prisma = Prisma()
    return _prisma


def uses_prisma() -> bool:
    return settings.STORE_BACKEND == "prisma"


async def get_organization_store() -> "OrganizationStore":
    """Organization, membership, invitation and team store for the backend."""
    global _organization_store
    if _organization_store is None:
        from orgguard.domains.organizations.store import (
            InMemoryOrganizationStore,
            PrismaOrganizationStore,
        )

        _organization_store = (
            PrismaOrganizationStore(get_prisma())
            if uses_prisma()
            else InMemoryOrganizationStore()
        )
    return _organization_store


async def get_membership_store() -> "OrganizationStore":
    """Membership store consumed by the permission guards."""
    return await get_organization_store()


async def get_user_store() -> "UserStore":
    global _user_store
    if _user_store is None:
        from orgguard.domains.auth.store import InMemoryUserStore, PrismaUserStore

        _user_store = (
            PrismaUserStore(get_prisma()) if uses_prisma() else InMemoryUserStore()
        )
    return _user_store


async def get_principal_resolver() -> "JwtSessionResolver":
    """Principal resolver backed by the external auth service's tokens."""
    global _principal_resolver
    if _principal_resolver is None:
        from orgguard.domains.auth.service import JwtSessionResolver

        _principal_resolver = JwtSessionResolver(await get_user_store())
    return _principal_resolver
