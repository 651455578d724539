from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping


class AppRole(str, Enum):
    """System-wide role of a principal, independent of any organization."""

    admin = "admin"
    user = "user"


class OrganizationRole(str, Enum):
    """Per-tenant role recorded on a membership."""

    owner = "owner"
    admin = "admin"
    member = "member"


class Resource(str, Enum):
    USER = "user"
    PROJECT = "project"
    ADMIN = "admin"
    ORGANIZATION = "organization"
    TEAM = "team"
    INVITATION = "invitation"
    MEMBER = "member"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"
    BAN = "ban"
    IMPERSONATE = "impersonate"
    INVITE = "invite"
    CANCEL = "cancel"


PolicyTable = Mapping[Resource, FrozenSet[Action]]


def _table(entries: dict[Resource, set[Action]]) -> PolicyTable:
    return MappingProxyType(
        {resource: frozenset(actions) for resource, actions in entries.items()}
    )


_CRUD = {Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE}


APP_ROLE_PERMISSIONS: Mapping[AppRole, PolicyTable] = MappingProxyType(
    {
        AppRole.admin: _table(
            {
                Resource.USER: _CRUD | {Action.BAN, Action.IMPERSONATE},
                Resource.PROJECT: _CRUD | {Action.MANAGE},
                Resource.ADMIN: {Action.READ, Action.MANAGE},
                Resource.ORGANIZATION: _CRUD | {Action.MANAGE, Action.INVITE},
                Resource.TEAM: _CRUD | {Action.MANAGE},
                Resource.INVITATION: _CRUD | {Action.CANCEL},
                Resource.MEMBER: _CRUD,
            }
        ),
        AppRole.user: _table(
            {
                Resource.PROJECT: {Action.CREATE, Action.READ, Action.UPDATE},
                Resource.ORGANIZATION: {Action.READ},
                Resource.TEAM: {Action.READ},
                Resource.INVITATION: {Action.READ},
                Resource.MEMBER: {Action.READ},
            }
        ),
    }
)


ORGANIZATION_ROLE_PERMISSIONS: Mapping[OrganizationRole, PolicyTable] = (
    MappingProxyType(
        {
            OrganizationRole.owner: _table(
                {
                    Resource.PROJECT: _CRUD | {Action.MANAGE},
                    # create/delete of the organization itself are platform
                    # or ownership-transfer actions, not organization-role ones
                    Resource.ORGANIZATION: {
                        Action.READ,
                        Action.UPDATE,
                        Action.MANAGE,
                        Action.INVITE,
                    },
                    Resource.TEAM: _CRUD | {Action.MANAGE},
                    Resource.INVITATION: _CRUD | {Action.CANCEL},
                    Resource.MEMBER: _CRUD,
                    Resource.USER: {Action.READ},
                }
            ),
            OrganizationRole.admin: _table(
                {
                    Resource.PROJECT: _CRUD,
                    Resource.ORGANIZATION: {
                        Action.READ,
                        Action.UPDATE,
                        Action.INVITE,
                    },
                    Resource.TEAM: _CRUD,
                    Resource.INVITATION: _CRUD | {Action.CANCEL},
                    Resource.MEMBER: _CRUD,
                    Resource.USER: {Action.READ},
                }
            ),
            OrganizationRole.member: _table(
                {
                    Resource.PROJECT: {Action.CREATE, Action.READ, Action.UPDATE},
                    Resource.ORGANIZATION: {Action.READ},
                    Resource.TEAM: {Action.READ},
                    Resource.INVITATION: {Action.READ},
                    Resource.MEMBER: {Action.READ},
                    Resource.USER: {Action.READ},
                }
            ),
        }
    )
)


def permission_universe(
    tables: Mapping[object, PolicyTable],
) -> FrozenSet[tuple[Resource, Action]]:
    """Every (resource, action) pair granted by at least one role of a space."""
    return frozenset(
        (resource, action)
        for table in tables.values()
        for resource, actions in table.items()
        for action in actions
    )


APP_PERMISSION_UNIVERSE = permission_universe(APP_ROLE_PERMISSIONS)
ORGANIZATION_PERMISSION_UNIVERSE = permission_universe(ORGANIZATION_ROLE_PERMISSIONS)
