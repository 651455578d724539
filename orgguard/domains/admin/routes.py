# orgguard/domains/admin/routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from orgguard.core.database import get_organization_store, get_user_store
from orgguard.domains.admin.models import (
    AdminOrganizationCreate,
    AdminOrganizationListResponse,
    AdminStatsResponse,
    AdminUserListResponse,
    AdminUserResponse,
    AdminUserUpdate,
    BanUserRequest,
    SetRoleRequest,
)
from orgguard.domains.admin.service import AdminService
from orgguard.domains.auth.dependencies import get_current_principal
from orgguard.domains.auth.store import UserStore
from orgguard.domains.organizations.models import (
    OrganizationResponse,
    OrganizationWithRoleResponse,
)
from orgguard.domains.organizations.store import OrganizationStore
from orgguard.shared.permissions import AppRole, Principal, require_role

# Every admin route requires the system admin role
router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_role("admin"))],
)


def get_admin_service(
    users: UserStore = Depends(get_user_store),
    organizations: OrganizationStore = Depends(get_organization_store),
) -> AdminService:
    return AdminService(users, organizations)


@router.get("/users", response_model=AdminUserListResponse, operation_id="listUsers")
async def list_users(
    page: int = Query(1, description="Page number for pagination", ge=1, le=1000),
    limit: int = Query(20, description="Number of users per page", ge=1, le=100),
    search: Optional[str] = Query(None, description="Search in name or email"),
    role: Optional[AppRole] = Query(None, description="Filter by system role"),
    banned: Optional[bool] = Query(None, description="Filter by ban flag"),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserListResponse:
    return await service.list_users(
        page=page, limit=limit, search=search, role=role, banned=banned
    )


@router.get(
    "/users/{user_id}", response_model=AdminUserResponse, operation_id="getUser"
)
async def get_user(
    user_id: str, service: AdminService = Depends(get_admin_service)
) -> AdminUserResponse:
    return await service.get_user(user_id)


@router.put(
    "/users/{user_id}", response_model=AdminUserResponse, operation_id="updateUser"
)
async def update_user(
    user_id: str,
    request: AdminUserUpdate,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    """Update a user's name, email or system role."""
    return await service.update_user(user_id, request, admin)


@router.put(
    "/users/{user_id}/role",
    response_model=AdminUserResponse,
    operation_id="setUserRole",
)
async def set_user_role(
    user_id: str,
    request: SetRoleRequest,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    return await service.set_role(user_id, request.role, admin)


@router.post(
    "/users/{user_id}/ban", response_model=AdminUserResponse, operation_id="banUser"
)
async def ban_user(
    user_id: str,
    request: BanUserRequest,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    """Ban a user. Admins cannot ban themselves."""
    return await service.ban_user(user_id, request, admin)


@router.post(
    "/users/{user_id}/unban",
    response_model=AdminUserResponse,
    operation_id="unbanUser",
)
async def unban_user(
    user_id: str,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    return await service.unban_user(user_id, admin)


@router.delete(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="deleteUser",
)
async def delete_user(
    user_id: str,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> None:
    """Delete a user. Admins cannot delete their own account."""
    await service.delete_user(user_id, admin)


@router.get(
    "/organizations",
    response_model=AdminOrganizationListResponse,
    operation_id="adminListOrganizations",
)
async def list_organizations(
    page: int = Query(1, description="Page number for pagination", ge=1, le=1000),
    limit: int = Query(
        20, description="Number of organizations per page", ge=1, le=100
    ),
    search: Optional[str] = Query(None, description="Search in name or slug"),
    service: AdminService = Depends(get_admin_service),
) -> AdminOrganizationListResponse:
    return await service.list_organizations(page=page, limit=limit, search=search)


@router.post(
    "/organizations",
    response_model=OrganizationWithRoleResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="adminCreateOrganization",
)
async def create_organization(
    organization_data: AdminOrganizationCreate,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> OrganizationWithRoleResponse:
    return await service.create_organization(organization_data, admin)


@router.get(
    "/organizations/{organization_id}",
    response_model=OrganizationResponse,
    operation_id="adminGetOrganization",
)
async def get_organization(
    organization_id: str, service: AdminService = Depends(get_admin_service)
) -> OrganizationResponse:
    return await service.get_organization(organization_id)


@router.delete(
    "/organizations/{organization_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    operation_id="adminDeleteOrganization",
)
async def delete_organization(
    organization_id: str,
    admin: Principal = Depends(get_current_principal),
    service: AdminService = Depends(get_admin_service),
) -> None:
    await service.delete_organization(organization_id, admin)


@router.get("/stats", response_model=AdminStatsResponse, operation_id="getAdminStats")
async def get_stats(
    service: AdminService = Depends(get_admin_service),
) -> AdminStatsResponse:
    return await service.get_stats()
