# orgguard/domains/admin/models.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from orgguard.domains.auth.models import ProfileUpdate
from orgguard.domains.organizations.models import (
    OrganizationCreate,
    OrganizationResponse,
)
from orgguard.shared.permissions import AppRole, Principal


class AdminUserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: AppRole
    banned: bool
    ban_reason: Optional[str]
    ban_expires: Optional[str]

    @classmethod
    def from_principal(cls, principal: Principal) -> "AdminUserResponse":
        banned = principal.is_banned()
        return cls(
            id=principal.id,
            name=principal.name,
            email=principal.email,
            role=principal.role,
            banned=banned,
            ban_reason=principal.ban_reason if banned else None,
            ban_expires=(
                principal.ban_expires.isoformat()
                if banned and principal.ban_expires
                else None
            ),
        )


class SetRoleRequest(BaseModel):
    role: AppRole


class AdminUserUpdate(ProfileUpdate):
    """Name, email and system role; unset fields are left unchanged."""

    role: Optional[AppRole] = None


class PaginationMetadata(BaseModel):
    """Pagination metadata for list responses"""

    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class AdminUserListResponse(BaseModel):
    users: List[AdminUserResponse]
    pagination: PaginationMetadata


class AdminOrganizationListResponse(BaseModel):
    organizations: List[OrganizationResponse]
    pagination: PaginationMetadata


class BanUserRequest(BaseModel):
    reason: str = Field(min_length=1)
    expires_at: Optional[datetime] = None


class AdminOrganizationCreate(OrganizationCreate):
    owner_id: str


class UserStats(BaseModel):
    total: int
    banned: int
    admins: int


class OrganizationStats(BaseModel):
    total: int


class AdminStatsResponse(BaseModel):
    users: UserStats
    organizations: OrganizationStats
