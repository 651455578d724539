# orgguard/domains/auth/models.py
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from orgguard.domains.organizations.models import EMAIL_PATTERN
from orgguard.shared.permissions import AppRole, OrganizationRole, Principal


class PublicProfile(BaseModel):
    id: str
    name: str
    email: str
    role: AppRole
    banned: bool

    @classmethod
    def from_principal(cls, principal: Principal) -> "PublicProfile":
        return cls(
            id=principal.id,
            name=principal.name or principal.email,
            email=principal.email,
            role=principal.role,
            banned=principal.is_banned(),
        )


class MeResponse(BaseModel):
    user: PublicProfile
    session_id: str
    active_organization_id: Optional[str]


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v

    @model_validator(mode="after")
    def validate_has_update(self) -> "ProfileUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class MembershipSummary(BaseModel):
    organization_id: str
    organization_name: Optional[str]
    organization_slug: Optional[str]
    role: OrganizationRole
    joined_at: Optional[str]


class MyOrganizationsResponse(BaseModel):
    organizations: List[MembershipSummary]
