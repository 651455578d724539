# orgguard/domains/organizations/models.py
import re
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from orgguard.shared.permissions.models import OrganizationRole

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# Domain records


class Organization(BaseModel):
    id: str
    name: str
    slug: str
    logo: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=_now)

    @classmethod
    def from_prisma(cls, organization: Any) -> "Organization":
        return cls(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            logo=organization.logo,
            metadata=organization.metadata,
            created_at=organization.createdAt,
        )


class Invitation(BaseModel):
    """A pending offer of membership, addressed to an email."""

    id: str
    organization_id: str
    email: str
    role: OrganizationRole = OrganizationRole.member
    inviter_id: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=_now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or _now()
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now

    @classmethod
    def from_prisma(cls, invitation: Any) -> "Invitation":
        return cls(
            id=invitation.id,
            organization_id=invitation.organizationId,
            email=invitation.email,
            role=invitation.role or OrganizationRole.member,
            inviter_id=invitation.inviterId,
            expires_at=invitation.expiresAt,
            created_at=invitation.createdAt,
        )


class Team(BaseModel):
    id: str
    organization_id: str
    name: str
    created_at: datetime = Field(default_factory=_now)

    @classmethod
    def from_prisma(cls, team: Any) -> "Team":
        return cls(
            id=team.id,
            organization_id=team.organizationId,
            name=team.name,
            created_at=team.createdAt,
        )


# Requests


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, max_length=255)
    logo: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "Slug may only contain lowercase letters, numbers and hyphens"
            )
        return v


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    logo: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def validate_has_update(self) -> "OrganizationUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class UpdateMemberRoleRequest(BaseModel):
    role: OrganizationRole


class InviteMemberRequest(BaseModel):
    email: str
    role: Literal["member", "admin"] = "member"

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v


class TeamCreate(BaseModel):
    name: str = Field(min_length=1)


# Responses


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    logo: Optional[str]
    metadata: Optional[dict[str, Any]]
    created_at: Optional[str]

    @classmethod
    def from_organization(cls, organization: Organization) -> "OrganizationResponse":
        return cls(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            logo=organization.logo,
            metadata=organization.metadata,
            created_at=_isoformat(organization.created_at),
        )


class OrganizationWithRoleResponse(BaseModel):
    organization: OrganizationResponse
    role: Optional[OrganizationRole]


class OrganizationDetailResponse(OrganizationWithRoleResponse):
    member_count: int
    team_count: int


class OrganizationMemberResponse(BaseModel):
    id: Optional[str]
    user_id: str
    organization_id: str
    role: OrganizationRole
    name: Optional[str] = None
    email: Optional[str] = None
    joined_at: Optional[str]


class InvitationResponse(BaseModel):
    id: str
    organization_id: str
    email: str
    role: OrganizationRole
    inviter_id: str
    expires_at: str
    created_at: Optional[str]

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "InvitationResponse":
        return cls(
            id=invitation.id,
            organization_id=invitation.organization_id,
            email=invitation.email,
            role=invitation.role,
            inviter_id=invitation.inviter_id,
            expires_at=invitation.expires_at.isoformat(),
            created_at=_isoformat(invitation.created_at),
        )


class TeamResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    created_at: Optional[str]

    @classmethod
    def from_team(cls, team: Team) -> "TeamResponse":
        return cls(
            id=team.id,
            organization_id=team.organization_id,
            name=team.name,
            created_at=_isoformat(team.created_at),
        )
