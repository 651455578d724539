"""Auth domain type definitions for type safety."""

from typing import Optional

from pydantic import BaseModel, Field


class SessionTokenClaims(BaseModel):
    """Claims of a session token minted by the external auth service."""

    # Standard JWT claims
    sub: Optional[str] = Field(None, description="Subject (user ID)")
    iss: Optional[str] = Field(None, description="Token issuer")
    aud: Optional[str | list[str]] = Field(None, description="Token audience")
    exp: Optional[int] = Field(None, description="Expiration timestamp")
    iat: Optional[int] = Field(None, description="Issued at timestamp")
    nbf: Optional[int] = Field(None, description="Not before timestamp")
    jti: Optional[str] = Field(None, description="JWT ID")

    # Session information
    session_id: Optional[str] = Field(None, description="Session identifier")
    email: Optional[str] = Field(None, description="User email address")
    active_organization_id: Optional[str] = Field(
        None, description="Organization last selected in this session"
    )
    updated_at: Optional[int] = Field(None, description="Session update timestamp")

    model_config = {"extra": "allow"}
