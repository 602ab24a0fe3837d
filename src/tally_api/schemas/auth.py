"""Authentication and admin user Pydantic v2 schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

ROLE_PATTERN = "^(admin|analyst|viewer)$"


class RefreshRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str


class TokenResponse(BaseModel):
    """JWT token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiration in seconds")


class UserCreateRequest(BaseModel):
    """Request to create a new user."""

    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8)
    role: str = Field(pattern=ROLE_PATTERN)
    is_offline_vote_admin: bool = Field(
        default=False,
        description="Offline-vote admins record paper ballots and may not merge them",
    )


class UserResponse(BaseModel):
    """User information response."""

    id: UUID
    username: str
    email: str
    role: str
    is_active: bool
    is_offline_vote_admin: bool
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}
