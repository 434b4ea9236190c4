"""Pydantic schemas for authentication."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr

from opshub.db.models import as_utc


class UserLogin(BaseModel):
    """Schema for user login.

    Attributes:
        email: User's email address.
        password: User's password.
    """

    email: EmailStr
    password: str


class Token(BaseModel):
    """Schema for JWT token response.

    Attributes:
        access_token: JWT access token.
        token_type: Token type (always "bearer").
    """

    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Schema for user response."""

    id: str
    email: str
    full_name: str
    username: str | None = None
    role: str
    role_id: str | None = None
    department: str | None = None
    organization_id: str | None = None
    status: str
    created_at: datetime | None = None
    last_login: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    """Response for the login endpoint."""

    success: bool = True
    message: str
    token: Token
    user: UserResponse


def user_to_response(user) -> UserResponse:
    """Convert a User model to its response schema.

    Args:
        user: User model.

    Returns:
        UserResponse: Serializable user.
    """
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        username=user.username,
        role=user.role.value,
        role_id=user.role_id,
        department=user.department.value if user.department else None,
        organization_id=user.organization_id,
        status=user.status.value,
        created_at=as_utc(user.created_at),
        last_login=as_utc(user.last_login),
    )
