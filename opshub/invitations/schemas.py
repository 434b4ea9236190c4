"""Pydantic schemas for invitations."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from opshub.auth.schemas import UserResponse
from opshub.db.models import Department, InvitationStatus


class InvitationCreate(BaseModel):
    """Schema for creating an invitation."""

    email: EmailStr
    role: str | None = Field(None, description="Role ID to assign on acceptance")
    department: Department | None = None
    message: str | None = Field(None, max_length=500)
    expires_at: datetime | None = Field(None, alias="expiresAt")
    organization: str | None = Field(None, description="Target organization ID")

    model_config = ConfigDict(populate_by_name=True)


class InvitationUpdate(BaseModel):
    """Schema for a partial invitation update."""

    status: InvitationStatus | None = None
    role: str | None = None
    department: Department | None = None
    message: str | None = Field(None, max_length=500)
    expires_at: datetime | None = Field(None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class InvitationAccept(BaseModel):
    """Schema for accepting an invitation (public endpoint)."""

    token: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255, alias="fullName")
    password: str = Field(..., min_length=1)
    username: str | None = Field(None, max_length=100)

    model_config = ConfigDict(populate_by_name=True)


class InvitationResponse(BaseModel):
    """Schema for an invitation."""

    id: str
    email: str
    organization_id: str
    organization_name: str | None = None
    role_id: str | None = None
    role_name: str | None = None
    department: str | None = None
    message: str | None = None
    status: str
    invited_by_id: str | None = None
    invited_by_name: str | None = None
    expires_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None
    accepted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class InvitationPreview(BaseModel):
    """Invitation details shown on the public acceptance page."""

    email: str
    organization_name: str
    role_name: str | None = None
    department: str | None = None
    message: str | None = None
    invited_by_name: str | None = None
    expires_at: datetime


class InvitationEnvelope(BaseModel):
    """Single-invitation response body."""

    success: bool = True
    message: str | None = None
    invitation: InvitationResponse


class InvitationListEnvelope(BaseModel):
    """Invitation list response body."""

    success: bool = True
    invitations: list[InvitationResponse]


class InvitationPreviewEnvelope(BaseModel):
    """Token preview response body."""

    success: bool = True
    invitation: InvitationPreview


class AcceptedInvitation(BaseModel):
    """Invitation summary returned after acceptance."""

    id: str
    status: str
    organization_id: str
    accepted_at: datetime | None = None


class InvitationAcceptEnvelope(BaseModel):
    """Acceptance response body: the new user and a session credential."""

    success: bool = True
    message: str
    user: UserResponse
    token: str
    token_type: str = "bearer"
    invitation: AcceptedInvitation


class MessageEnvelope(BaseModel):
    """Response body carrying only a message."""

    success: bool = True
    message: str


class AuditEntryResponse(BaseModel):
    """Audit trail entry."""

    id: str
    action: str
    user_id: str | None = None
    severity: str
    details: dict
    created_at: datetime | None = None


class AuditTrailEnvelope(BaseModel):
    """Audit trail response body."""

    success: bool = True
    entries: list[AuditEntryResponse]
