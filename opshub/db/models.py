"""SQLAlchemy database models."""

import enum
from datetime import UTC, datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.mysql import CHAR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to an aware UTC value.

    Naive values (as read back from the database) are taken to be UTC; aware
    values are converted so the absolute instant is kept.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class UserRole(str, enum.Enum):
    """Coarse user role enumeration."""

    SUPER_ADMIN = "super_admin"  # Platform operator, spans all organizations
    ADMIN = "admin"  # Organization administrator
    MEMBER = "member"


class UserStatus(str, enum.Enum):
    """User account status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Department(str, enum.Enum):
    """Departments a user or invitation can be bound to."""

    CUSTOMER_SUPPORT = "Customer Support"
    IT = "IT"
    HR = "HR"
    SALES = "Sales"
    MARKETING = "Marketing"
    FINANCE = "Finance"
    BILLING = "Billing"
    SHIPPING = "Shipping"


class InvitationStatus(str, enum.Enum):
    """Invitation status enumeration."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AuditSeverity(str, enum.Enum):
    """Audit log severity enumeration."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Organization(Base):
    """Organization (tenant) model owning roles, users and invitations.

    Attributes:
        id: Primary key UUID.
        name: Organization name.
        slug: URL-friendly identifier.
        is_active: Whether the organization is active.
        created_at: Creation timestamp.
    """

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User", back_populates="organization", cascade="all, delete-orphan"
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role", back_populates="organization", cascade="all, delete-orphan"
    )
    invitations: Mapped[list["Invitation"]] = relationship(
        "Invitation", back_populates="organization", cascade="all, delete-orphan"
    )


class Role(Base):
    """Fine-grained role carrying a permission map.

    Attributes:
        id: Primary key UUID.
        organization_id: Owning organization.
        name: Role name (unique per organization).
        description: Optional description.
        permissions: Capability name to flag, e.g. {"invite_users": true}.
        created_at: Creation timestamp.
    """

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_role_org_name"),
        Index("ix_roles_organization_id", "organization_id"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permissions: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    organization: Mapped["Organization"] = relationship("Organization", back_populates="roles")


class User(Base):
    """User model.

    Attributes:
        id: Primary key UUID.
        organization_id: Owning organization (NULL only for super admins).
        email: User email (globally unique).
        username: Optional unique handle.
        password_hash: Hashed password.
        full_name: User's full name.
        role: Coarse role (super_admin/admin/member).
        role_id: Optional fine-grained Role.
        department: Optional department.
        status: Account status.
        created_at: Creation timestamp.
        last_login: Last login timestamp.
    """

    __tablename__ = "users"
    __table_args__ = (Index("ix_users_organization_id", "organization_id"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=_enum_values), default=UserRole.MEMBER
    )
    role_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )
    department: Mapped[Department | None] = mapped_column(
        Enum(Department, values_callable=_enum_values), nullable=True
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, values_callable=_enum_values), default=UserStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_login: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization", back_populates="users"
    )
    assigned_role: Mapped[Optional["Role"]] = relationship("Role")


class Invitation(Base):
    """Single-use, time-boxed invitation to join an organization.

    Attributes:
        id: Primary key UUID.
        organization_id: Organization the invitee will join.
        invited_by_id: User who created the invitation.
        email: Invitee email (lowercased).
        role_id: Role copied onto the provisioned user.
        department: Department copied onto the provisioned user.
        message: Note shown to the invitee.
        token: 64-character hex acceptance token.
        status: Lifecycle status.
        pending_email: Mirror of email while pending, NULL otherwise.
        expires_at: Acceptance deadline.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        accepted_at: When the invitation was accepted.
    """

    __tablename__ = "invitations"
    __table_args__ = (
        # At most one pending invitation per (organization, email); NULLs never collide
        UniqueConstraint("organization_id", "pending_email", name="uq_invitation_org_pending_email"),
        Index("ix_invitations_organization_id", "organization_id"),
        Index("ix_invitations_email", "email"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    invited_by_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )
    department: Mapped[Department | None] = mapped_column(
        Enum(Department, values_callable=_enum_values), nullable=True
    )
    message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, values_callable=_enum_values),
        default=InvitationStatus.PENDING,
    )
    pending_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="invitations"
    )
    invited_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[invited_by_id])
    role: Mapped[Optional["Role"]] = relationship("Role", foreign_keys=[role_id])

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the acceptance deadline has passed.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            bool: True if expires_at is not in the future.
        """
        now = now or datetime.now(UTC)
        return as_utc(self.expires_at) <= now

    def is_acceptable(self, now: datetime | None = None) -> bool:
        """Check whether the token may still be used to accept."""
        return self.status == InvitationStatus.PENDING and not self.is_expired(now)


class AuditLog(Base):
    """Audit trail entry for security-relevant actions.

    Attributes:
        id: Primary key UUID.
        action: Human-readable action name, e.g. "Invitation Created".
        user_id: Acting user, if any.
        resource: Resource type ("invitation", "user").
        resource_id: ID of the affected resource.
        organization_id: Organization the action happened in.
        severity: Severity level.
        details: Free-form JSON details (ip, user agent, changed fields).
        created_at: Creation timestamp.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_organization_id", "organization_id"),
        Index("ix_audit_logs_resource", "resource", "resource_id"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str | None] = mapped_column(CHAR(36), nullable=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(CHAR(36), nullable=True)
    organization_id: Mapped[str | None] = mapped_column(CHAR(36), nullable=True)
    severity: Mapped[AuditSeverity] = mapped_column(
        Enum(AuditSeverity, values_callable=_enum_values), default=AuditSeverity.INFO
    )
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
