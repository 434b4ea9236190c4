"""Initial database schema.

Revision ID: 001
Revises:
Create Date: 2026-10-16

Complete schema for OpsHub including:
- Organizations
- Roles with JSON permission maps
- Users
- Invitations with the one-pending-invitation-per-email constraint
- Audit logs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEPARTMENTS = (
    "Customer Support",
    "IT",
    "HR",
    "Sales",
    "Marketing",
    "Finance",
    "Billing",
    "Shipping",
)


def upgrade() -> None:
    """Create all tables."""

    op.create_table(
        "organizations",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), unique=True, nullable=False),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "roles",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column(
            "organization_id",
            mysql.CHAR(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("permissions", sa.JSON),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "name", name="uq_role_org_name"),
    )
    op.create_index("ix_roles_organization_id", "roles", ["organization_id"])

    op.create_table(
        "users",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column(
            "organization_id",
            mysql.CHAR(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("username", sa.String(100), unique=True, nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("super_admin", "admin", "member", name="userrole"),
            default="member",
        ),
        sa.Column(
            "role_id",
            mysql.CHAR(36),
            sa.ForeignKey("roles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("department", sa.Enum(*DEPARTMENTS, name="department"), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", name="userstatus"),
            default="active",
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime, nullable=True),
    )
    op.create_index("ix_users_organization_id", "users", ["organization_id"])

    op.create_table(
        "invitations",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column(
            "organization_id",
            mysql.CHAR(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "invited_by_id",
            mysql.CHAR(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "role_id",
            mysql.CHAR(36),
            sa.ForeignKey("roles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("department", sa.Enum(*DEPARTMENTS, name="department"), nullable=True),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column("token", sa.String(64), unique=True, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "accepted", "cancelled", "expired", name="invitationstatus"),
            default="pending",
        ),
        sa.Column("pending_email", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("accepted_at", sa.DateTime, nullable=True),
        sa.UniqueConstraint(
            "organization_id", "pending_email", name="uq_invitation_org_pending_email"
        ),
    )
    op.create_index("ix_invitations_organization_id", "invitations", ["organization_id"])
    op.create_index("ix_invitations_email", "invitations", ["email"])

    op.create_table(
        "audit_logs",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("user_id", mysql.CHAR(36), nullable=True),
        sa.Column("resource", sa.String(50), nullable=False),
        sa.Column("resource_id", mysql.CHAR(36), nullable=True),
        sa.Column("organization_id", mysql.CHAR(36), nullable=True),
        sa.Column(
            "severity",
            sa.Enum("info", "warning", "error", "critical", name="auditseverity"),
            default="info",
        ),
        sa.Column("details", sa.JSON),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_organization_id", "audit_logs", ["organization_id"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource", "resource_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("audit_logs")
    op.drop_table("invitations")
    op.drop_table("users")
    op.drop_table("roles")
    op.drop_table("organizations")
