"""Database module."""

from opshub.db.database import SessionLocal, engine, init_db
from opshub.db.models import AuditLog, Base, Invitation, Organization, Role, User

__all__ = [
    "SessionLocal",
    "engine",
    "init_db",
    "Base",
    "Organization",
    "Role",
    "User",
    "Invitation",
    "AuditLog",
]
