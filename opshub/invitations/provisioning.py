"""User provisioning from accepted invitations."""

from datetime import UTC, datetime

from opshub.auth.utils import get_password_hash
from opshub.db.models import Invitation, User, UserRole, UserStatus


def build_user_from_invitation(
    invitation: Invitation,
    full_name: str,
    password: str,
    username: str | None = None,
) -> User:
    """Build an active member account bound to the invitation's organization.

    The account is usable immediately; invited users skip email verification.

    Args:
        invitation: Invitation being accepted.
        full_name: Invitee's full name.
        password: Plain text password (hashed here).
        username: Optional unique handle.

    Returns:
        User: Unsaved user.
    """
    return User(
        organization_id=invitation.organization_id,
        email=invitation.email,
        username=username or None,
        full_name=full_name.strip(),
        password_hash=get_password_hash(password),
        role=UserRole.MEMBER,
        role_id=invitation.role_id,
        department=invitation.department,
        status=UserStatus.ACTIVE,
        last_login=datetime.now(UTC),
    )
