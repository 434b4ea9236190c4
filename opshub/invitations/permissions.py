"""Authorization gate for invitation management.

Every acting user is classified into exactly one ``PrincipalKind`` and the
decision for an action is taken in ``authorize``. Creators of an invitation may
always update, cancel or delete it.
"""

import enum
from dataclasses import dataclass, field

from opshub.config import get_settings
from opshub.db.models import Invitation, User, UserRole
from opshub.errors import ForbiddenError

INVITE_CAPABILITIES = frozenset({"invite_users", "user_management", "admin_access"})


class PrincipalKind(str, enum.Enum):
    """How an acting user is authorized."""

    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    PERMISSION_BASED = "permission_based"
    ORG_MEMBER = "org_member"
    NONE = "none"


class InvitationAction(str, enum.Enum):
    """Gated invitation operations."""

    CREATE = "create"
    RESEND = "resend"
    UPDATE = "update"
    CANCEL = "cancel"
    DELETE = "delete"


CREATOR_ACTIONS = frozenset(
    {InvitationAction.UPDATE, InvitationAction.CANCEL, InvitationAction.DELETE}
)


@dataclass(frozen=True)
class Principal:
    """Classified acting user.

    Attributes:
        user_id: Acting user ID.
        organization_id: Organization the user belongs to.
        kind: Authorization class.
        capabilities: Granted invite capabilities (PERMISSION_BASED only).
    """

    user_id: str
    organization_id: str | None
    kind: PrincipalKind
    capabilities: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_super_admin(self) -> bool:
        return self.kind == PrincipalKind.SUPER_ADMIN


def role_capabilities(permissions: dict | None) -> frozenset[str]:
    """Collect enabled capabilities from a role permission map.

    A capability counts as granted when its value is true, or when it is a
    nested map with at least one true entry.

    Args:
        permissions: Role permission map.

    Returns:
        frozenset[str]: Enabled capability names.
    """
    granted = set()
    for name, value in (permissions or {}).items():
        if isinstance(value, dict):
            if any(bool(v) for v in value.values()):
                granted.add(name)
        elif value is True:
            granted.add(name)
    return frozenset(granted)


def classify(user: User) -> Principal:
    """Classify a user for the authorization gate.

    Args:
        user: Acting user.

    Returns:
        Principal: Classified principal.
    """
    if user.role == UserRole.SUPER_ADMIN:
        kind = PrincipalKind.SUPER_ADMIN
        capabilities = frozenset()
    elif user.role == UserRole.ADMIN:
        kind = PrincipalKind.ORG_ADMIN
        capabilities = frozenset()
    else:
        role = user.assigned_role
        capabilities = role_capabilities(role.permissions if role else None) & INVITE_CAPABILITIES
        if capabilities:
            kind = PrincipalKind.PERMISSION_BASED
        elif user.organization_id:
            kind = PrincipalKind.ORG_MEMBER
        else:
            kind = PrincipalKind.NONE

    return Principal(
        user_id=user.id,
        organization_id=user.organization_id,
        kind=kind,
        capabilities=capabilities,
    )


def is_allowed(
    principal: Principal,
    action: InvitationAction,
    invitation: Invitation | None = None,
    member_fallback: bool | None = None,
) -> bool:
    """Decide whether a principal may perform an action.

    Args:
        principal: Classified acting user.
        action: Requested operation.
        invitation: Target invitation for existing-record actions.
        member_fallback: Override for the ``invitation_member_fallback`` setting.

    Returns:
        bool: True if allowed.
    """
    if (
        invitation is not None
        and action in CREATOR_ACTIONS
        and invitation.invited_by_id == principal.user_id
    ):
        return True

    if member_fallback is None:
        member_fallback = get_settings().invitation_member_fallback

    decisions = {
        PrincipalKind.SUPER_ADMIN: True,
        PrincipalKind.ORG_ADMIN: True,
        PrincipalKind.PERMISSION_BASED: bool(principal.capabilities & INVITE_CAPABILITIES),
        PrincipalKind.ORG_MEMBER: member_fallback,
        PrincipalKind.NONE: False,
    }
    return decisions[principal.kind]


def authorize(
    principal: Principal,
    action: InvitationAction,
    invitation: Invitation | None = None,
) -> None:
    """Raise ForbiddenError unless the action is allowed.

    Args:
        principal: Classified acting user.
        action: Requested operation.
        invitation: Target invitation for existing-record actions.

    Raises:
        ForbiddenError: If the principal may not perform the action.
    """
    if not is_allowed(principal, action, invitation):
        raise ForbiddenError(f"You are not authorized to {action.value} invitations")
