"""Invitation lifecycle service.

Status changes go through the dedicated transition methods (``resend``,
``cancel``, ``accept`` and the expiry helpers); ``ALLOWED_TRANSITIONS`` is the
single table they consult. Resend, cancel and accept write with conditional
UPDATEs guarded on the status (and token) that was read, so two concurrent
transitions on the same invitation cannot both succeed.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from opshub.audit.service import list_audit_events, record_audit_event
from opshub.auth.utils import create_access_token
from opshub.config import get_settings
from opshub.db.models import (
    AuditLog,
    Invitation,
    InvitationStatus,
    Organization,
    Role,
    User,
    as_utc,
)
from opshub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from opshub.invitations.permissions import InvitationAction, Principal, authorize, classify
from opshub.invitations.provisioning import build_user_from_invitation
from opshub.invitations.schemas import (
    InvitationAccept,
    InvitationCreate,
    InvitationPreview,
    InvitationResponse,
    InvitationUpdate,
)
from opshub.invitations.tokens import generate_token, regenerate_token

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[InvitationStatus, frozenset[InvitationStatus]] = {
    InvitationStatus.PENDING: frozenset(
        {
            InvitationStatus.PENDING,
            InvitationStatus.ACCEPTED,
            InvitationStatus.CANCELLED,
            InvitationStatus.EXPIRED,
        }
    ),
    InvitationStatus.EXPIRED: frozenset({InvitationStatus.PENDING, InvitationStatus.CANCELLED}),
    InvitationStatus.ACCEPTED: frozenset(),
    InvitationStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({InvitationStatus.ACCEPTED, InvitationStatus.CANCELLED})

INVALID_TOKEN_MESSAGE = "Invitation not found, expired, or already used"


def ensure_transition(current: InvitationStatus, target: InvitationStatus) -> None:
    """Raise ConflictError if ``current -> target`` is not a legal transition.

    Args:
        current: Effective current status.
        target: Requested status.

    Raises:
        ConflictError: If the transition is not allowed.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        if target == InvitationStatus.PENDING:
            raise ConflictError(f"Cannot resend an already {current.value} invitation")
        raise ConflictError(f"Cannot mark a {current.value} invitation as {target.value}")


def normalize_email(email: str) -> str:
    """Lowercase and strip an email address."""
    return email.strip().lower()


def effective_status(invitation: Invitation, now: datetime | None = None) -> InvitationStatus:
    """Status with expiry applied, without mutating the record."""
    if invitation.status == InvitationStatus.PENDING and invitation.is_expired(now):
        return InvitationStatus.EXPIRED
    return invitation.status


class InvitationService:
    """Service class for invitation lifecycle operations."""

    def __init__(
        self,
        db: Session,
        actor: User | None = None,
        client: dict[str, str | None] | None = None,
    ):
        """Initialize invitation service.

        Args:
            db: Database session.
            actor: Authenticated user (None for public token operations).
            client: Caller ip/user agent recorded in audit entries.
        """
        self.db = db
        self.actor = actor
        self.principal: Principal | None = classify(actor) if actor else None
        self.client = client or {}
        self.settings = get_settings()

    # --- Helpers ---

    def _require_principal(self) -> Principal:
        if self.principal is None:
            raise ForbiddenError("Authentication required")
        return self.principal

    def _scoped_query(self) -> Query:
        """Invitations visible to the acting principal."""
        principal = self._require_principal()
        query = self.db.query(Invitation)
        if not principal.is_super_admin:
            query = query.filter(Invitation.organization_id == principal.organization_id)
        return query

    def _get_scoped(self, invitation_id: str) -> Invitation:
        invitation = self._scoped_query().filter(Invitation.id == invitation_id).first()
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    def _mark_expired_if_stale(self, invitation: Invitation, now: datetime) -> bool:
        """Persist the derived expired status on the record (no commit).

        Returns:
            bool: True if the record changed.
        """
        if effective_status(invitation, now) != InvitationStatus.EXPIRED:
            return False
        if invitation.status == InvitationStatus.EXPIRED:
            return False
        invitation.status = InvitationStatus.EXPIRED
        invitation.pending_email = None
        return True

    def _expiry_from_now(self, now: datetime) -> datetime:
        return now + timedelta(days=self.settings.invitation_expiry_days)

    def _notify(self, invitation: Invitation, base_url: str) -> None:
        """Send the invitation email; failures are logged and swallowed."""
        link_base = self.settings.frontend_base_url or base_url
        try:
            from opshub.email.service import get_email_service

            result = get_email_service().send_invitation_email(invitation, link_base)
            if not result.success:
                logger.warning(
                    f"Failed to send invitation email to {invitation.email}: {result.error}"
                )
        except Exception as e:
            logger.warning(f"Failed to send invitation email to {invitation.email}: {e}")

    def _audit(
        self,
        action: str,
        invitation: Invitation,
        details: dict | None = None,
        user_id: str | None = None,
    ) -> None:
        record_audit_event(
            self.db,
            action=action,
            resource="invitation",
            resource_id=invitation.id,
            user_id=user_id or (self.actor.id if self.actor else None),
            organization_id=invitation.organization_id,
            details={"invitee_email": invitation.email, **(details or {})},
            client=self.client,
        )

    def _find_role(self, role_id: str, organization_id: str) -> Role:
        role = (
            self.db.query(Role)
            .filter(Role.id == role_id, Role.organization_id == organization_id)
            .first()
        )
        if not role:
            raise NotFoundError("Role not found")
        return role

    @staticmethod
    def _future_expiry(value: datetime, now: datetime) -> datetime:
        expires_at = as_utc(value)
        if expires_at <= now:
            raise ValidationError("Expiration date must be in the future")
        return expires_at

    @staticmethod
    def to_response(invitation: Invitation) -> InvitationResponse:
        """Convert an Invitation model to its response schema.

        Args:
            invitation: Invitation model.

        Returns:
            InvitationResponse: Serializable invitation.
        """
        return InvitationResponse(
            id=invitation.id,
            email=invitation.email,
            organization_id=invitation.organization_id,
            organization_name=invitation.organization.name if invitation.organization else None,
            role_id=invitation.role_id,
            role_name=invitation.role.name if invitation.role else None,
            department=invitation.department.value if invitation.department else None,
            message=invitation.message,
            status=invitation.status.value,
            invited_by_id=invitation.invited_by_id,
            invited_by_name=invitation.invited_by.full_name if invitation.invited_by else None,
            expires_at=as_utc(invitation.expires_at),
            created_at=as_utc(invitation.created_at),
            updated_at=as_utc(invitation.updated_at),
            accepted_at=as_utc(invitation.accepted_at),
        )

    # --- Lifecycle operations ---

    def create_invitation(self, data: InvitationCreate, base_url: str) -> InvitationResponse:
        """Create an invitation and send its email.

        Args:
            data: Invitation data.
            base_url: Base URL for building the acceptance link.

        Returns:
            InvitationResponse: Created invitation.

        Raises:
            ForbiddenError: If the actor may not invite into the organization.
            ValidationError: If the organization or expiry is invalid.
            NotFoundError: If the organization or role does not exist.
            ConflictError: If a user or a pending invitation already exists.
        """
        principal = self._require_principal()
        authorize(principal, InvitationAction.CREATE)

        email = normalize_email(data.email)
        organization_id = data.organization or principal.organization_id
        if not organization_id:
            raise ValidationError("Organization is required")
        if organization_id != principal.organization_id and not principal.is_super_admin:
            raise ForbiddenError("You can only invite users to your own organization")

        organization = (
            self.db.query(Organization)
            .filter(Organization.id == organization_id, Organization.is_active)
            .first()
        )
        if not organization:
            raise NotFoundError("Organization not found")

        if self.db.query(User).filter(User.email == email).first():
            raise ConflictError("A user with this email already exists")

        now = datetime.now(UTC)
        existing = (
            self.db.query(Invitation)
            .filter(
                Invitation.organization_id == organization_id,
                Invitation.email == email,
                Invitation.status == InvitationStatus.PENDING,
            )
            .first()
        )
        if existing:
            if not existing.is_expired(now):
                raise ConflictError("An invitation has already been sent to this email address")
            # Stale pending row: retire it so the new one can take its slot
            self._mark_expired_if_stale(existing, now)
            self.db.flush()

        role_id = None
        if data.role:
            role_id = self._find_role(data.role, organization_id).id

        if data.expires_at:
            expires_at = self._future_expiry(data.expires_at, now)
        else:
            expires_at = self._expiry_from_now(now)

        invitation = Invitation(
            organization_id=organization_id,
            invited_by_id=principal.user_id,
            email=email,
            role_id=role_id,
            department=data.department,
            message=data.message.strip() if data.message else None,
            token=generate_token(),
            status=InvitationStatus.PENDING,
            pending_email=email,
            expires_at=expires_at,
        )
        self.db.add(invitation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("An invitation has already been sent to this email address")
        self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.id} created for {email} in {organization_id}")

        self._notify(invitation, base_url)
        self._audit(
            "Invitation Created",
            invitation,
            {
                "role_id": role_id,
                "department": data.department.value if data.department else None,
                "expires_at": as_utc(invitation.expires_at).isoformat(),
            },
        )
        return self.to_response(invitation)

    def list_invitations(self, organization_id: str | None = None) -> list[InvitationResponse]:
        """List visible invitations, persisting derived expiry.

        Args:
            organization_id: Optional organization filter.

        Returns:
            list[InvitationResponse]: Invitations, newest first.

        Raises:
            ForbiddenError: If filtering on another organization without super admin rights.
        """
        principal = self._require_principal()
        query = self._scoped_query()
        if organization_id:
            if not principal.is_super_admin and organization_id != principal.organization_id:
                raise ForbiddenError("You can only view invitations of your own organization")
            query = query.filter(Invitation.organization_id == organization_id)

        invitations = query.order_by(Invitation.created_at.desc()).all()

        now = datetime.now(UTC)
        changed = False
        for invitation in invitations:
            changed = self._mark_expired_if_stale(invitation, now) or changed
        if changed:
            self.db.commit()

        return [self.to_response(inv) for inv in invitations]

    def get_invitation(self, invitation_id: str) -> InvitationResponse:
        """Get one visible invitation.

        Args:
            invitation_id: Invitation UUID.

        Returns:
            InvitationResponse: Invitation.

        Raises:
            NotFoundError: If not found in scope.
        """
        invitation = self._get_scoped(invitation_id)
        if self._mark_expired_if_stale(invitation, datetime.now(UTC)):
            self.db.commit()
        return self.to_response(invitation)

    def resend_invitation(self, invitation_id: str, base_url: str) -> InvitationResponse:
        """Issue a new token and a fresh expiry, then resend the email.

        Args:
            invitation_id: Invitation UUID.
            base_url: Base URL for building the acceptance link.

        Returns:
            InvitationResponse: Updated invitation.

        Raises:
            NotFoundError: If not found in scope.
            ConflictError: If accepted/cancelled, modified concurrently, or the
                (email, organization) slot is taken by another pending invitation.
        """
        invitation = self._get_scoped(invitation_id)
        authorize(self._require_principal(), InvitationAction.RESEND, invitation)

        now = datetime.now(UTC)
        ensure_transition(effective_status(invitation, now), InvitationStatus.PENDING)

        previous_token = invitation.token
        new_expiry = self._expiry_from_now(now)
        try:
            updated = (
                self.db.query(Invitation)
                .filter(
                    Invitation.id == invitation.id,
                    Invitation.token == previous_token,
                    Invitation.status == invitation.status,
                )
                .update(
                    {
                        Invitation.token: regenerate_token(previous_token),
                        Invitation.expires_at: new_expiry,
                        Invitation.status: InvitationStatus.PENDING,
                        Invitation.pending_email: invitation.email,
                        Invitation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Another pending invitation already exists for this email address")

        if updated != 1:
            self.db.rollback()
            raise ConflictError("Invitation was modified concurrently, please retry")

        self.db.commit()
        self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.id} resent to {invitation.email}")

        self._notify(invitation, base_url)
        self._audit(
            "Invitation Resent",
            invitation,
            {"new_expiration": as_utc(invitation.expires_at).isoformat()},
        )
        return self.to_response(invitation)

    def cancel_invitation(self, invitation_id: str) -> InvitationResponse:
        """Cancel an invitation. Cancelling a cancelled invitation is a no-op.

        Args:
            invitation_id: Invitation UUID.

        Returns:
            InvitationResponse: Cancelled invitation.

        Raises:
            NotFoundError: If not found in scope.
            ConflictError: If already accepted or modified concurrently.
        """
        invitation = self._get_scoped(invitation_id)
        authorize(self._require_principal(), InvitationAction.CANCEL, invitation)

        if invitation.status == InvitationStatus.CANCELLED:
            return self.to_response(invitation)

        ensure_transition(effective_status(invitation), InvitationStatus.CANCELLED)

        updated = (
            self.db.query(Invitation)
            .filter(Invitation.id == invitation.id, Invitation.status == invitation.status)
            .update(
                {
                    Invitation.status: InvitationStatus.CANCELLED,
                    Invitation.pending_email: None,
                    Invitation.updated_at: datetime.now(UTC),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise ConflictError("Invitation was modified concurrently, please retry")

        self.db.commit()
        self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.id} cancelled")

        self._audit("Invitation Cancelled", invitation)
        return self.to_response(invitation)

    def update_invitation(self, invitation_id: str, data: InvitationUpdate) -> InvitationResponse:
        """Update role, department, message or expiry of an invitation.

        A ``status`` of ``cancelled`` is applied through ``cancel_invitation``;
        any other status change must use the dedicated endpoints.

        Args:
            invitation_id: Invitation UUID.
            data: Fields to update.

        Returns:
            InvitationResponse: Updated invitation.

        Raises:
            NotFoundError: If the invitation or role is not found.
            ValidationError: If a status other than cancelled is requested or the expiry is invalid.
            ConflictError: If editing a terminal invitation.
        """
        invitation = self._get_scoped(invitation_id)
        authorize(self._require_principal(), InvitationAction.UPDATE, invitation)

        fields = data.model_dump(exclude_unset=True)
        requested_status = fields.pop("status", None)
        now = datetime.now(UTC)
        current = effective_status(invitation, now)

        if requested_status is not None and requested_status not in (
            invitation.status,
            InvitationStatus.CANCELLED,
        ):
            raise ValidationError(
                "Status can only be changed to cancelled here; use resend or accept instead"
            )

        if fields:
            if current in TERMINAL_STATUSES:
                raise ConflictError(f"Cannot modify a {current.value} invitation")

            if "role" in fields:
                role = fields["role"]
                invitation.role_id = (
                    self._find_role(role, invitation.organization_id).id if role else None
                )
            if "department" in fields:
                invitation.department = fields["department"]
            if "message" in fields:
                message = fields["message"]
                invitation.message = message.strip() if message else None
            if "expires_at" in fields:
                if fields["expires_at"] is None:
                    raise ValidationError("Expiration date cannot be empty")
                invitation.expires_at = self._future_expiry(fields["expires_at"], now)

            invitation.updated_at = now
            self.db.commit()
            self.db.refresh(invitation)
            self._audit(
                "Invitation Updated",
                invitation,
                {"fields": sorted(fields)},
            )

        if requested_status == InvitationStatus.CANCELLED:
            return self.cancel_invitation(invitation_id)

        return self.to_response(invitation)

    def delete_invitation(self, invitation_id: str) -> None:
        """Hard-delete an invitation.

        Args:
            invitation_id: Invitation UUID.

        Raises:
            NotFoundError: If not found in scope.
        """
        invitation = self._get_scoped(invitation_id)
        authorize(self._require_principal(), InvitationAction.DELETE, invitation)

        organization_id = invitation.organization_id
        email = invitation.email
        self.db.delete(invitation)
        self.db.commit()
        logger.info(f"Invitation {invitation_id} deleted")

        record_audit_event(
            self.db,
            action="Invitation Deleted",
            resource="invitation",
            resource_id=invitation_id,
            user_id=self.actor.id if self.actor else None,
            organization_id=organization_id,
            details={"invitee_email": email},
            client=self.client,
        )

    def get_audit_trail(self, invitation_id: str) -> list[AuditLog]:
        """List audit entries for a visible invitation.

        Args:
            invitation_id: Invitation UUID.

        Returns:
            list[AuditLog]: Audit entries, oldest first.
        """
        invitation = self._get_scoped(invitation_id)
        return list_audit_events(self.db, "invitation", invitation.id)

    # --- Public token operations ---

    def _find_acceptable(self, token: str) -> Invitation:
        """Find a pending, unexpired invitation by token.

        Raises:
            NotFoundError: If the token is unknown, used, cancelled or expired.
        """
        invitation = (
            self.db.query(Invitation)
            .filter(Invitation.token == token, Invitation.status == InvitationStatus.PENDING)
            .first()
        )
        if not invitation:
            raise NotFoundError(INVALID_TOKEN_MESSAGE)

        if self._mark_expired_if_stale(invitation, datetime.now(UTC)):
            self.db.commit()
            raise NotFoundError(INVALID_TOKEN_MESSAGE)

        return invitation

    def preview_invitation(self, token: str) -> InvitationPreview:
        """Get invitation details for the acceptance page.

        Args:
            token: Invitation token.

        Returns:
            InvitationPreview: Invitation details.

        Raises:
            NotFoundError: If the token is not acceptable.
        """
        invitation = self._find_acceptable(token)
        return InvitationPreview(
            email=invitation.email,
            organization_name=invitation.organization.name,
            role_name=invitation.role.name if invitation.role else None,
            department=invitation.department.value if invitation.department else None,
            message=invitation.message,
            invited_by_name=invitation.invited_by.full_name if invitation.invited_by else None,
            expires_at=as_utc(invitation.expires_at),
        )

    def accept_invitation(self, data: InvitationAccept) -> tuple[User, str, Invitation]:
        """Accept an invitation and provision the invitee's account.

        Args:
            data: Token, full name, password and optional username.

        Returns:
            tuple: (new User, access token, accepted Invitation).

        Raises:
            ValidationError: If required fields are missing or the password is too short.
            NotFoundError: If the token is unknown, used, cancelled or expired.
            ConflictError: If the email or username is already taken.
        """
        token = data.token.strip()
        full_name = data.full_name.strip()
        if not token or not full_name or not data.password:
            raise ValidationError("Token, full name, and password are required")
        min_length = self.settings.password_min_length
        if len(data.password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters long")

        invitation = self._find_acceptable(token)

        if self.db.query(User).filter(User.email == invitation.email).first():
            raise ConflictError("A user with this email already exists")

        username = data.username.strip() if data.username else None
        if username and self.db.query(User).filter(User.username == username).first():
            raise ConflictError("Username is already taken")

        now = datetime.now(UTC)
        claimed = (
            self.db.query(Invitation)
            .filter(
                Invitation.id == invitation.id,
                Invitation.token == token,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > now,
            )
            .update(
                {
                    Invitation.status: InvitationStatus.ACCEPTED,
                    Invitation.accepted_at: now,
                    Invitation.pending_email: None,
                    Invitation.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if claimed != 1:
            self.db.rollback()
            raise NotFoundError(INVALID_TOKEN_MESSAGE)

        user = build_user_from_invitation(invitation, full_name, data.password, username)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A user with this email or username already exists")

        self.db.refresh(user)
        self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.id} accepted, user {user.id} provisioned")

        access_token = create_access_token(user.id, user.organization_id, user.email)

        self._audit(
            "Invitation Accepted",
            invitation,
            {
                "role_id": invitation.role_id,
                "department": invitation.department.value if invitation.department else None,
            },
            user_id=user.id,
        )
        record_audit_event(
            self.db,
            action="User Created via Invitation",
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            organization_id=user.organization_id,
            details={"email": user.email, "full_name": user.full_name},
            client=self.client,
        )
        return user, access_token, invitation


def expire_stale_invitations(db: Session, now: datetime | None = None) -> int:
    """Mark every pending invitation past its deadline as expired.

    Args:
        db: Database session.
        now: Reference time (defaults to current UTC time).

    Returns:
        int: Number of invitations expired.
    """
    now = now or datetime.now(UTC)
    expired = (
        db.query(Invitation)
        .filter(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now)
        .update(
            {
                Invitation.status: InvitationStatus.EXPIRED,
                Invitation.pending_email: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return expired


def get_invitation_service(
    db: Session,
    actor: User | None = None,
    client: dict[str, str | None] | None = None,
) -> InvitationService:
    """Factory function for InvitationService.

    Args:
        db: Database session.
        actor: Authenticated user.
        client: Caller ip/user agent.

    Returns:
        InvitationService: Invitation service instance.
    """
    return InvitationService(db, actor, client)
