"""Invitation API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from opshub.auth.schemas import user_to_response
from opshub.db.models import as_utc
from opshub.dependencies import ClientInfo, CurrentUser, DbSession
from opshub.invitations.schemas import (
    AcceptedInvitation,
    AuditEntryResponse,
    AuditTrailEnvelope,
    InvitationAccept,
    InvitationAcceptEnvelope,
    InvitationCreate,
    InvitationEnvelope,
    InvitationListEnvelope,
    InvitationPreviewEnvelope,
    InvitationUpdate,
    MessageEnvelope,
)
from opshub.invitations.service import InvitationService, get_invitation_service

router = APIRouter()


def get_service(
    db: DbSession,
    current_user: CurrentUser,
    client: ClientInfo,
) -> InvitationService:
    """Get invitation service dependency (authenticated)."""
    return get_invitation_service(db, current_user, client)


def get_public_service(db: DbSession, client: ClientInfo) -> InvitationService:
    """Get invitation service dependency for token-holder endpoints."""
    return get_invitation_service(db, client=client)


Service = Annotated[InvitationService, Depends(get_service)]
PublicService = Annotated[InvitationService, Depends(get_public_service)]


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


# --- Public endpoints ---


@router.post("/accept", response_model=InvitationAcceptEnvelope)
async def accept_invitation(data: InvitationAccept, service: PublicService):
    """Accept an invitation and create the invitee's account.

    Args:
        data: Token, full name, password and optional username.
        service: Invitation service.

    Returns:
        InvitationAcceptEnvelope: New user, access token and accepted invitation.
    """
    user, access_token, invitation = service.accept_invitation(data)
    return InvitationAcceptEnvelope(
        message="Invitation accepted successfully",
        user=user_to_response(user),
        token=access_token,
        invitation=AcceptedInvitation(
            id=invitation.id,
            status=invitation.status.value,
            organization_id=invitation.organization_id,
            accepted_at=as_utc(invitation.accepted_at),
        ),
    )


@router.get("/token/{token}", response_model=InvitationPreviewEnvelope)
async def preview_invitation(token: str, service: PublicService):
    """Validate a token and return invitation details for the acceptance page.

    Args:
        token: Invitation token.
        service: Invitation service.

    Returns:
        InvitationPreviewEnvelope: Invitation details.
    """
    return InvitationPreviewEnvelope(invitation=service.preview_invitation(token))


# --- Authenticated endpoints ---


@router.get("/email-config")
async def get_email_config(_user: CurrentUser):
    """Report whether outgoing email is configured.

    Returns:
        dict: Configuration summary (never includes the SMTP password).
    """
    from opshub.email.service import get_email_service

    return {"success": True, **get_email_service().check_configuration()}


@router.post("", response_model=InvitationEnvelope, status_code=status.HTTP_201_CREATED)
async def create_invitation(data: InvitationCreate, request: Request, service: Service):
    """Create an invitation and send it by email.

    Args:
        data: Invitation data.
        request: FastAPI request object.
        service: Invitation service.

    Returns:
        InvitationEnvelope: Created invitation.
    """
    invitation = service.create_invitation(data, _base_url(request))
    return InvitationEnvelope(message="Invitation sent successfully", invitation=invitation)


@router.get("", response_model=InvitationListEnvelope)
async def list_invitations(
    service: Service,
    organization_id: Annotated[str | None, Query(alias="organizationId")] = None,
):
    """List invitations visible to the current user.

    Args:
        service: Invitation service.
        organization_id: Optional organization filter.

    Returns:
        InvitationListEnvelope: Invitations, newest first.
    """
    return InvitationListEnvelope(invitations=service.list_invitations(organization_id))


@router.get("/{invitation_id}", response_model=InvitationEnvelope)
async def get_invitation(invitation_id: str, service: Service):
    """Get an invitation by ID."""
    return InvitationEnvelope(invitation=service.get_invitation(invitation_id))


@router.put("/{invitation_id}", response_model=InvitationEnvelope)
async def update_invitation(invitation_id: str, data: InvitationUpdate, service: Service):
    """Update an invitation.

    Args:
        invitation_id: Invitation UUID.
        data: Fields to change.
        service: Invitation service.

    Returns:
        InvitationEnvelope: Updated invitation.
    """
    invitation = service.update_invitation(invitation_id, data)
    return InvitationEnvelope(message="Invitation updated successfully", invitation=invitation)


@router.delete("/{invitation_id}", response_model=MessageEnvelope)
async def delete_invitation(invitation_id: str, service: Service):
    """Delete an invitation."""
    service.delete_invitation(invitation_id)
    return MessageEnvelope(message="Invitation deleted successfully")


@router.post("/{invitation_id}/resend", response_model=InvitationEnvelope)
async def resend_invitation(invitation_id: str, request: Request, service: Service):
    """Issue a new token and resend the invitation email.

    Args:
        invitation_id: Invitation UUID.
        request: FastAPI request object.
        service: Invitation service.

    Returns:
        InvitationEnvelope: Updated invitation.
    """
    invitation = service.resend_invitation(invitation_id, _base_url(request))
    return InvitationEnvelope(message="Invitation resent successfully", invitation=invitation)


@router.post("/{invitation_id}/cancel", response_model=InvitationEnvelope)
async def cancel_invitation(invitation_id: str, service: Service):
    """Cancel an invitation."""
    invitation = service.cancel_invitation(invitation_id)
    return InvitationEnvelope(message="Invitation cancelled successfully", invitation=invitation)


@router.get("/{invitation_id}/audit", response_model=AuditTrailEnvelope)
async def get_invitation_audit(invitation_id: str, service: Service):
    """List audit entries recorded for an invitation.

    Args:
        invitation_id: Invitation UUID.
        service: Invitation service.

    Returns:
        AuditTrailEnvelope: Entries, oldest first.
    """
    entries = service.get_audit_trail(invitation_id)
    return AuditTrailEnvelope(
        entries=[
            AuditEntryResponse(
                id=entry.id,
                action=entry.action,
                user_id=entry.user_id,
                severity=entry.severity.value,
                details=entry.details or {},
                created_at=as_utc(entry.created_at),
            )
            for entry in entries
        ]
    )
