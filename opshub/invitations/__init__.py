"""Invitation lifecycle module."""

from opshub.invitations.router import router
from opshub.invitations.service import InvitationService, get_invitation_service

__all__ = [
    "router",
    "InvitationService",
    "get_invitation_service",
]
