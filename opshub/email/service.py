"""Email service for sending invitation notifications."""

import html
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from opshub.config import get_settings
from opshub.db.models import Invitation, as_utc

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of a delivery attempt.

    Attributes:
        success: Whether the SMTP server accepted the message.
        error: Failure description when success is False.
    """

    success: bool
    error: str | None = None


class EmailService:
    """Service for sending emails via SMTP.

    Attributes:
        settings: Application settings containing SMTP configuration.
    """

    def __init__(self):
        """Initialize the email service with settings."""
        self.settings = get_settings()

    @property
    def app_name(self) -> str:
        """Get the application name from settings."""
        return self.settings.app_name

    def check_configuration(self) -> dict[str, object]:
        """Report which SMTP settings are missing.

        Returns:
            dict: ``configured`` flag, ``missing`` setting names and the
            host/port/sender in use.
        """
        required = {
            "smtp_host": self.settings.smtp_host,
            "smtp_from_email": self.settings.smtp_from_email,
        }
        if self.settings.smtp_user or self.settings.smtp_password:
            # Credentials must be supplied as a pair
            required["smtp_user"] = self.settings.smtp_user
            required["smtp_password"] = self.settings.smtp_password

        missing = [name for name, value in required.items() if not value]
        return {
            "configured": not missing,
            "missing": missing,
            "host": self.settings.smtp_host,
            "port": self.settings.smtp_port,
            "from_email": self.settings.smtp_from_email,
            "use_tls": self.settings.smtp_use_tls,
        }

    def _create_smtp_connection(self) -> smtplib.SMTP_SSL | smtplib.SMTP:
        """Create an SMTP connection based on settings.

        Returns:
            SMTP connection object.

        Raises:
            smtplib.SMTPException: If connection fails.
        """
        if self.settings.smtp_use_tls:
            # Use SSL/TLS from the start (port 465)
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(
                self.settings.smtp_host,
                self.settings.smtp_port,
                context=context,
            )
        else:
            # Use STARTTLS (port 587)
            server = smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
            )
            server.starttls()

        if self.settings.smtp_user and self.settings.smtp_password:
            server.login(self.settings.smtp_user, self.settings.smtp_password)

        return server

    def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> DeliveryResult:
        """Send an email.

        Args:
            to_email: Recipient email address.
            subject: Email subject.
            body_html: HTML body content.
            body_text: Plain text body (optional, generated from HTML if not provided).

        Returns:
            DeliveryResult: Delivery outcome.
        """
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
            msg["To"] = to_email

            if body_text is None:
                body_text = re.sub(r"<[^>]+>", "", body_html)
                body_text = re.sub(r"\s+", " ", body_text).strip()

            msg.attach(MIMEText(body_text, "plain"))
            msg.attach(MIMEText(body_html, "html"))

            with self._create_smtp_connection() as server:
                server.sendmail(
                    self.settings.smtp_from_email,
                    to_email,
                    msg.as_string(),
                )

            logger.info(f"Email sent successfully to {to_email}: {subject}")
            return DeliveryResult(success=True)

        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending email to {to_email}: {e}")
            return DeliveryResult(success=False, error=str(e))
        except OSError as e:
            logger.error(f"Connection error sending email to {to_email}: {e}")
            return DeliveryResult(success=False, error=str(e))

    def send_invitation_email(self, invitation: Invitation, base_url: str) -> DeliveryResult:
        """Send the acceptance link for an invitation.

        Args:
            invitation: Invitation with organization, inviter and role loaded.
            base_url: Base URL of the web client.

        Returns:
            DeliveryResult: Delivery outcome.
        """
        config = self.check_configuration()
        if not config["configured"]:
            missing = ", ".join(config["missing"])
            return DeliveryResult(success=False, error=f"Email configuration incomplete: {missing}")

        organization_name = invitation.organization.name if invitation.organization else ""
        inviter_name = invitation.invited_by.full_name if invitation.invited_by else "An administrator"
        accept_url = f"{base_url.rstrip('/')}/accept-invitation?token={invitation.token}"
        expires_on = as_utc(invitation.expires_at).strftime("%d %B %Y")

        details = [f"<li><strong>Organization:</strong> {html.escape(organization_name)}</li>"]
        if invitation.role:
            details.append(f"<li><strong>Role:</strong> {html.escape(invitation.role.name)}</li>")
        if invitation.department:
            details.append(f"<li><strong>Department:</strong> {invitation.department.value}</li>")
        details.append(f"<li><strong>Expires:</strong> {expires_on}</li>")

        note = ""
        if invitation.message:
            note = (
                f"<p><strong>Message from {html.escape(inviter_name)}:</strong><br>"
                f"{html.escape(invitation.message)}</p>"
            )

        subject = f"You've been invited to join {organization_name}"
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>You've been invited to join {html.escape(organization_name)}</h2>
            <p>{html.escape(inviter_name)} has invited you to join
            <strong>{html.escape(organization_name)}</strong> on {self.app_name}.</p>
            <ul>{"".join(details)}</ul>
            {note}
            <p style="margin: 20px 0;">
                <a href="{accept_url}" style="background-color: #000F89; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
                    Accept Invitation
                </a>
            </p>
            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #000F89;">{accept_url}</p>
            <p>If you weren't expecting this invitation, you can safely ignore this email.</p>
            <p>Best regards,<br>The {self.app_name} Team</p>
        </body>
        </html>
        """
        return self.send_email(invitation.email, subject, body_html)


# Singleton instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton.

    Returns:
        EmailService: The email service instance.
    """
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
