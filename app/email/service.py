"""Email service for transactional mail (invitations)."""

import html
import logging
import re
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from app.config import Settings, get_settings
from app.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via Mailjet or SMTP.

    Attributes:
        settings: Application settings containing mail configuration.
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize the email service with settings."""
        self.settings = settings or get_settings()

    @property
    def app_name(self) -> str:
        """Get the application name from settings."""
        return self.settings.app_name

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

        try:
            if not self.settings.smtp_use_tls:
                server.starttls()
            if self.settings.smtp_user and self.settings.smtp_password:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
        except Exception:
            server.close()
            raise

        return server

    def _send_smtp(self, to_email: str, subject: str, body_html: str, body_text: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.settings.mail_sender_name} <{self.settings.mail_sender_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        try:
            with self._create_smtp_connection() as server:
                server.sendmail(self.settings.mail_sender_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(f"SMTP error: {e}") from e

    def _send_mailjet(self, to_email: str, subject: str, body_html: str, body_text: str) -> None:
        payload = {
            "Messages": [
                {
                    "From": {
                        "Email": self.settings.mail_sender_email,
                        "Name": self.settings.mail_sender_name,
                    },
                    "To": [{"Email": to_email, "Name": to_email}],
                    "Subject": subject,
                    "TextPart": body_text,
                    "HTMLPart": body_html,
                }
            ]
        }

        try:
            response = httpx.post(
                self.settings.mailjet_api_url,
                json=payload,
                auth=(self.settings.mailjet_api_key, self.settings.mailjet_secret_key),
                timeout=15.0,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MailDeliveryError(
                f"Mailjet returned HTTP {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise MailDeliveryError(f"Failed to reach Mailjet: {e}") from e

    def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> bool:
        """Send an email.

        Args:
            to_email: Recipient email address.
            subject: Email subject.
            body_html: HTML body content.
            body_text: Plain text body (optional, generated from HTML if not provided).

        Returns:
            bool: True if email sent successfully, False otherwise.
        """
        if body_text is None:
            body_text = re.sub(r"<[^>]+>", "", body_html)
            body_text = re.sub(r"\s+", " ", body_text).strip()

        try:
            if self.settings.mail_backend == "smtp":
                self._send_smtp(to_email, subject, body_html, body_text)
            else:
                self._send_mailjet(to_email, subject, body_html, body_text)
        except MailDeliveryError as e:
            logger.error(f"Error sending email to {to_email}: {e}")
            return False

        logger.info(f"Email sent successfully to {to_email}: {subject}")
        return True

    def render_invitation(
        self, tenant_name: str, inviter_name: str, invitation_link: str, expires_hours: int
    ) -> tuple[str, str]:
        """Render subject and HTML body of an invitation email.

        Returns:
            tuple: Subject and HTML body.
        """
        tenant = html.escape(tenant_name)
        inviter = html.escape(inviter_name)
        link = html.escape(invitation_link, quote=True)

        subject = f"Invitation to join {tenant_name}"
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>You've been invited to join {tenant}</h2>
            <p>{inviter} has invited you to join <strong>{tenant}</strong> on {html.escape(self.app_name)}.</p>
            <p style="margin: 20px 0;">
                <a href="{link}" style="background-color: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
                    Accept Invitation
                </a>
            </p>
            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #2563eb;">{link}</p>
            <p><strong>This invitation expires in {expires_hours} hours.</strong></p>
            <p>If you weren't expecting this invitation, you can safely ignore this email.</p>
        </body>
        </html>
        """
        return subject, body_html

    def send_invitation_email(
        self,
        to_email: str,
        tenant_name: str,
        inviter_name: str,
        invitation_link: str,
        expires_hours: int | None = None,
    ) -> bool:
        """Send an invitation email to a prospective member.

        Args:
            to_email: Invitee's email address.
            tenant_name: Name of the inviting tenant.
            inviter_name: Name of the person sending the invitation.
            invitation_link: Full URL embedding the invitation token.
            expires_hours: Hours until the invitation expires.

        Returns:
            bool: True if sent successfully.
        """
        subject, body_html = self.render_invitation(
            tenant_name,
            inviter_name,
            invitation_link,
            expires_hours or self.settings.invitation_expire_hours,
        )
        return self.send_email(to_email, subject, body_html)
