"""Transactional email for account approval.

WHAT:
    Sends the "your account has been approved" email via Resend.

WHY:
    Customers wait for admin approval after registering; the email tells them
    they can log in. Delivery is fire-and-forget: approval never depends on it.

DESIGN:
    - Without RESEND_API_KEY the send is logged and reported as a mock
      success (local development, tests).
    - Failures are logged and returned in EmailResult, never raised.

REFERENCES:
    - Resend Python SDK: https://resend.com/docs/api-reference/emails/send-email
    - portal/routers/admin.py (schedules the send as a background task)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import resend

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    recipients: List[str] = field(default_factory=list)


class EmailService:
    """
    Usage:
        service = EmailService.from_settings()
        service.send_approval_email("jane@acme.de", "Jane")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: str = "NextMove Portal <portal@nextmove-consulting.de>",
        portal_url: str = "https://app.nextmove-consulting.de",
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.portal_url = portal_url.rstrip("/")

    @classmethod
    def from_settings(cls) -> "EmailService":
        from portal.deps import get_settings

        settings = get_settings()
        return cls(
            api_key=settings.RESEND_API_KEY,
            from_email=settings.RESEND_FROM_EMAIL,
            portal_url=settings.FRONTEND_URL,
        )

    def send_approval_email(self, to: str, first_name: str) -> EmailResult:
        subject = "Your portal account has been approved"
        login_url = f"{self.portal_url}/login"
        text = (
            f"Hi {first_name},\n\n"
            "your account has been approved. You can now log in and start onboarding:\n"
            f"{login_url}\n"
        )
        html = (
            f"<p>Hi {first_name},</p>"
            "<p>your account has been approved. You can now log in and start onboarding.</p>"
            f'<p><a href="{login_url}">Log in</a></p>'
        )
        return self._send(to=[to], subject=subject, html=html, text=text)

    def _send(self, to: List[str], subject: str, html: str, text: str) -> EmailResult:
        if not self.api_key:
            logger.warning(f"[EMAIL] Resend not configured, would send: {subject} to {to}")
            return EmailResult(success=True, message_id="mock", recipients=to)

        try:
            resend.api_key = self.api_key
            response = resend.Emails.send({
                "from": self.from_email,
                "to": to,
                "subject": subject,
                "html": html,
                "text": text,
            })
            message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
            logger.info(f"[EMAIL] Sent: {subject} to {to}, id={message_id}")
            return EmailResult(success=True, message_id=message_id, recipients=to)
        except Exception as e:
            logger.exception(f"[EMAIL] Failed to send email: {e}")
            return EmailResult(success=False, error=str(e), recipients=to)
