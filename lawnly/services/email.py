# lawnly/services/email.py
"""
Email Service for the Lawnly booking core.

Thin wrapper over the Resend API used by the outbox delivery handlers.
Email is a best-effort side channel: when Resend is not configured or
email is disabled the send is skipped and logged.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger = logging.getLogger(__name__)


class EmailService(BaseService):
    """Service for sending emails using the Resend API."""

    def __init__(self, db: Session):
        super().__init__(db)
        api_key = settings.resend_api_key
        self.enabled = bool(api_key) and settings.email_enabled
        if api_key:
            resend.api_key = api_key.get_secret_value()
        self.from_email = settings.from_email

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML content to plain text for better deliverability"""
        text = re.sub(r"<[^>]+>", "", html_content)
        text = re.sub(r"\s+", " ", text)
        return text.strip()

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send an email through Resend.

        Returns:
            The Resend API response, or None when sending is disabled

        Raises:
            ServiceException: If Resend rejects the message
        """
        if not self.enabled:
            self.logger.info(f"Email disabled; skipping '{subject}' to {to_email}")
            return None

        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or self._html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {str(e)}")
            raise ServiceException(f"Email sending failed: {str(e)}")

        self.log_operation("email_sent", to_email=to_email, subject=subject)
        return response


def render_notification_html(title: str, message: str) -> str:
    """Minimal HTML body used when an in-app notification is mirrored to email."""
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 560px;\">"
        f"<h2 style=\"color: #2f6b3a;\">{title}</h2>"
        f"<p>{message}</p>"
        "<p style=\"color: #888; font-size: 12px;\">Lawnly</p>"
        "</div>"
    )
