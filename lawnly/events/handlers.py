"""Event handlers - deliver outbox side effects after the business transaction commits."""
import logging
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from ..models.notification import Notification
from ..repositories.factory import RepositoryFactory
from ..services.email import EmailService, render_notification_html

logger = logging.getLogger(__name__)


class DeliveryTemporaryError(Exception):
    """Delivery failed in a way worth retrying (provider outage, rate limit)."""


def _send_email(db: Session, to_email: str, subject: str, html: str) -> None:
    try:
        EmailService(db).send_email(to_email, subject, html)
    except ServiceException as e:
        raise DeliveryTemporaryError(e.message)


def _notify(db: Session, payload: Dict[str, Any], user_id: str) -> Notification:
    return RepositoryFactory.create_notification_repository(db).create(
        user_id=user_id,
        title=payload["title"],
        message=payload["message"],
        severity=payload.get("severity") or "info",
        booking_id=payload.get("booking_id"),
    )


def handle_user_notification(payload: Dict[str, Any], db: Session) -> None:
    """Write the in-app notification and mirror it to email when asked."""
    user = RepositoryFactory.create_user_repository(db).get_by_id(payload["user_id"])
    if not user:
        logger.warning(
            "User %s not found for notification %r", payload["user_id"], payload["title"]
        )
        return

    _notify(db, payload, user.id)
    if payload.get("send_email") and user.email:
        html = render_notification_html(payload["title"], payload["message"])
        _send_email(db, user.email, payload["title"], html)
    logger.info("Notified user %s: %s", user.id, payload["title"])


def handle_admin_alert(payload: Dict[str, Any], db: Session) -> None:
    """Fan an alert out to every admin's inbox and the alert mailbox."""
    admins = RepositoryFactory.create_user_repository(db).find_admins()
    for admin in admins:
        _notify(db, payload, admin.id)

    if settings.admin_alert_email:
        _send_email(
            db,
            settings.admin_alert_email,
            payload["title"],
            render_notification_html(payload["title"], payload["message"].replace("\n", "<br>")),
        )
    logger.info("Alerted %s admins: %s", len(admins), payload["title"])


def handle_email_message(payload: Dict[str, Any], db: Session) -> None:
    _send_email(db, payload["to"], payload["subject"], payload["html"])


# Registry of event type -> handler function
EVENT_HANDLERS: Dict[str, Callable[[Dict[str, Any], Session], None]] = {
    "UserNotification": handle_user_notification,
    "AdminAlert": handle_admin_alert,
    "EmailMessage": handle_email_message,
}


def process_event(event_type: str, payload: Dict[str, Any], db: Session) -> bool:
    """
    Deliver one outbox event.

    Returns False when no handler is registered for ``event_type``.
    """
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("No handler for event type: %s", event_type)
        return False

    handler(payload, db)
    return True
