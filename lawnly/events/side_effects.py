"""Side effects returned by booking workflows and delivered after commit."""

from dataclasses import asdict, dataclass, field
import hashlib
import json
from typing import Any, Dict, List, Optional, Union

from ..core.enums import NotificationSeverity


@dataclass
class UserNotification:
    """In-app notification for one user, optionally mirrored to email."""

    user_id: str
    title: str
    message: str
    severity: str = NotificationSeverity.INFO.value
    booking_id: Optional[str] = None
    send_email: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdminAlert:
    """Escalation fanned out to every admin user and the alert mailbox."""

    title: str
    message: str
    severity: str = NotificationSeverity.WARNING.value
    booking_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SideEffect = Union[UserNotification, AdminAlert, EmailMessage]


def aggregate_id_for(effect: SideEffect) -> str:
    booking_id = getattr(effect, "booking_id", None)
    if booking_id:
        return booking_id
    if isinstance(effect, UserNotification):
        return effect.user_id
    if isinstance(effect, EmailMessage):
        return effect.to
    return "admin"


def content_key(effect: SideEffect, scope: str) -> str:
    """Stable idempotency key for an effect emitted by a given operation."""
    digest = hashlib.sha256(
        json.dumps(effect.to_dict(), sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()[:32]
    return f"{type(effect).__name__}:{scope}:{digest}"


@dataclass
class OperationResult:
    """
    Outcome of a core operation.

    ``side_effects`` are already persisted to the outbox when the result is
    returned; callers may inspect them but never deliver them directly.
    """

    success: bool = True
    message: Optional[str] = None
    booking_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    side_effects: List[SideEffect] = field(default_factory=list)

    def notifications_for(self, user_id: str) -> List[UserNotification]:
        return [
            e for e in self.side_effects if isinstance(e, UserNotification) and e.user_id == user_id
        ]

    @property
    def admin_alerts(self) -> List[AdminAlert]:
        return [e for e in self.side_effects if isinstance(e, AdminAlert)]


@dataclass
class SweepResult:
    """Outcome of one scheduled job run; per-item failures never abort the batch."""

    job: str
    processed: int = 0
    succeeded: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)
    side_effects: List[SideEffect] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def record_failure(self, item_id: str, error: BaseException) -> None:
        self.failures.append({"id": item_id, "error": str(error) or type(error).__name__})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": list(self.failures),
        }
