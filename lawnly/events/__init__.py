"""Side effects produced by booking workflows and their outbox publisher."""

from .publisher import SideEffectPublisher
from .side_effects import (
    AdminAlert,
    EmailMessage,
    OperationResult,
    SideEffect,
    SweepResult,
    UserNotification,
)

__all__ = [
    "AdminAlert",
    "EmailMessage",
    "OperationResult",
    "SideEffect",
    "SideEffectPublisher",
    "SweepResult",
    "UserNotification",
]
