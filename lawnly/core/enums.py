# lawnly/core/enums.py
"""
Core enums shared across models, services and routes.
"""

from enum import Enum


class RoleName(str, Enum):
    """Caller roles trusted from the identity provider."""

    ADMIN = "admin"
    CONTRACTOR = "contractor"
    CUSTOMER = "customer"


class NotificationSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
