"""Caller identity passed explicitly into every core operation."""

from __future__ import annotations

from dataclasses import dataclass

from lawnly.core.enums import RoleName
from lawnly.core.exceptions import ForbiddenException


@dataclass(frozen=True)
class Principal:
    """A verified (user_id, role) pair supplied by the identity provider."""

    user_id: str
    role: RoleName

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    @property
    def is_contractor(self) -> bool:
        return self.role == RoleName.CONTRACTOR

    @property
    def is_customer(self) -> bool:
        return self.role == RoleName.CUSTOMER

    @property
    def is_system(self) -> bool:
        return self.user_id == SYSTEM_USER_ID

    def require_role(self, *roles: RoleName) -> None:
        if self.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise ForbiddenException(
                f"This action requires one of the roles: {allowed}",
                code="ROLE_REQUIRED",
                details={"role": self.role.value},
            )

    def require_admin(self) -> None:
        self.require_role(RoleName.ADMIN)


SYSTEM_USER_ID = "system"

# Scheduled jobs act with admin authority under a recognisable identity.
SYSTEM_PRINCIPAL = Principal(user_id=SYSTEM_USER_ID, role=RoleName.ADMIN)
