# lawnly/models/user.py
"""
User accounts known to the booking core.

Authentication lives with the identity provider; this table keeps the
role claim and the payment references needed to charge customers.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.CUSTOMER.value, index=True)

    # Stripe references used for off-session charges
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'contractor', 'customer')",
            name="ck_users_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<User {self.id} role={self.role}>"
