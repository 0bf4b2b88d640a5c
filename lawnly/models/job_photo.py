# lawnly/models/job_photo.py
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base


class PhotoType(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    ISSUE = "issue"


class JobPhoto(Base):
    """Reference to a job photo held in the object store."""

    __tablename__ = "job_photos"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    contractor_id = Column(String(26), ForeignKey("contractors.id"), nullable=False, index=True)
    photo_type = Column(String(10), nullable=False)
    storage_path = Column(Text, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
