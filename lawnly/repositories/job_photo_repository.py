# lawnly/repositories/job_photo_repository.py
from typing import List

from sqlalchemy.orm import Session

from ..models.job_photo import JobPhoto, PhotoType
from .base_repository import BaseRepository


class JobPhotoRepository(BaseRepository[JobPhoto]):
    def __init__(self, db: Session):
        super().__init__(db, JobPhoto)

    def count_photos(self, booking_id: str, contractor_id: str, photo_type: PhotoType) -> int:
        return self.count(
            booking_id=booking_id, contractor_id=contractor_id, photo_type=photo_type.value
        )

    def find_for_booking(self, booking_id: str) -> List[JobPhoto]:
        return self._run(
            "listing job photos",
            lambda: self._query()
            .filter(JobPhoto.booking_id == booking_id)
            .order_by(JobPhoto.uploaded_at.asc())
            .all(),
        )
