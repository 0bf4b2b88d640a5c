"""
PhotoStorageClient - signed read URLs for job photos

Photos are uploaded by the contractor app straight to the object store;
the core only counts the rows in ``job_photos`` and hands out short-lived
read URLs for admins and customers reviewing a job.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from ..core.config import settings
from ..core.exceptions import ServiceException

logger = logging.getLogger(__name__)


@dataclass
class SignedUrl:
    path: str
    url: str
    expires_at: str


class PhotoStorageClient:
    """Requests-based client for the storage sign endpoint."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        if not settings.storage_service_key:
            raise RuntimeError("Storage configuration is missing; check storage_* settings")
        self.base_url = settings.storage_url.rstrip("/")
        self.bucket = settings.photo_bucket
        self.service_key = settings.storage_service_key.get_secret_value()
        self.http = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": "application/json",
        }

    def signed_url(self, path: str, expires_seconds: Optional[int] = None) -> SignedUrl:
        """Return a time-limited GET URL for ``path`` inside the photo bucket."""
        ttl = expires_seconds or settings.signed_url_ttl_seconds
        endpoint = f"{self.base_url}/storage/v1/object/sign/{self.bucket}/{quote(path)}"
        try:
            response = self.http.post(
                endpoint, json={"expiresIn": ttl}, headers=self._headers(), timeout=10
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to sign photo URL for {path}: {str(e)}")
            raise ServiceException(f"Could not sign photo URL: {str(e)}")

        signed_path = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed_path:
            raise ServiceException("Storage service returned no signed URL")
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        if signed_path.startswith("http"):
            url = signed_path
        else:
            url = f"{self.base_url}/storage/v1{signed_path}"
        return SignedUrl(path=path, url=url, expires_at=expires_at.isoformat())

    def signed_urls(
        self, paths: List[str], expires_seconds: Optional[int] = None
    ) -> List[SignedUrl]:
        return [self.signed_url(p, expires_seconds) for p in paths]
