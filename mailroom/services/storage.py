"""
MinIO client for scanned mail files (document scans, envelope images).

Stored and published MailItems keep the provider's object reference. Links
are presigned only when an item leaves the service (HTTP responses and the
live feed), so they are always fresh and never change an item's version.
"""

from dataclasses import replace
from datetime import timedelta

from minio import Minio
from minio.error import S3Error

from mailroom.config import settings
from mailroom.core.logging import get_logger
from mailroom.core.models import MailItem

log = get_logger(__name__)


class MailFileStorage:
    """Turns file references from the scanning provider into fetchable URLs."""

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        bucket: str | None = None,
        secure: bool | None = None,
        url_expiry: timedelta | None = None,
    ):
        self.endpoint = endpoint or settings.minio_endpoint
        self.access_key = access_key or settings.minio_access_key
        self.secret_key = secret_key or settings.minio_secret_key
        self.bucket = bucket or settings.minio_bucket
        self.secure = secure if secure is not None else settings.minio_secure
        self.url_expiry = url_expiry or timedelta(hours=settings.file_url_expiry_hours)
        self._client: Minio | None = None

    @property
    def enabled(self) -> bool:
        """Check if MinIO is configured."""
        return bool(self.endpoint and self.access_key and self.secret_key)

    def _get_client(self) -> Minio:
        """Get or create MinIO client."""
        if not self._client:
            if not self.enabled:
                raise RuntimeError("MinIO not configured")
            self._client = Minio(
                self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=settings.minio_region,
            )
        return self._client

    def resolve_url(self, ref: str | None) -> str | None:
        """
        Resolve a file reference to a URL.

        Absolute URLs are returned unchanged. Object keys become presigned GET
        URLs when MinIO is configured; otherwise the key is returned as is.
        """
        if not ref:
            return None
        if ref.startswith(("http://", "https://")):
            return ref
        if not self.enabled:
            return ref

        object_name = ref.lstrip("/")
        try:
            return self._get_client().presigned_get_object(
                self.bucket,
                object_name,
                expires=self.url_expiry,
            )
        except S3Error as e:
            log.error("file_url_presign_error", object_name=object_name, error=str(e))
            return ref

    def presign_item(self, item: MailItem) -> MailItem:
        """Return a copy of an item with its file references resolved to URLs."""
        if not self.enabled:
            return item
        return replace(
            item,
            url=self.resolve_url(item.url),
            url_envelope_front=self.resolve_url(item.url_envelope_front),
            url_envelope_back=self.resolve_url(item.url_envelope_back),
        )
