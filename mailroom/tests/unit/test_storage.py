"""Unit tests for scanned file storage."""

from datetime import timedelta
from unittest.mock import MagicMock

from mailroom.core.models import MailItem
from mailroom.services.storage import MailFileStorage


def _storage(**kwargs) -> MailFileStorage:
    params = {
        "endpoint": "minio:9000",
        "access_key": "access",
        "secret_key": "secret",
        "bucket": "scans",
        "secure": False,
        "url_expiry": timedelta(hours=1),
    }
    params.update(kwargs)
    return MailFileStorage(**params)


class TestMailFileStorage:
    """Tests for resolve_url() and presign_item()."""

    def test_empty_reference(self):
        assert _storage().resolve_url(None) is None
        assert _storage().resolve_url("") is None

    def test_absolute_url_passes_through(self):
        storage = _storage()
        storage._client = MagicMock()

        assert storage.resolve_url("https://cdn.example.com/a.pdf") == "https://cdn.example.com/a.pdf"
        storage._client.presigned_get_object.assert_not_called()

    def test_object_key_presigned(self):
        """Test object keys become presigned GET URLs."""
        storage = _storage()
        storage._client = MagicMock()
        storage._client.presigned_get_object.return_value = "http://minio:9000/scans/a.pdf?sig=1"

        assert storage.resolve_url("/2026/a.pdf") == "http://minio:9000/scans/a.pdf?sig=1"
        storage._client.presigned_get_object.assert_called_once_with(
            "scans", "2026/a.pdf", expires=timedelta(hours=1)
        )

    def test_unconfigured_returns_reference(self, monkeypatch):
        """Test references are returned as is without MinIO."""
        from mailroom.services import storage as storage_module

        monkeypatch.setattr(storage_module.settings, "minio_endpoint", None)
        storage = _storage(endpoint=None)

        assert storage.enabled is False
        assert storage.resolve_url("2026/a.pdf") == "2026/a.pdf"

    def test_presign_error_returns_reference(self, monkeypatch):
        from mailroom.services import storage as storage_module

        class PresignError(Exception):
            pass

        monkeypatch.setattr(storage_module, "S3Error", PresignError)
        storage = _storage()
        storage._client = MagicMock()
        storage._client.presigned_get_object.side_effect = PresignError("NoSuchBucket")

        assert storage.resolve_url("2026/a.pdf") == "2026/a.pdf"

    def test_presign_item(self, signed_storage):
        """Test an item's file references become links on a copy."""
        item = MailItem(
            id="1",
            external_id="ext-1",
            created_at="2026-03-01T09:00:00Z",
            url="2026/a.pdf",
            url_envelope_front="https://cdn.example.com/front.jpg",
        )

        signed = signed_storage.presign_item(item)

        assert signed.url == "http://minio:9000/scans/2026/a.pdf?sig=1"
        assert signed.url_envelope_front == "https://cdn.example.com/front.jpg"
        assert signed.url_envelope_back is None
        assert item.url == "2026/a.pdf"
        assert signed.content_version() != item.content_version()
