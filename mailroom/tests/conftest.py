"""
Shared pytest fixtures for mailroom tests.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from mailroom.classifiers.base import BaseClassifier
from mailroom.core.cache import ClassificationCache
from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.models import RawMailItem
from mailroom.pipeline import Pipeline
from mailroom.processors.ingest import IngestProcessor
from mailroom.processors.reclassify import ReclassifyProcessor
from mailroom.realtime.connections import ConnectionManager
from mailroom.realtime.dispatcher import NotificationDispatcher
from mailroom.services.storage import MailFileStorage


class FakeClassifier(BaseClassifier):
    """Classifier double that records every backend call."""

    def __init__(self, label: str = "Invoice", fail: bool = False, delay: float = 0.0):
        self.label = label
        self.fail = fail
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def request_label(self, document_title: str, sender_name: str) -> str:
        self.calls.append((document_title, sender_name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ClassificationUnavailable("classifier down")
        return self.label


class Recorder:
    """Subscriber sink collecting delivered items."""

    def __init__(self, fail: bool = False):
        self.items = []
        self.fail = fail

    async def __call__(self, item):
        if self.fail:
            raise ConnectionError("socket closed")
        self.items.append(item)

    @property
    def ids(self) -> list:
        return [item.id for item in self.items]


@pytest.fixture
def make_classifier():
    """Factory for FakeClassifier instances."""
    return FakeClassifier


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def make_recorder():
    """Factory for subscriber sinks."""
    return Recorder


@pytest.fixture
def sample_raw_record() -> dict:
    """Raw record as sent by the scanning provider."""
    return {
        "id": "mail-1",
        "sender": "Acme Corp",
        "category": "",
        "summary": "Quarterly invoice",
        "received_at": "2026-03-01T09:30:00Z",
        "expires_at": "2026-06-01T00:00:00Z",
        "file_url": "scans/2026/03/acme-invoice.pdf",
        "document_title": "Invoice #1042",
    }


@pytest.fixture
def sample_raw_item(sample_raw_record) -> RawMailItem:
    return RawMailItem.from_dict(sample_raw_record)


@pytest.fixture
def make_record():
    """Factory for minimal valid raw records."""

    def _make(item_id: str, sender: str = "Acme Corp", title: str = "", **extra) -> dict:
        record = {
            "id": item_id,
            "sender": sender,
            "category": "",
            "summary": "",
            "received_at": datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc).isoformat(),
            "expires_at": datetime(2026, 6, 1, tzinfo=timezone.utc).isoformat(),
        }
        if title:
            record["document_title"] = title
        record.update(extra)
        return record

    return _make


@pytest.fixture
def mock_db():
    """Mock database for testing without real DB connection."""
    db = MagicMock()
    db.get_pending_reclassification.return_value = []
    db.get_unread_counts.return_value = {"unread": 0, "urgent": 0}
    db.list_mail_items.return_value = []
    db.mark_opened.return_value = True
    db.get_mail_item.return_value = None
    db.get_stats.return_value = {"total": 0}
    db.request_forward.return_value = True
    return db


@pytest.fixture
def signed_storage() -> MailFileStorage:
    """MinIO storage whose presigned links change on every call, like real signatures."""
    storage = MailFileStorage(
        endpoint="minio:9000",
        access_key="access",
        secret_key="secret",
        bucket="scans",
        secure=False,
    )
    signatures = itertools.count(1)
    storage._client = MagicMock()
    storage._client.presigned_get_object.side_effect = (
        lambda bucket, name, expires: f"http://minio:9000/{bucket}/{name}?sig={next(signatures)}"
    )
    return storage


@pytest.fixture
def connections() -> ConnectionManager:
    return ConnectionManager(base_url="ws://test", buffer_size=100)


@pytest.fixture
def dispatcher(connections) -> NotificationDispatcher:
    return NotificationDispatcher(connections)


@pytest.fixture
def make_pipeline():
    """Factory for an in-memory pipeline around a given classifier."""

    def _make(
        classifier: BaseClassifier, db=None, buffer_size: int = 100, storage=None
    ) -> Pipeline:
        cache = ClassificationCache(ttl_seconds=3600, max_entries=100)
        connections = ConnectionManager(base_url="ws://test", buffer_size=buffer_size)
        dispatcher = NotificationDispatcher(connections)
        return Pipeline(
            classifier=classifier,
            cache=cache,
            connections=connections,
            dispatcher=dispatcher,
            ingestor=IngestProcessor(classifier, cache, dispatcher, db=db),
            reclassifier=ReclassifyProcessor(classifier, cache, dispatcher, db=db),
            db=db,
            storage=storage,
        )

    return _make
