"""
Wiring for the mail pipeline.

One Pipeline per process: the classification cache and the connection
manager are shared by every session.
"""

from dataclasses import dataclass

from mailroom.classifiers import BaseClassifier, get_classifier
from mailroom.config import settings
from mailroom.core.cache import ClassificationCache
from mailroom.core.database import Database
from mailroom.core.models import MailItem
from mailroom.processors.ingest import IngestProcessor
from mailroom.processors.reclassify import ReclassifyProcessor
from mailroom.realtime.connections import ConnectionManager
from mailroom.realtime.dispatcher import NotificationDispatcher
from mailroom.services.storage import MailFileStorage
from mailroom.services.summarizer import DocumentSummarizer


@dataclass
class Pipeline:
    """Long-lived pipeline components."""

    classifier: BaseClassifier
    cache: ClassificationCache
    connections: ConnectionManager
    dispatcher: NotificationDispatcher
    ingestor: IngestProcessor
    reclassifier: ReclassifyProcessor
    db: Database | None = None
    storage: MailFileStorage | None = None
    summarizer: DocumentSummarizer | None = None

    def outgoing(self, item: MailItem) -> MailItem:
        """Item as sent to clients, with file references turned into links."""
        if self.storage is None:
            return item
        return self.storage.presign_item(item)

    async def aclose(self) -> None:
        """Close network clients."""
        await self.classifier.aclose()
        if self.summarizer is not None:
            await self.summarizer.aclose()

    def stats(self) -> dict:
        return {
            "cache": self.cache.stats(),
            "channels": self.connections.stats(),
            "notifications": self.dispatcher.stats(),
        }


def build_pipeline(
    classifier: BaseClassifier | None = None,
    db: Database | None = None,
    storage: MailFileStorage | None = None,
    summarizer: DocumentSummarizer | None = None,
    use_database: bool = True,
) -> Pipeline:
    """
    Assemble the pipeline from settings.

    Args:
        classifier: Classifier to use (defaults to get_classifier())
        db: Database repository (defaults to one built from settings)
        storage: File storage (defaults to MinIO from settings)
        summarizer: Document summarizer (defaults to Gemini when a key is set)
        use_database: Set False to run without persistence
    """
    classifier = classifier or get_classifier()
    if db is None and use_database:
        db = Database()
    storage = storage or MailFileStorage()
    if summarizer is None and settings.gemini_api_key:
        summarizer = DocumentSummarizer()

    cache = ClassificationCache()
    connections = ConnectionManager()
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
        summarizer=summarizer,
    )
