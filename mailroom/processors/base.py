"""
Abstract base class for mail processors.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable

import psycopg

from mailroom.classifiers.base import BaseClassifier
from mailroom.core.cache import ClassificationCache, fingerprint
from mailroom.core.database import Database
from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.logging import get_logger
from mailroom.realtime.dispatcher import NotificationDispatcher

log = get_logger(__name__)


class BaseProcessor(ABC):
    """Shared collaborators for the pipeline's processors."""

    def __init__(
        self,
        classifier: BaseClassifier,
        cache: ClassificationCache,
        dispatcher: NotificationDispatcher,
        db: Database | None = None,
    ):
        self.classifier = classifier
        self.cache = cache
        self.dispatcher = dispatcher
        self.db = db

    @abstractmethod
    async def process(self, *args: Any, **kwargs: Any) -> Any:
        """
        Run one processing pass.

        Returns:
            Processing statistics
        """
        pass

    async def classify(
        self, document_title: str, sender_name: str
    ) -> str | ClassificationUnavailable:
        """
        Classify through the shared cache.

        Returns the label, or the ClassificationUnavailable error so callers
        can still normalize the item and flag it for re-classification.
        """
        key = fingerprint(document_title, sender_name)
        try:
            return await self.cache.get_or_compute(
                key,
                lambda: self.classifier.classify(document_title, sender_name),
            )
        except ClassificationUnavailable as e:
            log.warning("classification_unavailable", fingerprint=key[:12], error=str(e))
            return e

    async def store(self, operation: Callable[..., Any], *args: Any) -> bool:
        """Run a blocking database call in a worker thread. False on failure."""
        if self.db is None:
            return False
        try:
            await asyncio.to_thread(operation, *args)
            return True
        except psycopg.Error as e:
            log.error("mail_store_error", operation=getattr(operation, "__name__", "db_call"), error=str(e))
            return False
