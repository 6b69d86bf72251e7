"""
Abstract base class for mail classifiers.
"""

from abc import ABC, abstractmethod

from mailroom.core.models import Category


class BaseClassifier(ABC):
    """Classifier interface: (document title, sender name) -> category label."""

    async def classify(self, document_title: str, sender_name: str) -> str:
        """
        Classify a scanned document.

        Empty inputs are allowed. When both are blank nothing is sent to the
        backend and the "uncategorized" fallback is returned.

        Returns:
            A Category value

        Raises:
            ClassificationUnavailable: If the backend cannot be reached or errors
        """
        title = (document_title or "").strip()
        sender = (sender_name or "").strip()
        if not title and not sender:
            return Category.UNCATEGORIZED.value

        label = await self.request_label(title, sender)
        return Category.from_label(label).value

    @abstractmethod
    async def request_label(self, document_title: str, sender_name: str) -> str:
        """
        Ask the backend for a label. One outbound call, no local state.

        Args:
            document_title: Title of the scanned document (may be empty)
            sender_name: Name of the sender (may be empty)

        Returns:
            The backend's raw answer
        """
        pass

    async def aclose(self) -> None:
        """Release backend resources."""
