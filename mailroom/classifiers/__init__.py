"""
Mail classifiers module.

Uses the remote classification service unless USE_REMOTE_CLASSIFIER is off,
in which case Gemini is called directly.
"""

from mailroom.classifiers.base import BaseClassifier
from mailroom.config import settings


def get_classifier() -> BaseClassifier:
    """Get the configured mail classifier."""
    if settings.use_remote_classifier:
        from mailroom.services.classifier_client import RemoteClassifierClient

        return RemoteClassifierClient()

    from mailroom.classifiers.gemini import GeminiClassifier

    return GeminiClassifier()


__all__ = [
    "BaseClassifier",
    "get_classifier",
]
