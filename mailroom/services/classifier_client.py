"""
Remote classifier client for the mail classification service.

Provides the same interface as the local classifier but calls the remote
classification service via HTTP.
"""

import httpx

from mailroom.classifiers.base import BaseClassifier
from mailroom.config import settings
from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.logging import get_logger

log = get_logger(__name__)


class RemoteClassifierClient(BaseClassifier):
    """Async HTTP client for the remote classification service."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.classifier_service_url).rstrip("/")
        self.timeout = timeout or settings.classifier_timeout_seconds
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def request_label(self, document_title: str, sender_name: str) -> str:
        """
        Classify a document using the remote classifier service.

        Args:
            document_title: Title of the scanned document
            sender_name: Name of the sender

        Returns:
            Category label as returned by the service
        """
        payload = {"title": document_title, "sender": sender_name}

        try:
            response = await self._client.post(
                f"{self.base_url}/classify-mail",
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            log.error(
                "classifier_http_error",
                status=e.response.status_code,
                error=str(e),
            )
            raise ClassificationUnavailable(f"Classifier service error: {e}") from e

        except httpx.RequestError as e:
            log.error("classifier_request_error", error=str(e))
            raise ClassificationUnavailable(f"Failed to reach classifier service: {e}") from e

        except ValueError as e:
            log.error("classifier_invalid_response", error=str(e))
            raise ClassificationUnavailable(f"Classifier returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ClassificationUnavailable("Classifier returned an unexpected payload")

        if data.get("error"):
            log.warning("classifier_returned_error", error=data["error"])
            raise ClassificationUnavailable(f"Classifier error: {data['error']}")

        category = data.get("category") or ""
        log.info(
            "remote_classification_success",
            sender=sender_name,
            category=category,
        )
        return category

    async def health_check(self) -> bool:
        """Check if the classifier service is healthy."""
        try:
            response = await self._client.get(f"{self.base_url}/health")
            response.raise_for_status()
            return response.json().get("status") == "healthy"
        except (httpx.HTTPError, ValueError) as e:
            log.warning("classifier_health_check_failed", error=str(e))
            return False

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
