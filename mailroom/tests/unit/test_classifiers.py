"""Unit tests for classifiers."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import google.generativeai as genai
import httpx
import pytest

from mailroom.classifiers.gemini import GeminiClassifier
from mailroom.core.errors import ClassificationUnavailable
from mailroom.services.classifier_client import RemoteClassifierClient


def _client(handler) -> RemoteClassifierClient:
    return RemoteClassifierClient(
        base_url="http://classifier.test/",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestBaseClassifier:
    """Tests for the shared classify() contract."""

    def test_blank_inputs_skip_backend(self, classifier):
        """Test blank title and sender return the fallback without a call."""
        label = asyncio.run(classifier.classify("  ", ""))

        assert label == "uncategorized"
        assert classifier.calls == []

    def test_empty_title_is_sent(self, classifier):
        """Test a sender-only document is still classified."""
        label = asyncio.run(classifier.classify("", "Acme Corp"))

        assert label == "Invoice"
        assert classifier.calls == [("", "Acme Corp")]

    def test_unknown_answer_maps_to_other(self, make_classifier):
        classifier = make_classifier(label="Probably a utility bill")
        assert asyncio.run(classifier.classify("Bill", "Water Co")) == "Other"

    def test_failure_propagates(self, make_classifier):
        classifier = make_classifier(fail=True)
        with pytest.raises(ClassificationUnavailable):
            asyncio.run(classifier.classify("Bill", "Water Co"))


class TestRemoteClassifierClient:
    """Tests for the HTTP classification client."""

    def test_posts_title_and_sender(self):
        """Test request shape and response parsing."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"category": "bank"})

        async def run():
            async with _client(handler) as client:
                return await client.classify("Statement", "Barclays")

        assert asyncio.run(run()) == "Bank"
        assert len(requests) == 1
        assert str(requests[0].url) == "http://classifier.test/classify-mail"
        assert json.loads(requests[0].content) == {"title": "Statement", "sender": "Barclays"}

    def test_missing_category_maps_to_other(self):
        def handler(request):
            return httpx.Response(200, json={})

        async def run():
            async with _client(handler) as client:
                return await client.classify("Statement", "Barclays")

        assert asyncio.run(run()) == "Other"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, json={"detail": "overloaded"}),
            httpx.Response(200, content=b"not json"),
            httpx.Response(200, json=["Bank"]),
            httpx.Response(200, json={"error": "model unavailable"}),
        ],
    )
    def test_bad_responses_raise(self, response):
        """Test error statuses and malformed bodies raise ClassificationUnavailable."""

        def handler(request):
            return response

        async def run():
            async with _client(handler) as client:
                return await client.classify("Statement", "Barclays")

        with pytest.raises(ClassificationUnavailable):
            asyncio.run(run())

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def run():
            async with _client(handler) as client:
                return await client.classify("Statement", "Barclays")

        with pytest.raises(ClassificationUnavailable, match="Failed to reach"):
            asyncio.run(run())

    def test_health_check(self):
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "healthy"})

        async def run():
            async with _client(handler) as client:
                return await client.health_check()

        assert asyncio.run(run()) is True

    def test_health_check_down(self):
        def handler(request):
            return httpx.Response(500)

        async def run():
            async with _client(handler) as client:
                return await client.health_check()

        assert asyncio.run(run()) is False


class TestGeminiClassifier:
    """Tests for the Gemini backend."""

    @pytest.fixture
    def gemini(self) -> GeminiClassifier:
        classifier = GeminiClassifier.__new__(GeminiClassifier)
        classifier.model = MagicMock()
        return classifier

    def test_requires_api_key(self, monkeypatch):
        from mailroom.classifiers import gemini as gemini_module

        monkeypatch.setattr(gemini_module.settings, "gemini_api_key", "")
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            GeminiClassifier()

    def test_label_from_response(self, gemini):
        """Test the model answer is normalized onto a category."""
        gemini.model.generate_content_async = AsyncMock(return_value=MagicMock(text=" Legal\n"))

        assert asyncio.run(gemini.classify("Court summons", "County Court")) == "Legal"
        prompt = gemini.model.generate_content_async.call_args.args[0]
        assert "County Court" in prompt
        assert "Court summons" in prompt

    def test_blocked_prompt_is_other(self, gemini):
        """Test a blocked prompt is a declined classification."""
        gemini.model.generate_content_async = AsyncMock(
            side_effect=genai.types.BlockedPromptException("blocked")
        )

        assert asyncio.run(gemini.classify("Letter", "Someone")) == "Other"

    def test_api_error_raises(self, gemini):
        """Test API failures make classification unavailable."""
        gemini.model.generate_content_async = AsyncMock(side_effect=RuntimeError("429 quota exceeded"))

        with pytest.raises(ClassificationUnavailable):
            asyncio.run(gemini.classify("Letter", "Someone"))
