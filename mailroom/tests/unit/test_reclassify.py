"""Unit tests for the re-classification processor."""

import asyncio
from unittest.mock import MagicMock, patch

from mailroom.core.models import AiMetadata, MailItem


def _unclassified(item_id: str = "1") -> MailItem:
    return MailItem(
        id=item_id,
        external_id=f"ext-{item_id}",
        created_at="2026-03-01T00:00:00Z",
        ai_metadata=AiMetadata(sender_name="HMRC", document_title="Tax return"),
    )


class TestReclassifyProcessor:
    """Tests for retrying failed classifications."""

    def test_success_updates_and_publishes(self, make_pipeline, make_classifier, make_recorder, mock_db):
        """Test a recovered classification is stored and pushed as an update."""
        classifier = make_classifier(label="Government")
        mock_db.get_pending_reclassification.return_value = [("sub-1", _unclassified())]
        pipeline = make_pipeline(classifier, db=mock_db)
        sink = make_recorder()
        pipeline.connections.subscribe("sub-1", sink)

        async def run():
            await pipeline.dispatcher.open("sub-1")
            return await pipeline.reclassifier.process(limit=10)

        stats = asyncio.run(run())

        assert stats == {"total": 1, "reclassified": 1, "failed": 0, "delivered": 1}
        assert classifier.calls == [("Tax return", "HMRC")]
        mock_db.get_pending_reclassification.assert_called_once_with(10)
        updated, success = mock_db.record_reclassification.call_args.args
        assert success is True
        assert updated.category == "Government"
        assert sink.items[0].category == "Government"

    def test_failure_counts_attempt(self, make_pipeline, make_classifier, mock_db):
        """Test a failed retry records the attempt and leaves the item unchanged."""
        item = _unclassified()
        mock_db.get_pending_reclassification.return_value = [("sub-1", item)]
        pipeline = make_pipeline(make_classifier(fail=True), db=mock_db)

        stats = asyncio.run(pipeline.reclassifier.process())

        assert stats["failed"] == 1
        assert stats["reclassified"] == 0
        mock_db.record_reclassification.assert_called_once_with(item, False)

    def test_uses_cached_label(self, make_pipeline, make_classifier, mock_db):
        """Test items sharing a document are classified once per batch."""
        classifier = make_classifier(label="Government")
        mock_db.get_pending_reclassification.return_value = [
            ("sub-1", _unclassified("1")),
            ("sub-2", _unclassified("2")),
        ]
        pipeline = make_pipeline(classifier, db=mock_db)

        stats = asyncio.run(pipeline.reclassifier.process())

        assert stats["reclassified"] == 2
        assert len(classifier.calls) == 1

    def test_without_database(self, make_pipeline, classifier):
        pipeline = make_pipeline(classifier)
        assert asyncio.run(pipeline.reclassifier.process())["total"] == 0


class TestReclassifyCli:
    def test_main_runs_one_batch(self, make_pipeline, classifier, mock_db, monkeypatch):
        """Test the CLI builds the pipeline and runs a batch."""
        from mailroom.processors import reclassify

        pipeline = make_pipeline(classifier, db=mock_db)
        monkeypatch.setattr("sys.argv", ["reclassify", "--limit", "5", "--log-level", "WARNING"])

        with patch("mailroom.pipeline.build_pipeline", MagicMock(return_value=pipeline)):
            reclassify.main()

        mock_db.get_pending_reclassification.assert_called_once_with(5)
