"""
Re-classification processor.

Items stored while the classification service was unavailable carry no
category and are flagged in the database. This processor retries them in
batches; a successful retry stores the new label and publishes the updated
item so open mail views pick up the category.

Usage:
    python -m mailroom.processors.reclassify --limit 100
"""

import argparse
import asyncio
from typing import Any

from mailroom.config import settings
from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.logging import configure_logging, get_logger
from mailroom.processors.base import BaseProcessor
from mailroom.processors.normalizer import apply_classification
from mailroom.realtime.dispatcher import DeliveryStatus

log = get_logger(__name__)


class ReclassifyProcessor(BaseProcessor):
    """Retries classification for items stored without a category."""

    async def process(self, limit: int | None = None) -> dict[str, Any]:
        """
        Retry one batch of unclassified items.

        Args:
            limit: Maximum items to retry (defaults to settings.reclassify_batch_size)

        Returns:
            Dict with total, reclassified, failed and delivered counts
        """
        stats = {"total": 0, "reclassified": 0, "failed": 0, "delivered": 0}
        if self.db is None:
            return stats

        pending = await asyncio.to_thread(
            self.db.get_pending_reclassification,
            limit or settings.reclassify_batch_size,
        )
        stats["total"] = len(pending)

        for session_id, item in pending:
            meta = item.ai_metadata
            title = (meta.document_title if meta else None) or ""
            sender = (meta.sender_name if meta else None) or ""

            outcome = await self.classify(title, sender)
            if isinstance(outcome, ClassificationUnavailable):
                stats["failed"] += 1
                await self.store(self.db.record_reclassification, item, False)
                continue

            updated = apply_classification(item, outcome)
            await self.store(self.db.record_reclassification, updated, True)
            stats["reclassified"] += 1
            log.info(
                "mail_item_reclassified",
                session_id=session_id,
                external_id=item.external_id,
                category=outcome,
            )

            status = await self.dispatcher.publish(session_id, updated)
            if status is DeliveryStatus.DELIVERED:
                stats["delivered"] += 1

        if pending:
            log.info("reclassify_batch_complete", **stats)
        return stats


async def _run(limit: int | None) -> dict[str, Any]:
    from mailroom.pipeline import build_pipeline

    pipeline = build_pipeline()
    try:
        return await pipeline.reclassifier.process(limit)
    finally:
        await pipeline.aclose()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Retry classification for mail items stored without a category"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help=f"Maximum number of items to retry (default: {settings.reclassify_batch_size})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    configure_logging(log_level=args.log_level, json_output=settings.json_logs)

    stats = asyncio.run(_run(args.limit))

    log.info(
        "reclassify_summary",
        total=stats["total"],
        reclassified=stats["reclassified"],
        failed=stats["failed"],
        delivered=stats["delivered"],
    )


if __name__ == "__main__":
    main()
