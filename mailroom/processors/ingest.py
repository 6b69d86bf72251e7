"""
Ingest processor: raw provider records -> classified, stored, delivered items.

Flow for one batch:
1. Validate each record (malformed ones are rejected and logged)
2. Classify every valid record through the shared cache, concurrently
3. Normalize into canonical MailItems
4. Persist
5. Publish to the session's live channel, in input order
"""

import asyncio
from typing import Any

from mailroom.core.errors import MalformedRawItem
from mailroom.core.logging import bind_context, clear_context, get_logger
from mailroom.core.models import IngestResult, RawMailItem
from mailroom.processors.base import BaseProcessor
from mailroom.processors.normalizer import normalize
from mailroom.realtime.dispatcher import DeliveryStatus

log = get_logger(__name__)


class IngestProcessor(BaseProcessor):
    """Runs raw mail batches through the classification pipeline."""

    async def process(self, session_id: str, records: list[dict[str, Any]]) -> IngestResult:
        """
        Ingest a batch of raw records for one session.

        Args:
            session_id: Subscription external_id owning the mail
            records: Raw provider records

        Returns:
            IngestResult with per-batch counts
        """
        bind_context(session_id=session_id)
        try:
            return await self._ingest(session_id, records)
        finally:
            clear_context()

    ingest = process

    async def _ingest(self, session_id: str, records: list[dict[str, Any]]) -> IngestResult:
        result = IngestResult(received=len(records))

        raw_items: list[RawMailItem] = []
        for record in records:
            try:
                raw_items.append(RawMailItem.from_dict(record))
            except MalformedRawItem as e:
                result.rejected += 1
                result.rejections.append({"id": e.item_id, "reason": e.reason})
                log.warning("raw_mail_rejected", item_id=e.item_id, reason=e.reason)

        outcomes = await asyncio.gather(
            *(self.classify(raw.document_title, raw.sender) for raw in raw_items)
        )

        for raw, outcome in zip(raw_items, outcomes):
            normalized = normalize(raw, outcome, session_id)
            result.accepted += 1
            if normalized.needs_reclassification:
                result.needs_reclassification += 1

            if self.db is not None:
                await self.store(self.db.upsert_mail_item, normalized)

            status = await self.dispatcher.publish(session_id, normalized.item)
            if status is DeliveryStatus.DELIVERED:
                result.delivered += 1
            elif status is DeliveryStatus.BUFFERED:
                result.buffered += 1

        log.info(
            "mail_batch_ingested",
            received=result.received,
            accepted=result.accepted,
            rejected=result.rejected,
            delivered=result.delivered,
            buffered=result.buffered,
            needs_reclassification=result.needs_reclassification,
        )
        return result
