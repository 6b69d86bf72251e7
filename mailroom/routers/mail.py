"""
Mail endpoints.

Ingestion from the scanning provider, plus what the mail view needs: the
item list, unread counts, marking an item opened, postal forwarding requests
and document summaries.
"""

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mailroom.core.logging import get_logger
from mailroom.pipeline import Pipeline
from mailroom.routers.deps import get_pipeline, get_session_id

log = get_logger(__name__)

router = APIRouter(prefix="/mail", tags=["mail"])


class IngestRequest(BaseModel):
    external_id: str
    items: list[dict[str, Any]]


class UnreadCounts(BaseModel):
    unread: int = 0
    urgent: int = 0


class ForwardAddress(BaseModel):
    shipping_address_line_1: str
    shipping_address_line_2: str | None = None
    shipping_address_line_3: str | None = None
    shipping_address_city: str
    shipping_address_postcode: str
    shipping_address_state: str | None = None
    shipping_address_country: str


class ForwardRequest(BaseModel):
    address: ForwardAddress


class SummaryRequest(BaseModel):
    pdf_url: str


def _require_db(pipeline: Pipeline):
    if pipeline.db is None:
        raise HTTPException(status_code=503, detail="Mail storage not configured")
    return pipeline.db


@router.post("/ingest")
async def ingest_mail(request: IngestRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """
    Ingest raw mail records for a subscription.

    Malformed records are rejected individually; the rest are classified,
    stored and pushed to the subscriber's live channel.
    """
    if not request.external_id.strip():
        raise HTTPException(status_code=400, detail="external_id missing")

    result = await pipeline.ingestor.process(request.external_id, request.items)
    return result.to_dict()


@router.get("")
async def list_mail(
    session_id: str = Depends(get_session_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """List a subscription's unexpired mail, newest first."""
    db = _require_db(pipeline)
    items = await asyncio.to_thread(db.list_mail_items, session_id)
    return {"items": [pipeline.outgoing(item).to_dict() for item in items]}


@router.get("/unread-count", response_model=UnreadCounts)
async def unread_count(
    session_id: str = Depends(get_session_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Unread and urgent-unread counts for the notification badge."""
    db = _require_db(pipeline)
    counts = await asyncio.to_thread(db.get_unread_counts, session_id)
    return UnreadCounts(**counts)


@router.post("/open/{item_id}")
async def open_mail(
    item_id: str,
    session_id: str = Depends(get_session_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Mark an item opened and return it."""
    db = _require_db(pipeline)
    opened = await asyncio.to_thread(db.mark_opened, session_id, item_id)
    if not opened:
        raise HTTPException(status_code=404, detail="Mail item not found")

    item = await asyncio.to_thread(db.get_mail_item, session_id, item_id)
    return {"status": "opened", "item": pipeline.outgoing(item).to_dict() if item else None}


@router.post("/forward")
async def forward_mail(
    item_id: str,
    request: ForwardRequest,
    session_id: str = Depends(get_session_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Ask for a mail item to be sent on to a postal address."""
    db = _require_db(pipeline)
    address = request.address.model_dump(exclude_none=True)
    found = await asyncio.to_thread(db.request_forward, session_id, item_id, address)
    if not found:
        raise HTTPException(status_code=404, detail="Mail item not found")
    return {"status": "forward_requested", "item_id": item_id}


@router.post("/summary")
async def summarize_document(request: SummaryRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """Summarize a scanned document given its URL or storage key."""
    if pipeline.summarizer is None:
        raise HTTPException(status_code=503, detail="Document summaries not configured")
    if not request.pdf_url.strip():
        raise HTTPException(status_code=400, detail="pdf_url missing")

    url = request.pdf_url
    if pipeline.storage is not None:
        url = pipeline.storage.resolve_url(url)
    summary = await pipeline.summarizer.summarize(url)
    return {"summary": summary}


@router.post("/logout")
async def logout(
    session_id: str = Depends(get_session_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """End the session's live channel and drop its undelivered notifications."""
    pipeline.connections.end_session(session_id)
    return {"status": "logged_out"}
