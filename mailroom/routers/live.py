"""
Live mail feed over WebSocket.

Each connection subscribes to its session's channel. Buffered notifications
are flushed once the socket is accepted; new mail then arrives as one
MailItem JSON object per message. A client "hello" is answered with a
snapshot of the unread counts.
"""

import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from mailroom.core.logging import get_logger
from mailroom.core.models import MailItem
from mailroom.pipeline import Pipeline

log = get_logger(__name__)

router = APIRouter()


async def _snapshot(pipeline: Pipeline, session_id: str) -> dict:
    counts = {"unread": 0, "urgent": 0}
    if pipeline.db is not None:
        counts = await asyncio.to_thread(pipeline.db.get_unread_counts, session_id)
    return {"type": "snapshot", "data": counts}


@router.websocket("/ws/mail")
async def mail_feed(websocket: WebSocket):
    """Live notification channel for one browser tab."""
    session_id = websocket.cookies.get("external_id") or websocket.query_params.get("external_id")
    if not session_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    pipeline: Pipeline = websocket.app.state.pipeline

    async def send(item: MailItem):
        await websocket.send_text(pipeline.outgoing(item).to_json())

    subscription = pipeline.connections.subscribe(session_id, send)
    try:
        await websocket.accept()
        await pipeline.dispatcher.open(session_id)

        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                log.debug("mail_feed_message_ignored", session_id=session_id)
                continue

            if isinstance(message, dict) and message.get("type") == "hello":
                await websocket.send_json(await _snapshot(pipeline, session_id))
    except WebSocketDisconnect:
        log.info("mail_feed_disconnected", session_id=session_id)
    finally:
        pipeline.connections.unsubscribe(subscription)
