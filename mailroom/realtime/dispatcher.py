"""
Notification dispatcher: pushes canonical MailItems to a session's subscribers.

Delivery is FIFO per channel (every send happens under the channel lock) and
each subscriber sees a given (external_id, content version) at most once.
Items published while the channel is not open wait in its bounded buffer and
are flushed when the handshake completes.
"""

from enum import Enum

from mailroom.config import settings
from mailroom.core.errors import ChannelUnavailable
from mailroom.core.logging import get_logger
from mailroom.core.models import ChannelState, MailItem
from mailroom.realtime.connections import ChannelHandle, ConnectionManager

log = get_logger(__name__)


class DeliveryStatus(str, Enum):
    """Outcome of publishing one item."""

    DELIVERED = "delivered"  # sent to at least one subscriber
    BUFFERED = "buffered"  # waiting for the channel to open
    DUPLICATE = "duplicate"  # every subscriber already has this version
    NO_CHANNEL = "no_channel"  # session has no live channel


class NotificationDispatcher:
    """Delivers mail notifications through the ConnectionManager's channels."""

    def __init__(self, connections: ConnectionManager):
        self.connections = connections
        self.delivered = 0
        self.buffered = 0
        self.duplicates = 0
        self.undeliverable = 0
        self.failures = 0

    async def publish(self, session_id: str, item: MailItem) -> DeliveryStatus:
        """
        Deliver an item to every subscriber of the session's channel.

        A closed channel is replaced on demand and the item buffered. Sessions
        without any channel (never connected, or logged out) get nothing.
        """
        handle = self.connections.get(session_id)
        if handle is None:
            self.undeliverable += 1
            log.debug("notification_no_channel", session_id=session_id, external_id=item.external_id)
            return DeliveryStatus.NO_CHANNEL

        if handle.state is ChannelState.CLOSED:
            handle = self.connections.reconnect(session_id)

        async with handle.lock:
            handle = handle.current()
            if handle.state is ChannelState.OPEN and handle.subscriptions:
                status = await self._send(handle, item)
                if status is not None:
                    return status
                handle = handle.current()

            if handle.enqueue(item):
                self.buffered += 1
                log.debug(
                    "notification_buffered",
                    session_id=session_id,
                    external_id=item.external_id,
                    pending=handle.pending_count,
                )
                return DeliveryStatus.BUFFERED

            self.duplicates += 1
            return DeliveryStatus.DUPLICATE

    async def open(self, session_id: str) -> int:
        """
        Complete the channel handshake and flush buffered notifications.

        Returns:
            Number of buffered items delivered

        Raises:
            ChannelUnavailable: If the session has no channel to open
        """
        handle = self.connections.get(session_id)
        if handle is None:
            raise ChannelUnavailable(session_id, "no channel acquired")

        async with handle.lock:
            handle = handle.current()
            if handle.state is ChannelState.CLOSED:
                handle = self.connections.reconnect(session_id)
                if handle is None:
                    raise ChannelUnavailable(session_id, "session ended")
            handle.mark_open()
            return await self._flush(handle)

    async def _flush(self, handle: ChannelHandle) -> int:
        items = handle.take_pending()
        flushed = 0

        for index, item in enumerate(items):
            status = await self._send(handle, item)
            if status is None:
                handle.current().requeue_front(items[index:])
                log.warning(
                    "notification_flush_interrupted",
                    session_id=handle.session_id,
                    remaining=len(items) - index,
                )
                break
            if status is DeliveryStatus.DELIVERED:
                flushed += 1

        if items:
            log.info("notifications_flushed", session_id=handle.session_id, flushed=flushed)
        return flushed

    async def _send(self, handle: ChannelHandle, item: MailItem) -> DeliveryStatus | None:
        """
        Send one item to each subscriber that has not seen this version.

        Returns None when nobody could take it (no subscribers, or every
        transport failed), so the caller can buffer it.
        """
        version = item.content_version()
        payload_sent = 0
        already_seen = 0

        for subscription in list(handle.subscriptions.values()):
            if subscription.has_seen(item.external_id, version):
                already_seen += 1
                continue
            try:
                await subscription.sink(item)
            except Exception as e:
                self.failures += 1
                self.connections.detach_failed(subscription, reason=str(e) or type(e).__name__)
                continue
            subscription.mark_delivered(item.external_id, version)
            payload_sent += 1

        if payload_sent:
            self.delivered += 1
            log.info(
                "notification_delivered",
                session_id=handle.session_id,
                external_id=item.external_id,
                subscribers=payload_sent,
                urgent=settings.is_urgent_category(item.category),
            )
            return DeliveryStatus.DELIVERED

        if already_seen:
            self.duplicates += 1
            return DeliveryStatus.DUPLICATE

        return None

    def stats(self) -> dict[str, int]:
        """Dispatcher counters for /stats."""
        return {
            "delivered": self.delivered,
            "buffered": self.buffered,
            "duplicates": self.duplicates,
            "undeliverable": self.undeliverable,
            "failures": self.failures,
        }
