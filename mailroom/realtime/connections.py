"""
Connection manager for live mail channels.

Each session (subscription external_id) owns at most one logical channel
handle. A handle moves connecting -> open -> closed; a closed handle is never
handed out again but replaced by a fresh one that adopts its pending
notifications and subscriptions, so reconnecting clients get what was
buffered while they were away.

Consumers only hold Subscription tokens. Handles stay inside this module and
the dispatcher.
"""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from cachetools import LRUCache

from mailroom.config import settings
from mailroom.core.errors import ChannelUnavailable
from mailroom.core.logging import get_logger
from mailroom.core.models import ChannelState, MailItem

log = get_logger(__name__)

Sink = Callable[[MailItem], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    """A consumer attached to a session's channel."""

    session_id: str
    sink: Sink
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    # external_id -> content version last delivered, least recently used evicted first
    delivered: LRUCache = field(
        default_factory=lambda: LRUCache(maxsize=settings.delivered_history_size)
    )

    def has_seen(self, external_id: str, version: str) -> bool:
        return self.delivered.get(external_id) == version

    def mark_delivered(self, external_id: str, version: str) -> None:
        self.delivered[external_id] = version


class ChannelHandle:
    """One logical live-update channel for a session."""

    def __init__(self, session_id: str, endpoint: str, buffer_size: int):
        self.id = uuid.uuid4().hex
        self.session_id = session_id
        self.endpoint = endpoint
        self.buffer_size = buffer_size
        self.state = ChannelState.CONNECTING
        self.state_changed_at = time.monotonic()
        self.subscriptions: dict[str, Subscription] = {}
        self.lock = asyncio.Lock()
        self.dropped = 0
        self.successor: "ChannelHandle | None" = None
        self._pending: deque[MailItem] = deque()

    def __repr__(self) -> str:
        return f"<ChannelHandle {self.session_id} {self.state.value} pending={len(self._pending)}>"

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_items(self) -> list[MailItem]:
        return list(self._pending)

    def current(self) -> "ChannelHandle":
        """Follow replacements to the handle currently serving the session."""
        handle = self
        while handle.successor is not None:
            handle = handle.successor
        return handle

    def _set_state(self, state: ChannelState, reason: str = "") -> None:
        if state is self.state:
            return
        log.info(
            "channel_state_changed",
            session_id=self.session_id,
            channel=self.id[:8],
            previous=self.state.value,
            state=state.value,
            reason=reason or None,
        )
        self.state = state
        self.state_changed_at = time.monotonic()

    def mark_open(self) -> None:
        self._set_state(ChannelState.OPEN)

    def mark_closed(self, reason: str = "") -> None:
        self._set_state(ChannelState.CLOSED, reason)

    def enqueue(self, item: MailItem) -> bool:
        """
        Buffer an item until the channel opens.

        An identical item (same external_id and content) already waiting is
        not queued twice. When the buffer is full the oldest item is dropped.

        Returns:
            False if the item was already pending
        """
        version = item.content_version()
        for queued in self._pending:
            if queued.external_id == item.external_id and queued.content_version() == version:
                return False

        if len(self._pending) >= self.buffer_size:
            dropped = self._pending.popleft()
            self.dropped += 1
            log.warning(
                "notification_buffer_overflow",
                session_id=self.session_id,
                dropped_external_id=dropped.external_id,
                buffer_size=self.buffer_size,
            )

        self._pending.append(item)
        return True

    def requeue_front(self, items: list[MailItem]) -> None:
        """Put undelivered items back ahead of anything buffered since."""
        for item in reversed(items):
            self._pending.appendleft(item)
        while len(self._pending) > self.buffer_size:
            dropped = self._pending.popleft()
            self.dropped += 1
            log.warning(
                "notification_buffer_overflow",
                session_id=self.session_id,
                dropped_external_id=dropped.external_id,
                buffer_size=self.buffer_size,
            )

    def take_pending(self) -> list[MailItem]:
        """Remove and return everything buffered, oldest first."""
        items = list(self._pending)
        self._pending.clear()
        return items

    def adopt(self, previous: "ChannelHandle") -> None:
        """Take over a closed handle's buffer, subscriptions and lock."""
        self._pending = previous._pending
        previous._pending = deque()
        self.subscriptions = previous.subscriptions
        previous.subscriptions = {}
        self.dropped = previous.dropped
        self.lock = previous.lock
        previous.successor = self


class ConnectionManager:
    """Per-session registry of live channel handles."""

    def __init__(self, base_url: str | None = None, buffer_size: int | None = None):
        if base_url is None:
            self.endpoint = settings.mail_socket_url
        else:
            self.endpoint = f"{base_url.rstrip('/')}/ws/mail"
        self.buffer_size = buffer_size or settings.notification_buffer_size
        self._handles: dict[str, ChannelHandle] = {}
        self._interest: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def get(self, session_id: str) -> ChannelHandle | None:
        """Current handle for a session, whatever its state."""
        return self._handles.get(session_id)

    def _obtain(self, session_id: str) -> ChannelHandle:
        current = self._handles.get(session_id)
        if current is not None and current.state is not ChannelState.CLOSED:
            return current

        handle = ChannelHandle(session_id, self.endpoint, self.buffer_size)
        if current is not None:
            handle.adopt(current)
            log.info(
                "channel_replaced",
                session_id=session_id,
                channel=handle.id[:8],
                pending=handle.pending_count,
            )
        else:
            log.info("channel_created", session_id=session_id, channel=handle.id[:8])

        self._handles[session_id] = handle
        return handle

    def acquire(self, session_id: str) -> ChannelHandle:
        """
        Get the session's channel handle, registering interest in it.

        Returns the existing handle while it is connecting or open. A closed
        handle is replaced by a new one in the connecting state.
        """
        handle = self._obtain(session_id)
        self._interest[session_id] = self._interest.get(session_id, 0) + 1
        return handle

    def release(self, handle: ChannelHandle) -> None:
        """
        Drop one unit of interest in a session's channel.

        The channel closes only when nobody is interested any more. Its buffer
        is kept so a reconnecting client still receives pending items.
        """
        session_id = handle.session_id
        remaining = max(0, self._interest.get(session_id, 0) - 1)
        self._interest[session_id] = remaining

        if remaining == 0:
            current = self._handles.get(session_id)
            if current is not None and current.state is not ChannelState.CLOSED:
                current.mark_closed("no_subscribers")

    def reconnect(self, session_id: str) -> ChannelHandle | None:
        """Replace a closed handle on new activity without adding interest."""
        if session_id not in self._handles:
            return None
        return self._obtain(session_id)

    def subscribe(self, session_id: str, sink: Sink) -> Subscription:
        """Attach a consumer to the session's channel."""
        handle = self.acquire(session_id)
        subscription = Subscription(session_id=session_id, sink=sink)
        handle.subscriptions[subscription.token] = subscription
        log.info(
            "channel_subscribed",
            session_id=session_id,
            subscribers=len(handle.subscriptions),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Detach a consumer. Safe to call more than once."""
        handle = self._handles.get(subscription.session_id)
        if handle is None or subscription.token not in handle.subscriptions:
            return

        del handle.subscriptions[subscription.token]
        log.info(
            "channel_unsubscribed",
            session_id=subscription.session_id,
            subscribers=len(handle.subscriptions),
        )
        self.release(handle)

    def detach_failed(self, subscription: Subscription, reason: str) -> None:
        """Detach a consumer whose transport failed."""
        error = ChannelUnavailable(subscription.session_id, reason)
        log.warning("channel_unavailable", session_id=subscription.session_id, error=str(error))
        self.unsubscribe(subscription)

    def end_session(self, session_id: str) -> None:
        """Discard a session's channel and anything it still buffers (logout)."""
        handle = self._handles.pop(session_id, None)
        self._interest.pop(session_id, None)
        if handle is None:
            return

        handle.mark_closed("session_ended")
        discarded = handle.take_pending()
        handle.subscriptions.clear()
        log.info("channel_discarded", session_id=session_id, discarded=len(discarded))

    def sweep_idle(self, max_idle_seconds: float | None = None) -> int:
        """
        Discard channels nobody has been interested in for too long.

        Returns:
            Number of channels discarded
        """
        max_idle = (
            max_idle_seconds if max_idle_seconds is not None
            else settings.channel_idle_timeout_seconds
        )
        now = time.monotonic()
        idle = [
            session_id
            for session_id, handle in self._handles.items()
            if self._interest.get(session_id, 0) == 0
            and handle.state is not ChannelState.OPEN
            and now - handle.state_changed_at > max_idle
        ]
        for session_id in idle:
            self.end_session(session_id)
        return len(idle)

    def close_all(self) -> None:
        """Discard every channel (shutdown)."""
        for session_id in list(self._handles):
            self.end_session(session_id)

    def stats(self) -> dict[str, int]:
        """Channel counters for /stats."""
        states = [handle.state for handle in self._handles.values()]
        return {
            "channels": len(states),
            "open": sum(1 for s in states if s is ChannelState.OPEN),
            "connecting": sum(1 for s in states if s is ChannelState.CONNECTING),
            "closed": sum(1 for s in states if s is ChannelState.CLOSED),
            "subscribers": sum(len(h.subscriptions) for h in self._handles.values()),
            "pending": sum(h.pending_count for h in self._handles.values()),
        }
