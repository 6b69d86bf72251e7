"""Unit tests for the connection manager."""

from mailroom.core.models import ChannelState, MailItem
from mailroom.realtime import connections as connections_module
from mailroom.realtime.connections import ChannelHandle, ConnectionManager, Subscription


def _item(item_id: str, category: str | None = None) -> MailItem:
    data = {"id": item_id, "external_id": f"ext-{item_id}", "created_at": "2026-03-01T00:00:00Z"}
    if category:
        data["ai_metadata"] = {"categories": [category]}
    return MailItem.from_dict(data)


async def _noop(item):
    pass


class TestConnectionManager:
    """Tests for handle lifecycle."""

    def test_endpoint(self):
        """Test the channel endpoint is derived from the base URL."""
        assert ConnectionManager(base_url="wss://mail.example.com/").endpoint == "wss://mail.example.com/ws/mail"

    def test_acquire_twice_returns_same_handle(self, connections):
        """Test acquiring while connecting or open keeps the handle identity."""
        first = connections.acquire("sub-1")
        assert first.state is ChannelState.CONNECTING
        assert connections.acquire("sub-1") is first

        first.mark_open()
        assert connections.acquire("sub-1") is first

    def test_release_closes_only_at_zero_interest(self, connections):
        """Test one subscriber leaving never closes the channel for the others."""
        handle = connections.acquire("sub-1")
        connections.acquire("sub-1")
        handle.mark_open()

        connections.release(handle)
        assert handle.state is ChannelState.OPEN

        connections.release(handle)
        assert handle.state is ChannelState.CLOSED

    def test_closed_handle_is_replaced(self, connections):
        """Test a closed handle is never handed out again."""
        handle = connections.acquire("sub-1")
        connections.release(handle)
        handle.enqueue(_item("1"))

        replacement = connections.acquire("sub-1")

        assert replacement is not handle
        assert replacement.state is ChannelState.CONNECTING
        assert replacement.pending_items() == [_item("1")]
        assert handle.current() is replacement

    def test_subscribe_and_unsubscribe(self, connections):
        """Test subscriptions are tokens and unsubscribing is idempotent."""
        sub = connections.subscribe("sub-1", _noop)
        handle = connections.get("sub-1")
        assert sub.token in handle.subscriptions

        connections.unsubscribe(sub)
        connections.unsubscribe(sub)

        assert handle.subscriptions == {}
        assert handle.state is ChannelState.CLOSED

    def test_resubscribe_adopts_buffer(self, connections):
        """Test a reconnecting subscriber gets the closed channel's buffer."""
        sub = connections.subscribe("sub-1", _noop)
        connections.unsubscribe(sub)
        connections.get("sub-1").enqueue(_item("1"))

        connections.subscribe("sub-1", _noop)

        handle = connections.get("sub-1")
        assert handle.state is ChannelState.CONNECTING
        assert handle.pending_count == 1

    def test_reconnect_unknown_session(self, connections):
        assert connections.reconnect("nobody") is None

    def test_end_session_discards_buffer(self, connections):
        """Test logout drops the handle and anything pending."""
        handle = connections.acquire("sub-1")
        handle.enqueue(_item("1"))

        connections.end_session("sub-1")

        assert connections.get("sub-1") is None
        assert handle.state is ChannelState.CLOSED
        assert handle.pending_count == 0

    def test_sweep_idle(self, connections):
        """Test only abandoned, non-open channels are swept."""
        idle = connections.acquire("idle")
        connections.release(idle)
        busy = connections.acquire("busy")
        busy.mark_open()

        assert connections.sweep_idle(max_idle_seconds=-1) == 1
        assert connections.get("idle") is None
        assert connections.get("busy") is busy

    def test_stats(self, connections):
        connections.subscribe("sub-1", _noop)
        connections.acquire("sub-2").enqueue(_item("1"))

        stats = connections.stats()

        assert stats["channels"] == 2
        assert stats["connecting"] == 2
        assert stats["subscribers"] == 1
        assert stats["pending"] == 1

    def test_close_all(self, connections):
        connections.subscribe("sub-1", _noop)
        connections.subscribe("sub-2", _noop)
        connections.close_all()
        assert len(connections) == 0


class TestChannelHandleBuffer:
    """Tests for the bounded pending queue."""

    def test_drop_oldest_on_overflow(self):
        """Test the oldest notification is dropped when the buffer is full."""
        handle = ChannelHandle("sub-1", "ws://test/ws/mail", buffer_size=2)
        for item_id in ("1", "2", "3"):
            handle.enqueue(_item(item_id))

        assert [i.id for i in handle.pending_items()] == ["2", "3"]
        assert handle.dropped == 1

    def test_identical_item_queued_once(self):
        """Test the same content for the same item is not buffered twice."""
        handle = ChannelHandle("sub-1", "ws://test/ws/mail", buffer_size=10)

        assert handle.enqueue(_item("1")) is True
        assert handle.enqueue(_item("1")) is False
        assert handle.enqueue(_item("1", category="Bank")) is True
        assert handle.pending_count == 2

    def test_requeue_front_keeps_order(self):
        handle = ChannelHandle("sub-1", "ws://test/ws/mail", buffer_size=10)
        handle.enqueue(_item("3"))
        handle.requeue_front([_item("1"), _item("2")])

        assert [i.id for i in handle.take_pending()] == ["1", "2", "3"]
        assert handle.pending_count == 0


class TestSubscription:
    """Tests for per-subscriber delivery history."""

    def test_seen_versions(self):
        subscription = Subscription(session_id="sub-1", sink=_noop)
        subscription.mark_delivered("ext-1", "v1")

        assert subscription.has_seen("ext-1", "v1")
        assert not subscription.has_seen("ext-1", "v2")

    def test_history_is_bounded(self, monkeypatch):
        """Test the least recently seen items are forgotten first."""
        monkeypatch.setattr(connections_module.settings, "delivered_history_size", 2)
        subscription = Subscription(session_id="sub-1", sink=_noop)

        subscription.mark_delivered("ext-1", "v1")
        subscription.mark_delivered("ext-2", "v1")
        assert subscription.has_seen("ext-1", "v1")
        subscription.mark_delivered("ext-3", "v1")

        assert len(subscription.delivered) == 2
        assert subscription.has_seen("ext-1", "v1")
        assert not subscription.has_seen("ext-2", "v1")
