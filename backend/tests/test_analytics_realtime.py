import asyncio
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import StoreError
from app.services.analytics import ConversationAnalytics
from app.services.realtime import RealtimeHub, order_channel


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_track_then_flush(self, store):
        analytics = ConversationAnalytics(store)
        analytics.track("s1", "session_started", {"product_id": "jeu-couple"})
        analytics.track("s1", "express_checkout", {"score": 0.45})

        assert analytics.pending == 2
        assert await analytics.flush() == 2
        assert analytics.pending == 0

        rows = await store.select("conversation_events", {"session_id": "s1"}, order_by="id")
        assert [r["event_type"] for r in rows] == ["session_started", "express_checkout"]
        assert rows[1]["data"]["score"] == 0.45
        assert "at" in rows[1]["data"]

    def test_unknown_event_dropped(self, store):
        analytics = ConversationAnalytics(store)
        analytics.track("s1", "made_up_event")
        assert analytics.pending == 0

    @pytest.mark.asyncio
    async def test_failed_flush_keeps_batch(self):
        store = AsyncMock()
        store.insert.side_effect = [{"id": 1}, StoreError("disk full")]
        analytics = ConversationAnalytics(store)
        for _ in range(3):
            analytics.track("s1", "message_received")

        assert await analytics.flush() == 1
        assert analytics.pending == 2

    def test_queue_is_bounded(self, store):
        analytics = ConversationAnalytics(store, max_queue=3)
        for _ in range(5):
            analytics.track("s1", "message_received")
        assert analytics.pending == 3


class TestRealtimeHub:
    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers_of_channel(self):
        hub = RealtimeHub()
        async with hub.subscribe(order_channel(42)) as queue:
            assert hub.subscriber_count("order_42") == 1
            assert await hub.publish("order_42", "payment_status", {"status": "PAID"}) == 1
            assert await hub.publish("order_43", "payment_status", {"status": "PAID"}) == 0
            message = await asyncio.wait_for(queue.get(), timeout=1)

        assert message == {"event": "payment_status", "channel": "order_42", "payload": {"status": "PAID"}}
        assert hub.subscriber_count("order_42") == 0

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_oldest(self):
        hub = RealtimeHub(queue_size=2)
        async with hub.subscribe("order_1") as queue:
            for i in range(3):
                await hub.publish("order_1", "tick", {"n": i})
            received = [queue.get_nowait()["payload"]["n"] for _ in range(queue.qsize())]
        assert received == [1, 2]
