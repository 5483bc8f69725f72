"""
Conversation analytics.

track() only appends to an in-memory queue so the chat never waits on it;
flush() writes the batch to `conversation_events` and is called by the
maintenance scheduler. A failed flush puts the batch back for the next tick.
"""
import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Optional

from app.core.exceptions import StoreError
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "session_started",
    "message_received",
    "step_changed",
    "express_checkout",
    "order_submitted",
    "order_cancelled",
    "payment_initiated",
    "payment_started",
    "payment_failed",
    "city_declined",
    "city_interest",
    "effect_failed",
    "new_order_started",
}


class ConversationAnalytics:
    def __init__(self, store: RecordStore, max_queue: int = 10_000):
        self.store = store
        self._queue: Deque[Dict] = deque(maxlen=max_queue)

    def track(self, session_id: str, event_type: str, data: Optional[dict] = None) -> None:
        if event_type not in EVENT_TYPES:
            logger.warning(f"[Analytics] Unknown event type '{event_type}'")
            return
        self._queue.append({
            "session_id": session_id,
            "event_type": event_type,
            "data": {**(data or {}), "at": datetime.utcnow().isoformat()},
        })

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def flush(self) -> int:
        written = 0
        while self._queue:
            event = self._queue.popleft()
            try:
                await self.store.insert("conversation_events", event)
            except StoreError as e:
                self._queue.appendleft(event)
                logger.error(f"[Analytics] Flush stopped after {written} events: {e}")
                break
            written += 1
        if written:
            logger.debug(f"[Analytics] Flushed {written} events")
        return written
