"""
Session Store - two-tier chat session state.

Tier 1: in-process dict of ConversationSession, authoritative while the
        customer is chatting.
Tier 2: `conversations` rows, written behind tier 1 (eventually consistent).

Consistency contract:
- save() updates memory immediately and schedules the durable write
- a failed durable write is logged and never blocks the chat
- writes for one session are applied in version order; an older snapshot
  never overwrites a newer one
- inactive sessions leave memory after SESSION_INACTIVITY_SECONDS but their
  rows are kept

Per-session asyncio.Lock: exactly one step transition per session is in
flight; different sessions run concurrently.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timedelta
from typing import Dict, Optional, Set

from app.agent.conversation_state import ChatTurn, ConversationSession, ProductSnapshot
from app.core.exceptions import StoreError
from app.services.order_adapter import normalize_session_payload
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)


def new_session_id(product_id: str, store_id: str) -> str:
    return f"{product_id}_{store_id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class SessionStore:
    def __init__(
        self,
        store: RecordStore,
        inactivity_seconds: int = 3600,
        message_window: int = 5,
    ):
        self.store = store
        self.inactivity_seconds = inactivity_seconds
        self.message_window = message_window
        self._sessions: Dict[str, ConversationSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._persist_locks: Dict[str, asyncio.Lock] = {}
        self._persisted_versions: Dict[str, int] = {}
        self._pending_writes: Set[asyncio.Task] = set()

    def lock(self, session_id: str) -> asyncio.Lock:
        """Mutex serializing transitions of one session."""
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def create(self, product: ProductSnapshot, store_id: str = "default") -> ConversationSession:
        session = ConversationSession(
            session_id=new_session_id(product.id, store_id),
            product=product,
            store_id=store_id,
        )
        self._sessions[session.session_id] = session
        self._schedule_persist(session)
        logger.info(f"[SessionStore] Created session {session.session_id} for product {product.id}")
        return session

    def get(self, session_id: str) -> Optional[ConversationSession]:
        """Memory tier only."""
        return self._sessions.get(session_id)

    async def load(self, session_id: str) -> Optional[ConversationSession]:
        """Memory first, then the durable record (legacy payloads are adapted)."""
        session = self._sessions.get(session_id)
        if session is not None:
            return session

        try:
            row = await self.store.select_one("conversations", {"session_id": session_id})
        except StoreError as e:
            logger.error(f"[SessionStore] Could not load session {session_id}: {e}")
            return None
        if row is None:
            return None

        payload = normalize_session_payload(row.get("payload"), row.get("current_step"))
        payload.setdefault("session_id", session_id)
        payload.setdefault("store_id", row.get("store_id") or "default")
        if "product" not in payload:
            product = await self.store.select_one("products", {"id": row.get("product_id")})
            if product is None:
                logger.warning(f"[SessionStore] Session {session_id} references unknown product")
                return None
            payload["product"] = {
                "id": product["id"],
                "name": product["name"],
                "price": product["price"],
                "stock": product["stock"],
            }
        session = ConversationSession.model_validate(payload)
        self._persisted_versions[session_id] = session.version
        # A concurrent load may have won the race; keep the first copy
        return self._sessions.setdefault(session_id, session)

    async def save(self, session: ConversationSession) -> ConversationSession:
        """Make `session` the authoritative copy and write it behind."""
        session.version += 1
        session.last_interaction = datetime.utcnow()
        self._sessions[session.session_id] = session
        self._schedule_persist(session)
        return session

    def record_turn(self, session: ConversationSession, sender: str, content: str) -> None:
        """Append to the bounded recent-messages window."""
        session.messages.append(ChatTurn(sender=sender, content=content))
        if len(session.messages) > self.message_window:
            session.messages = session.messages[-self.message_window:]
        if sender == "customer":
            session.message_count += 1

    async def append_transcript(
        self,
        session_id: str,
        sender: str,
        content: str,
        choices=None,
        details: Optional[dict] = None,
    ) -> None:
        """Full transcript line in conversation_messages. Failures are logged only."""
        try:
            await self.store.insert(
                "conversation_messages",
                {
                    "session_id": session_id,
                    "sender": sender,
                    "content": content,
                    "choices": list(choices or []),
                    "details": details or {},
                },
            )
        except StoreError as e:
            logger.error(f"[SessionStore] Transcript write failed for {session_id}: {e}")

    async def find_by_order(self, order_id: int) -> Optional[ConversationSession]:
        for session in self._sessions.values():
            if session.draft.order_id == order_id:
                return session
        try:
            order = await self.store.select_one("orders", {"id": order_id})
        except StoreError as e:
            logger.error(f"[SessionStore] Order lookup failed for {order_id}: {e}")
            return None
        if order and order.get("session_id"):
            return await self.load(order["session_id"])
        return None

    def cleanup_inactive(self, now: Optional[datetime] = None) -> int:
        """Drop idle sessions from memory. Locked sessions are busy and kept."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(seconds=self.inactivity_seconds)
        removed = 0
        for session_id, session in list(self._sessions.items()):
            if session.last_interaction >= cutoff:
                continue
            lock = self._locks.get(session_id)
            if lock is not None and lock.locked():
                continue
            del self._sessions[session_id]
            self._locks.pop(session_id, None)
            self._persist_locks.pop(session_id, None)
            self._persisted_versions.pop(session_id, None)
            removed += 1
        if removed:
            logger.info(f"[SessionStore] Evicted {removed} inactive sessions, {len(self._sessions)} active")
        return removed

    async def flush(self) -> None:
        """Wait for scheduled durable writes (shutdown, tests)."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Write-behind
    # ------------------------------------------------------------------

    def _schedule_persist(self, session: ConversationSession) -> None:
        snapshot = session.model_copy(deep=True)
        task = asyncio.create_task(self._persist(snapshot))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist(self, snapshot: ConversationSession) -> None:
        session_id = snapshot.session_id
        persist_lock = self._persist_locks.setdefault(session_id, asyncio.Lock())
        async with persist_lock:
            if snapshot.version <= self._persisted_versions.get(session_id, -1):
                return
            try:
                await self.store.upsert(
                    "conversations",
                    {"session_id": session_id},
                    {
                        "product_id": snapshot.product.id,
                        "store_id": snapshot.store_id,
                        "current_step": snapshot.current_step.value,
                        "buying_intent": snapshot.buying_intent,
                        "message_count": snapshot.message_count,
                        "payload": snapshot.model_dump(mode="json"),
                    },
                )
                self._persisted_versions[session_id] = snapshot.version
            except Exception as e:
                logger.error(f"[SessionStore] Write-behind failed for {session_id} v{snapshot.version}: {e}")
