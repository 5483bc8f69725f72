"""
Record Store - record-oriented access to the relational store.

The checkout core only needs four verbs:
    insert(table, row)            -> row
    update(table, filters, patch) -> row | None
    select(table, filters)        -> rows
    subscribe(table, callback)    -> unsubscribe()

Rows are plain dicts keyed by model attribute names. SQLAlchemy work is
synchronous, so every call runs in a worker thread and is awaited; the
event loop never blocks on the database.

Subscribers are in-process and notified after commit. A failing subscriber
is logged and never fails the write that triggered it.
"""
import asyncio
import inspect
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.exceptions import StoreError
from app.models import (
    Conversation,
    ConversationEvent,
    ConversationMessage,
    DeliveryZone,
    Notification,
    Order,
    PaymentTransaction,
    Product,
)

logger = logging.getLogger(__name__)

TABLES = {
    "products": Product,
    "delivery_zones": DeliveryZone,
    "conversations": Conversation,
    "conversation_messages": ConversationMessage,
    "conversation_events": ConversationEvent,
    "orders": Order,
    "payment_transactions": PaymentTransaction,
    "notifications": Notification,
}

Subscriber = Callable[[str, Dict[str, Any]], Any]


def row_to_dict(obj) -> Dict[str, Any]:
    """ORM instance -> dict; Decimals become floats for JSON-friendly rows."""
    row = {}
    for attr in sa_inspect(obj).mapper.column_attrs:
        value = getattr(obj, attr.key)
        if isinstance(value, Decimal):
            value = float(value)
        row[attr.key] = value
    return row


def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    for key, expected in filters.items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class RecordStore:
    """Async facade over SQLAlchemy sessions for the tables in TABLES."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self._subscribers: Dict[str, List[Tuple[Optional[dict], Subscriber]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        created = await self._run(self._insert_sync, table, row)
        await self._notify(table, "INSERT", created)
        return created

    async def update(
        self,
        table: str,
        filters: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Patch the first row matching `filters`. Returns None when nothing matched.

        Filters double as a guard: update("payment_transactions",
        {"id": tx_id, "status": "PENDING"}, ...) only moves a pending row.
        """
        updated = await self._run(self._update_sync, table, filters, patch)
        if updated is not None:
            await self._notify(table, "UPDATE", updated)
        return updated

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return await self._run(self._select_sync, table, filters, order_by, descending, limit)

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def upsert(
        self,
        table: str,
        key: Dict[str, Any],
        row: Dict[str, Any],
    ) -> Dict[str, Any]:
        saved, created = await self._run(self._upsert_sync, table, key, row)
        await self._notify(table, "INSERT" if created else "UPDATE", saved)
        return saved

    def subscribe(
        self,
        table: str,
        callback: Subscriber,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Callable[[], None]:
        """Register `callback(event_type, row)` for inserts/updates on `table`."""
        self._model(table)
        entry = (filters, callback)
        self._subscribers[table].append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers[table]:
                self._subscribers[table].remove(entry)

        return unsubscribe

    # ------------------------------------------------------------------
    # Sync workers (run in threads)
    # ------------------------------------------------------------------

    def _insert_sync(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        with self.session_factory() as db:
            obj = model(**row)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return row_to_dict(obj)

    def _update_sync(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        model = self._model(table)
        pk = sa_inspect(model).primary_key[0]
        with self.session_factory() as db:
            obj = self._query(db, model, filters).first()
            if obj is None:
                return None
            key = getattr(obj, pk.key)
            # The filters are repeated in the UPDATE itself: a writer that
            # changed the row since the read leaves nothing to update
            count = (
                self._query(db, model, filters)
                .filter(pk == key)
                .update(patch, synchronize_session=False)
            )
            if count == 0:
                db.rollback()
                return None
            db.commit()
            db.refresh(obj)
            return row_to_dict(obj)

    def _select_sync(self, table, filters, order_by, descending, limit) -> List[Dict[str, Any]]:
        model = self._model(table)
        with self.session_factory() as db:
            query = self._query(db, model, filters)
            if order_by:
                column = getattr(model, order_by)
                query = query.order_by(column.desc() if descending else column.asc())
            if limit:
                query = query.limit(limit)
            return [row_to_dict(obj) for obj in query.all()]

    def _upsert_sync(self, table: str, key: Dict[str, Any], row: Dict[str, Any]):
        model = self._model(table)
        with self.session_factory() as db:
            obj = self._query(db, model, key).first()
            created = obj is None
            if created:
                obj = model(**{**key, **row})
                db.add(obj)
            else:
                for field, value in row.items():
                    setattr(obj, field, value)
            db.commit()
            db.refresh(obj)
            return row_to_dict(obj), created

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise StoreError(f"Unknown table: {table}") from None

    @staticmethod
    def _query(db: Session, model, filters: Optional[Dict[str, Any]]):
        query = db.query(model)
        for key, value in (filters or {}).items():
            column = getattr(model, key)
            if isinstance(value, (list, tuple, set)):
                query = query.filter(column.in_(list(value)))
            else:
                query = query.filter(column == value)
        return query

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"[RecordStore] {fn.__name__} failed on {args[0]}: {e}")
            raise StoreError(f"{fn.__name__} failed on {args[0]}") from e

    async def _notify(self, table: str, event_type: str, row: Dict[str, Any]) -> None:
        for filters, callback in list(self._subscribers.get(table, [])):
            if not _matches(row, filters):
                continue
            try:
                result = callback(event_type, row)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[RecordStore] Subscriber on {table} failed: {e}", exc_info=True)
