"""
Storage for the order status log.

`OrderStatusService` talks to storage only through `HistoryStore`:
append one entry, list an order's entries oldest first, read the latest
one, and hold a per-order lock around "read current status, then append".
"""
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, transaction

from .exceptions import ConcurrentTransition, OrderNotFound, StoreUnavailable
from .models import Order, OrderStatusEntry

logger = logging.getLogger(__name__)


def _sort_key(entry):
    return (entry.timestamp, entry.sequence)


class HistoryStore:
    """
    list_by_order() returns entries in ascending (timestamp, sequence) order.
    append() is all-or-nothing and rejects a sequence number that is already
    taken for the order with ConcurrentTransition.
    """

    def append(self, entry):
        raise NotImplementedError

    def list_by_order(self, order_id):
        raise NotImplementedError

    def latest_entry(self, order_id):
        raise NotImplementedError

    def lock(self, order_id):
        raise NotImplementedError

    def current_status(self, order_id):
        entry = self.latest_entry(order_id)
        if entry is None:
            raise OrderNotFound(order_id)
        return entry.status

    def count(self, order_id) -> int:
        return len(self.list_by_order(order_id))


class OrmHistoryStore(HistoryStore):
    """
    Django ORM backed store (PostgreSQL in production, SQLite for the demo).
    """

    @staticmethod
    def _normalize(order_id):
        if isinstance(order_id, uuid.UUID):
            return order_id
        try:
            return uuid.UUID(str(order_id))
        except ValueError:
            raise OrderNotFound(order_id)

    @contextmanager
    def lock(self, order_id):
        """
        Row lock on the order for the duration of the block. Raises
        OrderNotFound when the order row does not exist.
        """
        pk = self._normalize(order_id)
        try:
            with transaction.atomic():
                locked = list(
                    Order.objects.select_for_update().filter(pk=pk).values_list("pk", flat=True)
                )
                if not locked:
                    raise OrderNotFound(order_id)
                yield
        except DatabaseError as exc:
            logger.error(f"History store failure while locking order {order_id}: {exc}", extra={"order_id": order_id})
            raise StoreUnavailable("Order history is temporarily unavailable.") from exc

    def append(self, entry):
        try:
            with transaction.atomic():
                entry.save(force_insert=True)
        except IntegrityError as exc:
            latest = self.latest_entry(entry.order_id)
            logger.warning(
                f"Rejected append #{entry.sequence} ({entry.status}) on order {entry.order_id}: {exc}",
                extra={"order_id": entry.order_id},
            )
            raise ConcurrentTransition(latest.status if latest else None, entry.status) from exc
        except DatabaseError as exc:
            logger.error(f"History store failure on append: {exc}", extra={"order_id": entry.order_id})
            raise StoreUnavailable("Order history is temporarily unavailable.") from exc
        return entry

    def list_by_order(self, order_id):
        pk = self._normalize(order_id)
        try:
            return list(
                OrderStatusEntry.objects
                .filter(order_id=pk)
                .select_related("created_by")
                .order_by("timestamp", "sequence")
            )
        except DatabaseError as exc:
            logger.error(f"History store failure on read: {exc}", extra={"order_id": order_id})
            raise StoreUnavailable("Order history is temporarily unavailable.") from exc

    def latest_entry(self, order_id):
        pk = self._normalize(order_id)
        try:
            return (
                OrderStatusEntry.objects
                .filter(order_id=pk)
                .order_by("-timestamp", "-sequence")
                .first()
            )
        except DatabaseError as exc:
            logger.error(f"History store failure on read: {exc}", extra={"order_id": order_id})
            raise StoreUnavailable("Order history is temporarily unavailable.") from exc

    def count(self, order_id) -> int:
        return OrderStatusEntry.objects.filter(order_id=self._normalize(order_id)).count()


class InMemoryHistoryStore(HistoryStore):
    """
    Process-local store. Entries are unsaved OrderStatusEntry instances.
    One lock per order id; orders never wait on each other.
    """

    def __init__(self):
        self._entries = defaultdict(list)
        self._order_locks = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, order_id):
        with self._registry_lock:
            lock = self._order_locks.get(order_id)
            if lock is None:
                lock = self._order_locks[order_id] = threading.Lock()
            return lock

    @contextmanager
    def lock(self, order_id):
        with self._lock_for(str(order_id)):
            yield

    def append(self, entry):
        key = str(entry.order_id)
        with self._registry_lock:
            entries = self._entries[key]
            if any(e.sequence == entry.sequence for e in entries):
                latest = max(entries, key=_sort_key)
                raise ConcurrentTransition(latest.status, entry.status)
            entries.append(entry)
        return entry

    def list_by_order(self, order_id):
        with self._registry_lock:
            entries = list(self._entries.get(str(order_id), ()))
        return sorted(entries, key=_sort_key)

    def latest_entry(self, order_id):
        entries = self.list_by_order(order_id)
        return entries[-1] if entries else None
