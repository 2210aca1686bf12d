import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from apps.utils.exceptions import BusinessLogicException
from apps.inventory.services import InventoryService
from .actors import Actor
from .exceptions import InvalidTransition, OrderNotFound, StatusValidationError
from .history import HistoryStore, OrmHistoryStore
from .models import Order, OrderItem, OrderStatus, OrderStatusEntry
from .models.timeline import ACTOR_MAX_LENGTH, NOTES_MAX_LENGTH
from .transitions import INITIAL_STATUS, can_transition, is_terminal, next_statuses

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimelineEntry:
    """
    Read-only view of one history row; `is_active` marks the current status.
    """
    id: object
    status: str
    timestamp: datetime
    notes: str
    updated_by: str
    is_active: bool

    @property
    def status_display(self) -> str:
        return OrderStatus(self.status).label

    @classmethod
    def from_entry(cls, entry: OrderStatusEntry, is_active: bool):
        return cls(
            id=entry.id,
            status=str(entry.status),
            timestamp=entry.timestamp,
            notes=entry.notes,
            updated_by=entry.updated_by,
            is_active=is_active,
        )


class OrderStatusService:
    """
    Moves orders through the status state machine and renders their timeline.

    Every change is an append to the order's history; the check against the
    current status and the append happen under the store's per-order lock.
    """

    def __init__(self, store: Optional[HistoryStore] = None):
        self.store = store or OrmHistoryStore()

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    @staticmethod
    def parse_status(value) -> OrderStatus:
        if isinstance(value, OrderStatus):
            return value
        normalized = str(value or "").strip().upper()
        if normalized not in OrderStatus.values:
            raise StatusValidationError(f"Unknown order status '{value}'.")
        return OrderStatus(normalized)

    @staticmethod
    def clean_notes(notes) -> str:
        notes = (notes or "").strip()
        if len(notes) > NOTES_MAX_LENGTH:
            raise StatusValidationError(
                f"Notes must be at most {NOTES_MAX_LENGTH} characters (got {len(notes)})."
            )
        return notes

    @staticmethod
    def clean_actor(actor) -> Actor:
        if actor is None:
            return Actor.system()
        if not isinstance(actor, Actor):
            actor = Actor.parse(str(actor).strip())
        if len(actor.label) > ACTOR_MAX_LENGTH:
            raise StatusValidationError(f"Actor identity must be at most {ACTOR_MAX_LENGTH} characters.")
        return actor

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _build_entry(self, order_id, status, actor: Actor, notes: str, previous=None):
        timestamp = timezone.now()
        # Keep per-order timestamps non-decreasing even if the clock steps back
        if previous is not None and previous.timestamp > timestamp:
            timestamp = previous.timestamp

        return OrderStatusEntry(
            order_id=order_id,
            sequence=previous.sequence + 1 if previous is not None else 1,
            status=status,
            timestamp=timestamp,
            notes=notes,
            updated_by=actor.label,
            created_by_id=actor.user_id,
        )

    def start(self, order: Order, notes: str = "Order placed.") -> OrderStatusEntry:
        """
        Writes the initial PLACED entry for a freshly created order.
        """
        notes = self.clean_notes(notes)
        with self.store.lock(order.pk):
            previous = self.store.latest_entry(order.pk)
            if previous is not None:
                raise InvalidTransition(
                    previous.status,
                    INITIAL_STATUS,
                    message=f"Order {order.pk} already has a status history.",
                )
            entry = self.store.append(
                self._build_entry(order.pk, INITIAL_STATUS, Actor.system(), notes)
            )

        logger.info(f"Order {order.pk} placed", extra={"order_id": order.pk, "actor": entry.updated_by})
        return entry

    def transition(self, order_id, new_status, actor=None, notes: str = "") -> List[TimelineEntry]:
        """
        Appends `new_status` to the order's history if the state machine
        allows it from the current status, and returns the new timeline.

        Raises StatusValidationError, OrderNotFound, InvalidTransition
        (ConcurrentTransition when another change won the race) or
        StoreUnavailable. A failed call never writes anything.
        """
        target = self.parse_status(new_status)
        notes = self.clean_notes(notes)
        actor = self.clean_actor(actor)

        with self.store.lock(order_id):
            previous = self.store.latest_entry(order_id)
            if previous is None:
                raise OrderNotFound(order_id)

            if not can_transition(previous.status, target):
                logger.warning(
                    f"Rejected transition {previous.status} -> {target} on order {order_id} by {actor}",
                    extra={"order_id": order_id, "actor": actor.label},
                )
                if not next_statuses(previous.status):
                    raise InvalidTransition(
                        previous.status,
                        target,
                        message=f"Order is {previous.status}; no further status changes are allowed.",
                    )
                raise InvalidTransition(previous.status, target)

            self.store.append(self._build_entry(order_id, target, actor, notes, previous))
            timeline = self.get_timeline(order_id)

        logger.info(
            f"Order {order_id}: {previous.status} -> {target} by {actor}",
            extra={"order_id": order_id, "actor": actor.label, "status": str(target)},
        )
        return timeline

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_timeline(self, order_id) -> List[TimelineEntry]:
        """
        Oldest first; only the newest entry is active.
        """
        entries = self.store.list_by_order(order_id)
        if not entries:
            raise OrderNotFound(order_id)

        last = len(entries) - 1
        return [TimelineEntry.from_entry(entry, is_active=(i == last)) for i, entry in enumerate(entries)]

    def current_status(self, order_id) -> OrderStatus:
        return OrderStatus(self.store.current_status(order_id))

    def allowed_next(self, order_id) -> List[OrderStatus]:
        return next_statuses(self.current_status(order_id))

    def is_terminal(self, order_id) -> bool:
        """Fulfilment is over (delivered, cancelled or refunded)."""
        return is_terminal(self.current_status(order_id))


class OrderService:
    """
    Order creation. Prices are always taken from the catalog, never the client.
    """

    @staticmethod
    @transaction.atomic
    def create_order(user, items: list, shipping_address: Optional[dict] = None,
                     payment_id: Optional[str] = None, status_service: Optional[OrderStatusService] = None):
        """
        1. Validate line items
        2. Lock products, check and decrement stock
        3. Create Order + OrderItems
        4. Write the initial PLACED timeline entry
        """
        if not items:
            raise BusinessLogicException("Order has no items.", code="empty_order")

        for item in items:
            qty = item.get("quantity")
            if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
                raise BusinessLogicException(
                    f"Invalid quantity for product {item.get('product_id')}.", code="invalid_quantity"
                )

        products = InventoryService.reserve_stock(items, reference=f"user:{user.pk}")

        total_amount = Decimal("0.00")
        lines = []
        for item in items:
            product = products[str(item["product_id"])]
            total_amount += product.price * item["quantity"]
            lines.append((product, item["quantity"]))

        order = Order.objects.create(
            user=user,
            shipping_address=shipping_address or {},
            total_amount=total_amount,
            payment_id=payment_id,
        )

        OrderItem.objects.bulk_create(
            [OrderItem.from_product(order, product, qty) for product, qty in lines]
        )

        (status_service or OrderStatusService()).start(order)

        product_ids = [product.pk for product, _ in lines]
        if InventoryService.has_low_stock_items(product_ids):
            logger.warning(f"Order {order.pk} left items low on stock", extra={"order_id": order.pk})

        return order
