import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest import mock

from django.test import SimpleTestCase
from django.utils import timezone

from apps.orders.actors import Actor
from apps.orders.exceptions import (
    ConcurrentTransition,
    InvalidTransition,
    OrderNotFound,
    StatusValidationError,
)
from apps.orders.history import InMemoryHistoryStore
from apps.orders.models import Order, OrderStatus, OrderStatusEntry
from apps.orders.services import OrderStatusService
from apps.orders.transitions import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
    is_terminal,
    is_valid_walk,
    next_statuses,
)

S = OrderStatus


class LockTrackingStore(InMemoryHistoryStore):
    """Records whether the order lock was held for each timeline read."""

    def __init__(self):
        super().__init__()
        self.reads_under_lock = []

    def list_by_order(self, order_id):
        self.reads_under_lock.append(self._lock_for(str(order_id)).locked())
        return super().list_by_order(order_id)


class TransitionTableTests(SimpleTestCase):
    def test_every_status_has_an_entry(self):
        self.assertEqual(set(ALLOWED_TRANSITIONS), set(OrderStatus))

    def test_forward_path(self):
        path = [S.PLACED, S.CONFIRMED, S.PACKED, S.SHIPPED, S.DELIVERED, S.REFUNDED]
        self.assertTrue(is_valid_walk(path))

    def test_cancellation_window(self):
        for status in (S.PLACED, S.CONFIRMED, S.PACKED):
            self.assertTrue(can_transition(status, S.CANCELLED), status)
        self.assertFalse(can_transition(S.SHIPPED, S.CANCELLED))

    def test_no_backward_or_self_edges(self):
        self.assertFalse(can_transition(S.SHIPPED, S.PACKED))
        for status in OrderStatus:
            self.assertFalse(can_transition(status, status), status)

    def test_terminal_statuses(self):
        self.assertEqual(TERMINAL_STATUSES, {S.DELIVERED, S.CANCELLED, S.REFUNDED})
        self.assertTrue(is_terminal("REFUNDED"))
        self.assertFalse(is_terminal(S.SHIPPED))
        self.assertEqual(next_statuses(S.DELIVERED), [S.REFUNDED])
        self.assertEqual(next_statuses(S.REFUNDED), [])

    def test_accepts_plain_strings(self):
        self.assertTrue(can_transition("PLACED", "CONFIRMED"))
        self.assertEqual(next_statuses("PLACED"), [S.CONFIRMED, S.CANCELLED])

    def test_walk_must_start_at_placed(self):
        self.assertFalse(is_valid_walk([S.CONFIRMED, S.PACKED]))
        self.assertFalse(is_valid_walk([]))


class ActorTests(SimpleTestCase):
    def test_system(self):
        actor = Actor.system()
        self.assertTrue(actor.is_system)
        self.assertEqual(actor.label, "SYSTEM")

    def test_admin(self):
        actor = Actor.admin("admin@shop.test")
        self.assertFalse(actor.is_system)
        self.assertEqual(str(actor), "admin@shop.test")

    def test_admin_cannot_impersonate_system(self):
        with self.assertRaises(ValueError):
            Actor.admin("SYSTEM")
        with self.assertRaises(ValueError):
            Actor.admin("")

    def test_parse_round_trip(self):
        self.assertEqual(Actor.parse("SYSTEM"), Actor.system())
        self.assertEqual(Actor.parse("admin@shop.test").label, "admin@shop.test")


class InMemoryStatusServiceTests(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryHistoryStore()
        self.service = OrderStatusService(self.store)
        self.order = Order()
        self.service.start(self.order)
        self.admin = Actor.admin("admin@x")

    def statuses(self):
        return [e.status for e in self.store.list_by_order(self.order.pk)]

    def walk(self, *targets):
        for target in targets:
            self.service.transition(self.order.pk, target, self.admin)

    def test_new_order_has_placed_entry(self):
        timeline = self.service.get_timeline(self.order.pk)

        self.assertEqual(len(timeline), 1)
        self.assertEqual(timeline[0].status, "PLACED")
        self.assertEqual(timeline[0].updated_by, "SYSTEM")
        self.assertTrue(timeline[0].is_active)

    def test_confirm(self):
        timeline = self.service.transition(self.order.pk, S.CONFIRMED, "admin@x", "")

        self.assertEqual([e.status for e in timeline], ["PLACED", "CONFIRMED"])
        self.assertEqual([e.is_active for e in timeline], [False, True])
        self.assertEqual(timeline[1].updated_by, "admin@x")

    def test_backward_edge_rejected(self):
        self.walk(S.CONFIRMED, S.PACKED, S.SHIPPED)

        with self.assertRaises(InvalidTransition) as ctx:
            self.service.transition(self.order.pk, S.PACKED, self.admin)

        self.assertEqual(ctx.exception.current_status, "SHIPPED")
        self.assertEqual(ctx.exception.attempted_status, S.PACKED)
        self.assertIn("SHIPPED", ctx.exception.message)
        self.assertEqual(self.statuses(), ["PLACED", "CONFIRMED", "PACKED", "SHIPPED"])

    def test_refund_after_delivery_then_nothing(self):
        self.walk(S.CONFIRMED, S.PACKED, S.SHIPPED, S.DELIVERED)
        timeline = self.service.transition(self.order.pk, S.REFUNDED, self.admin)
        self.assertEqual(timeline[-1].status, "REFUNDED")

        with self.assertRaises(InvalidTransition) as ctx:
            self.service.transition(self.order.pk, S.CANCELLED, self.admin)
        self.assertIn("no further status changes", ctx.exception.message)
        self.assertEqual(len(self.statuses()), 6)

    def test_terminal_statuses_reject_everything_but_refund(self):
        for path in ([S.CANCELLED], [S.CONFIRMED, S.PACKED, S.SHIPPED, S.DELIVERED]):
            store = InMemoryHistoryStore()
            service = OrderStatusService(store)
            order = Order()
            service.start(order)
            for target in path:
                service.transition(order.pk, target, self.admin)

            for target in OrderStatus:
                if target == S.REFUNDED:
                    continue
                with self.assertRaises(InvalidTransition):
                    service.transition(order.pk, target, self.admin)
            self.assertEqual(store.count(order.pk), len(path) + 1)

    def test_same_status_rejected(self):
        with self.assertRaises(InvalidTransition):
            self.service.transition(self.order.pk, S.PLACED, self.admin)
        self.assertEqual(self.statuses(), ["PLACED"])

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            self.service.transition("missing", S.CONFIRMED, self.admin)
        with self.assertRaises(OrderNotFound):
            self.service.get_timeline("missing")

    def test_validation(self):
        with self.assertRaises(StatusValidationError):
            self.service.transition(self.order.pk, "LOST", self.admin)
        with self.assertRaises(StatusValidationError):
            self.service.transition(self.order.pk, S.CONFIRMED, self.admin, notes="x" * 501)
        with self.assertRaises(StatusValidationError):
            self.service.transition(self.order.pk, S.CONFIRMED, "a" * 101 + "@x")
        self.assertEqual(self.statuses(), ["PLACED"])

    def test_notes_at_limit_and_lowercase_status(self):
        timeline = self.service.transition(self.order.pk, "confirmed", self.admin, notes="x" * 500)
        self.assertEqual(timeline[-1].status, "CONFIRMED")
        self.assertEqual(len(timeline[-1].notes), 500)

    def test_default_actor_is_system(self):
        timeline = self.service.transition(self.order.pk, S.CANCELLED)
        self.assertEqual(timeline[-1].updated_by, "SYSTEM")

    def test_start_twice_rejected(self):
        with self.assertRaises(InvalidTransition):
            self.service.start(self.order)
        self.assertEqual(self.store.count(self.order.pk), 1)

    def test_sequences_and_timestamps_are_ordered(self):
        self.walk(S.CONFIRMED, S.PACKED)
        entries = self.store.list_by_order(self.order.pk)

        self.assertEqual([e.sequence for e in entries], [1, 2, 3])
        stamps = [e.timestamp for e in entries]
        self.assertEqual(stamps, sorted(stamps))

    def test_clock_going_backwards_keeps_order(self):
        first = self.store.latest_entry(self.order.pk)
        earlier = first.timestamp - timedelta(minutes=5)

        with mock.patch("apps.orders.services.timezone.now", return_value=earlier):
            timeline = self.service.transition(self.order.pk, S.CONFIRMED, self.admin)

        self.assertEqual(timeline[-1].timestamp, first.timestamp)
        self.assertEqual(timeline[-1].status, "CONFIRMED")
        self.assertTrue(timeline[-1].is_active)

    def test_allowed_next(self):
        self.assertEqual(self.service.allowed_next(self.order.pk), [S.CONFIRMED, S.CANCELLED])
        self.assertEqual(self.service.current_status(self.order.pk), S.PLACED)
        self.assertFalse(self.service.is_terminal(self.order.pk))

    def test_returned_timeline_is_read_under_the_order_lock(self):
        store = LockTrackingStore()
        service = OrderStatusService(store)
        order = Order()
        service.start(order)

        timeline = service.transition(order.pk, S.CONFIRMED, self.admin)

        self.assertEqual(timeline[-1].status, "CONFIRMED")
        self.assertTrue(store.reads_under_lock[-1])

    def test_timeline_has_exactly_one_active_entry(self):
        self.walk(S.CONFIRMED, S.PACKED, S.SHIPPED)
        timeline = self.service.get_timeline(self.order.pk)

        self.assertEqual(sum(e.is_active for e in timeline), 1)
        newest = max(timeline, key=lambda e: e.timestamp)
        self.assertTrue(timeline[-1].is_active)
        self.assertEqual(newest.timestamp, timeline[-1].timestamp)
        self.assertEqual(timeline[-1].status_display, "Shipped")


class InMemoryStoreTests(SimpleTestCase):
    def test_stale_sequence_is_rejected(self):
        store = InMemoryHistoryStore()
        order = Order()
        OrderStatusService(store).start(order)

        stale = OrderStatusEntry(order_id=order.pk, sequence=1, status=S.CONFIRMED, timestamp=timezone.now())
        with self.assertRaises(ConcurrentTransition) as ctx:
            store.append(stale)

        self.assertEqual(ctx.exception.code, "concurrent_transition")
        self.assertEqual(store.count(order.pk), 1)

    def test_current_status_of_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            InMemoryHistoryStore().current_status("nope")


class ConcurrentTransitionTests(SimpleTestCase):
    """
    Many threads race to move the same order; the log must stay one chain.
    """
    WORKERS = 8

    def test_racing_transitions_form_a_single_chain(self):
        store = InMemoryHistoryStore()
        service = OrderStatusService(store)
        order = Order()
        service.start(order)

        barrier = threading.Barrier(self.WORKERS)
        targets = [S.CONFIRMED, S.CANCELLED] * (self.WORKERS // 2)

        def attempt(i):
            barrier.wait()
            try:
                service.transition(order.pk, targets[i], Actor.admin(f"admin{i}@x"))
                return True
            except InvalidTransition:
                return False

        with ThreadPoolExecutor(max_workers=self.WORKERS) as executor:
            results = list(executor.map(attempt, range(self.WORKERS)))

        entries = store.list_by_order(order.pk)
        statuses = [e.status for e in entries]

        self.assertTrue(is_valid_walk(statuses), statuses)
        self.assertEqual([e.sequence for e in entries], list(range(1, len(entries) + 1)))
        self.assertEqual(sum(results), len(entries) - 1)
        self.assertGreaterEqual(sum(results), 1)

    def test_different_orders_do_not_block_each_other(self):
        store = InMemoryHistoryStore()
        service = OrderStatusService(store)
        first, second = Order(), Order()
        service.start(first)
        service.start(second)

        with store.lock(first.pk):
            # first is locked by this thread; second must still move
            service.transition(second.pk, S.CONFIRMED, Actor.admin("admin@x"))

        self.assertEqual(service.current_status(second.pk), S.CONFIRMED)
        self.assertEqual(service.current_status(first.pk), S.PLACED)
