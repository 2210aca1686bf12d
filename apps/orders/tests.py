# apps/orders/tests.py
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest import mock

from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase
from django.test.utils import CaptureQueriesContext
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.catalog.models import Product
from apps.utils.exceptions import BusinessLogicException
from apps.orders.actors import Actor
from apps.orders.exceptions import (
    ConcurrentTransition,
    InvalidTransition,
    OrderNotFound,
    StatusValidationError,
    StoreUnavailable,
)
from apps.orders.history import OrmHistoryStore
from apps.orders.models import Order, OrderStatus, OrderStatusEntry
from apps.orders.models.timeline import ImmutableEntryError
from apps.orders.services import OrderService, OrderStatusService
from apps.orders.transitions import is_valid_walk

S = OrderStatus


class OrderFixtureMixin:
    def create_fixtures(self):
        self.customer = User.objects.create_user(email="buyer@shop.test", password="testpass123")
        self.other = User.objects.create_user(email="other@shop.test", password="testpass123")
        self.admin = User.objects.create_admin(email="admin@shop.test", password="testpass123")
        self.product = Product.objects.create(
            name="Bleu Intense", brand="Maison Test", price=Decimal("89.50"), stock=20
        )
        self.order = OrderService.create_order(
            self.customer,
            [{"product_id": self.product.id, "quantity": 2}],
            shipping_address={"line1": "1 Rue de Parfum", "city": "Grasse"},
        )

    def statuses(self, order=None):
        order = order or self.order
        return list(
            OrderStatusEntry.objects.filter(order=order)
            .order_by("timestamp", "sequence")
            .values_list("status", flat=True)
        )


class OrderCreationTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_order_writes_single_placed_entry(self):
        entries = list(self.order.timeline.all())

        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].status, S.PLACED)
        self.assertEqual(entries[0].updated_by, "SYSTEM")
        self.assertEqual(entries[0].sequence, 1)
        self.assertIsNone(entries[0].created_by)
        self.assertEqual(self.order.current_status, S.PLACED)

    def test_create_order_prices_server_side_and_reserves_stock(self):
        self.assertEqual(self.order.total_amount, Decimal("179.00"))
        item = self.order.items.get()
        self.assertEqual(item.unit_price_snapshot, Decimal("89.50"))
        self.assertEqual(item.brand_snapshot, "Maison Test")
        self.assertEqual(str(item), "2x Bleu Intense 100ml")
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 18)

    def test_insufficient_stock_creates_nothing(self):
        with self.assertRaises(BusinessLogicException):
            OrderService.create_order(self.customer, [{"product_id": self.product.id, "quantity": 50}])
        self.assertEqual(Order.objects.count(), 1)

    def test_invalid_quantity(self):
        with self.assertRaises(BusinessLogicException) as ctx:
            OrderService.create_order(self.customer, [{"product_id": self.product.id, "quantity": 0}])
        self.assertEqual(ctx.exception.code, "invalid_quantity")

    def test_low_stock_warning(self):
        with self.assertLogs("apps.orders.services", level="WARNING"):
            OrderService.create_order(self.customer, [{"product_id": self.product.id, "quantity": 15}])


class OrderStatusServiceTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.service = OrderStatusService()
        self.actor = Actor.from_user(self.admin)

    def walk(self, *targets):
        for target in targets:
            self.service.transition(self.order.id, target, self.actor)

    def test_confirm_scenario(self):
        timeline = self.service.transition(self.order.id, S.CONFIRMED, "admin@x", "")

        self.assertEqual([e.status for e in timeline], ["PLACED", "CONFIRMED"])
        self.assertEqual([e.is_active for e in timeline], [False, True])
        self.assertEqual(self.statuses(), ["PLACED", "CONFIRMED"])

    def test_admin_actor_is_linked(self):
        self.service.transition(self.order.id, S.CONFIRMED, self.actor, "Paid by card")
        entry = self.order.latest_entry

        self.assertEqual(entry.updated_by, "admin@shop.test")
        self.assertEqual(entry.created_by, self.admin)
        self.assertEqual(entry.notes, "Paid by card")

    def test_rejected_transition_leaves_history_untouched(self):
        self.walk(S.CONFIRMED, S.PACKED, S.SHIPPED)

        with self.assertRaises(InvalidTransition):
            self.service.transition(self.order.id, S.PACKED, self.actor)

        self.assertEqual(self.order.timeline.count(), 4)
        self.assertEqual(self.order.current_status, S.SHIPPED)

    def test_delivered_refunded_then_locked(self):
        self.walk(S.CONFIRMED, S.PACKED, S.SHIPPED, S.DELIVERED)
        timeline = self.service.transition(self.order.id, S.REFUNDED, self.actor)
        self.assertEqual(timeline[-1].status, "REFUNDED")

        with self.assertRaises(InvalidTransition):
            self.service.transition(self.order.id, S.CANCELLED, self.actor)
        self.assertEqual(
            self.statuses(),
            ["PLACED", "CONFIRMED", "PACKED", "SHIPPED", "DELIVERED", "REFUNDED"],
        )

    def test_history_is_a_legal_walk(self):
        self.walk(S.CONFIRMED, S.CANCELLED, S.REFUNDED)
        self.assertTrue(is_valid_walk(self.statuses()))

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            self.service.transition(uuid.uuid4(), S.CONFIRMED, self.actor)
        with self.assertRaises(OrderNotFound):
            self.service.get_timeline(uuid.uuid4())
        with self.assertRaises(OrderNotFound):
            self.service.get_timeline("not-a-uuid")

    def test_order_without_history_is_not_found(self):
        bare = Order.objects.create(user=self.customer, total_amount=Decimal("10.00"))
        with self.assertRaises(OrderNotFound):
            self.service.transition(bare.id, S.CONFIRMED, self.actor)
        self.assertEqual(bare.timeline.count(), 0)

    def test_validation_errors_write_nothing(self):
        with self.assertRaises(StatusValidationError):
            self.service.transition(self.order.id, S.CONFIRMED, self.actor, notes="n" * 501)
        with self.assertRaises(StatusValidationError):
            self.service.transition(self.order.id, "LOST_IN_TRANSIT", self.actor)
        self.assertEqual(self.order.timeline.count(), 1)

    def test_start_twice_rejected(self):
        with self.assertRaises(InvalidTransition):
            self.service.start(self.order)
        self.assertEqual(self.order.timeline.count(), 1)

    def test_allowed_next(self):
        self.walk(S.CONFIRMED, S.PACKED)
        self.assertEqual(self.service.allowed_next(self.order.id), [S.SHIPPED, S.CANCELLED])

    def test_transition_is_logged(self):
        with self.assertLogs("apps.orders.services", level="INFO") as logs:
            self.service.transition(self.order.id, S.CONFIRMED, self.actor)
        self.assertIn("PLACED -> CONFIRMED", logs.output[0])


class OrmHistoryStoreTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.store = OrmHistoryStore()

    def test_list_is_ascending(self):
        OrderStatusService(self.store).transition(self.order.id, S.CONFIRMED, Actor.system())
        entries = self.store.list_by_order(self.order.id)

        self.assertEqual([e.sequence for e in entries], [1, 2])
        self.assertEqual(self.store.current_status(self.order.id), S.CONFIRMED)

    def test_stale_sequence_append_is_rejected(self):
        stale = OrderStatusEntry(
            order_id=self.order.id, sequence=1, status=S.CANCELLED, timestamp=timezone.now()
        )
        with self.assertRaises(ConcurrentTransition) as ctx:
            self.store.append(stale)

        self.assertEqual(ctx.exception.current_status, S.PLACED)
        self.assertEqual(self.store.count(self.order.id), 1)

    def test_lock_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            with self.store.lock(uuid.uuid4()):
                pass

    def test_lock_failure_becomes_store_unavailable(self):
        with mock.patch.object(Order.objects, "select_for_update", side_effect=OperationalError("db down")):
            with self.assertRaises(StoreUnavailable):
                OrderStatusService(self.store).transition(self.order.id, S.CONFIRMED, Actor.system())
        self.assertEqual(self.store.count(self.order.id), 1)

    def test_database_failure_becomes_store_unavailable(self):
        with mock.patch.object(OrderStatusEntry.objects, "filter", side_effect=OperationalError("db down")):
            with self.assertRaises(StoreUnavailable):
                OrderStatusService(self.store).get_timeline(self.order.id)

    def test_entries_are_immutable(self):
        entry = self.order.timeline.get()
        entry.notes = "rewritten"

        with self.assertRaises(ImmutableEntryError):
            entry.save()
        with self.assertRaises(ImmutableEntryError):
            entry.delete()

        entry.refresh_from_db()
        self.assertEqual(entry.notes, "Order placed.")


class OrderTimelineAPITests(OrderFixtureMixin, APITestCase):
    def setUp(self):
        self.create_fixtures()

    def _timeline_url(self, order_id):
        return reverse("orders-timeline", kwargs={"pk": str(order_id)})

    def _status_url(self, order_id):
        return reverse("orders-update-status", kwargs={"pk": str(order_id)})

    def test_owner_reads_timeline(self):
        self.client.force_authenticate(self.customer)
        resp = self.client.get(self._timeline_url(self.order.id))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(len(resp.data), 1)
        self.assertEqual(
            set(resp.data[0].keys()),
            {"id", "status", "timestamp", "notes", "updatedBy", "isActive"},
        )
        self.assertEqual(resp.data[0]["status"], "PLACED")
        self.assertEqual(resp.data[0]["updatedBy"], "SYSTEM")
        self.assertTrue(resp.data[0]["isActive"])

    def test_other_customer_gets_404(self):
        self.client.force_authenticate(self.other)
        resp = self.client.get(self._timeline_url(self.order.id))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_order_gets_404(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.get(self._timeline_url(uuid.uuid4()))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_anonymous_rejected(self):
        resp = self.client.get(self._timeline_url(self.order.id))
        self.assertIn(resp.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

    def test_admin_updates_status(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(
            self._status_url(self.order.id), {"status": "confirmed", "notes": "Payment verified"}, format="json"
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual([e["status"] for e in resp.data], ["PLACED", "CONFIRMED"])
        self.assertEqual([e["isActive"] for e in resp.data], [False, True])
        self.assertEqual(resp.data[1]["updatedBy"], "admin@shop.test")
        self.assertEqual(resp.data[1]["notes"], "Payment verified")

    def test_customer_cannot_update_status(self):
        self.client.force_authenticate(self.customer)
        resp = self.client.post(self._status_url(self.order.id), {"status": "CONFIRMED"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.order.timeline.count(), 1)

    def test_illegal_edge_is_409(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(self._status_url(self.order.id), {"status": "SHIPPED"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "invalid_transition")
        self.assertEqual(resp.data["current_status"], "PLACED")
        self.assertEqual(resp.data["attempted_status"], "SHIPPED")
        self.assertEqual(self.order.timeline.count(), 1)

    def test_unknown_status_is_400(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(self._status_url(self.order.id), {"status": "TELEPORTED"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "validation_error")

    def test_oversized_notes_is_400(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(
            self._status_url(self.order.id), {"status": "CONFIRMED", "notes": "n" * 501}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.order.timeline.count(), 1)

    def test_status_update_on_unknown_order_is_404(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(self._status_url(uuid.uuid4()), {"status": "CONFIRMED"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_allowed_transitions(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.get(reverse("orders-transitions", kwargs={"pk": str(self.order.id)}))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(
            resp.data, {"current": "PLACED", "allowed": ["CONFIRMED", "CANCELLED"], "terminal": False}
        )

    def test_transitions_report_terminal_status(self):
        OrderStatusService().transition(self.order.id, S.CANCELLED, Actor.from_user(self.admin))
        self.client.force_authenticate(self.admin)
        resp = self.client.get(reverse("orders-transitions", kwargs={"pk": str(self.order.id)}))

        self.assertEqual(resp.data, {"current": "CANCELLED", "allowed": ["REFUNDED"], "terminal": True})

    def test_order_list_query_count_does_not_grow_with_orders(self):
        self.client.force_authenticate(self.admin)
        with CaptureQueriesContext(connection) as one_order:
            self.client.get(reverse("orders-list"))

        for _ in range(3):
            OrderService.create_order(self.other, [{"product_id": self.product.id, "quantity": 1}])
        with CaptureQueriesContext(connection) as four_orders:
            resp = self.client.get(reverse("orders-list"))

        self.assertEqual(len(four_orders), len(one_order))
        results = resp.data["results"] if isinstance(resp.data, dict) else resp.data
        self.assertEqual({r["current_status"] for r in results}, {"PLACED"})

    def test_customer_lists_only_own_orders(self):
        OrderService.create_order(self.other, [{"product_id": self.product.id, "quantity": 1}])
        self.client.force_authenticate(self.customer)
        resp = self.client.get(reverse("orders-list"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        results = resp.data["results"] if isinstance(resp.data, dict) else resp.data
        self.assertEqual([r["id"] for r in results], [str(self.order.id)])
        self.assertEqual(results[0]["current_status"], "PLACED")


class OrderAdminActionTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.superuser = User.objects.create_superuser(email="root@shop.test", password="testpass123")
        self.client.force_login(self.superuser)
        self.url = reverse("admin:orders_order_changelist")

    def _run(self, action):
        return self.client.post(self.url, {"action": action, "_selected_action": [str(self.order.id)]})

    def test_confirm_action(self):
        resp = self._run("mark_confirmed")

        self.assertEqual(resp.status_code, 302)
        entry = self.order.latest_entry
        self.assertEqual(entry.status, S.CONFIRMED)
        self.assertEqual(entry.updated_by, "root@shop.test")

    def test_illegal_action_writes_nothing(self):
        resp = self._run("mark_delivered")

        self.assertEqual(resp.status_code, 302)
        self.assertEqual(self.order.timeline.count(), 1)

    def test_change_page_renders_timeline(self):
        resp = self.client.get(reverse("admin:orders_order_change", args=[self.order.id]))
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Order placed.")


class OrmConcurrentTransitionTests(OrderFixtureMixin, TransactionTestCase):
    """
    Threads with their own DB connections race to move one order. The row
    lock and the unique (order, sequence) constraint must leave one chain.
    """
    WORKERS = 6

    def setUp(self):
        self.create_fixtures()

    def test_racing_transitions_form_a_single_chain(self):
        barrier = threading.Barrier(self.WORKERS)
        targets = [S.CONFIRMED, S.CANCELLED] * (self.WORKERS // 2)

        def attempt(i):
            try:
                barrier.wait()
                OrderStatusService(OrmHistoryStore()).transition(
                    self.order.id, targets[i], Actor.admin(f"admin{i}@shop.test")
                )
                return "ok"
            except BusinessLogicException as e:
                return e.code
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=self.WORKERS) as executor:
            outcomes = list(executor.map(attempt, range(self.WORKERS)))

        entries = list(self.order.timeline.order_by("timestamp", "sequence"))
        statuses = [e.status for e in entries]

        self.assertTrue(is_valid_walk(statuses), statuses)
        self.assertEqual([e.sequence for e in entries], list(range(1, len(entries) + 1)))
        self.assertEqual(outcomes.count("ok"), len(entries) - 1)
        self.assertGreaterEqual(outcomes.count("ok"), 1)
        self.assertTrue(
            set(outcomes) <= {"ok", "invalid_transition", "concurrent_transition", "store_unavailable"},
            outcomes,
        )
