from decimal import Decimal
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.catalog.models import Product
from apps.utils.exceptions import BusinessLogicException
from .services import InventoryService
from .tasks import report_low_stock


def make_product(name, stock, is_active=True, price="50.00"):
    return Product.objects.create(
        name=name, brand="Maison Test", price=Decimal(price), stock=stock, is_active=is_active
    )


class InventoryServiceTests(TestCase):
    def setUp(self):
        self.plenty = make_product("Oud Wood", 40)
        self.low = make_product("Neroli", 3)
        self.edge = make_product("Vetiver", 5)
        self.empty = make_product("Ambre", 0)
        self.retired = make_product("Old Musk", 1, is_active=False)

    def test_low_stock_is_strictly_below_threshold(self):
        names = set(InventoryService.get_low_stock_products().values_list("name", flat=True))
        self.assertEqual(names, {"Neroli", "Ambre"})
        self.assertEqual(InventoryService.get_low_stock_count(), 2)

    def test_out_of_stock_ignores_inactive(self):
        self.assertEqual(list(InventoryService.get_out_of_stock_products()), [self.empty])
        self.assertEqual(InventoryService.get_out_of_stock_count(), 1)

    @override_settings(LOW_STOCK_THRESHOLD=10)
    def test_threshold_is_configurable(self):
        self.assertEqual(InventoryService.get_low_stock_count(), 3)

    def test_sufficient_stock(self):
        self.assertTrue(InventoryService.has_sufficient_stock(self.low.id, 3))
        self.assertFalse(InventoryService.has_sufficient_stock(self.low.id, 4))
        self.assertFalse(InventoryService.has_sufficient_stock(self.retired.id, 1))

    def test_stock_level_of_unknown_product_is_zero(self):
        self.assertEqual(InventoryService.get_stock_level(self.plenty.id), 40)
        self.assertEqual(InventoryService.get_stock_level("00000000-0000-0000-0000-000000000000"), 0)

    def test_low_stock_items_ignore_sold_out(self):
        self.assertTrue(InventoryService.has_low_stock_items([self.plenty.id, self.low.id]))
        self.assertFalse(InventoryService.has_low_stock_items([self.plenty.id, self.empty.id]))

    def test_reserve_stock_decrements(self):
        InventoryService.reserve_stock(
            [{"product_id": self.plenty.id, "quantity": 5}, {"product_id": self.low.id, "quantity": 3}],
            reference="TEST-1",
        )
        self.plenty.refresh_from_db()
        self.low.refresh_from_db()
        self.assertEqual(self.plenty.stock, 35)
        self.assertEqual(self.low.stock, 0)

    def test_reserve_stock_is_all_or_nothing(self):
        with self.assertRaises(BusinessLogicException) as ctx:
            InventoryService.reserve_stock(
                [{"product_id": self.plenty.id, "quantity": 1}, {"product_id": self.low.id, "quantity": 9}],
                reference="TEST-2",
            )
        self.assertEqual(ctx.exception.code, "insufficient_stock")
        self.plenty.refresh_from_db()
        self.assertEqual(self.plenty.stock, 40)

    def test_report_low_stock_task(self):
        with self.assertLogs("apps.inventory.tasks", level="WARNING") as logs:
            result = report_low_stock()
        self.assertEqual(result, "Reported 2 low stock products")
        self.assertIn("Neroli", logs.output[0])


class LowStockAPITests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_admin(email="admin@shop.test")
        self.customer = User.objects.create_user(email="buyer@shop.test")
        make_product("Neroli", 2)
        make_product("Ambre", 0)
        make_product("Oud Wood", 40)
        self.url = reverse("inventory-low-stock")

    def test_admin_sees_report(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.get(self.url)

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["threshold"], 5)
        self.assertEqual(resp.data["low_stock_count"], 2)
        self.assertEqual(resp.data["out_of_stock_count"], 1)
        self.assertEqual(resp.data["out_of_stock"][0]["name"], "Ambre")

    def test_customer_is_forbidden(self):
        self.client.force_authenticate(self.customer)
        resp = self.client.get(self.url)
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_is_rejected(self):
        resp = self.client.get(self.url)
        self.assertIn(resp.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])
