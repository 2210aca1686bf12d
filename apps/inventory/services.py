import logging
from typing import Dict, Iterable, List
from django.conf import settings
from django.db import transaction
from django.db.models import F
from apps.utils.exceptions import BusinessLogicException
from apps.catalog.models import Product

logger = logging.getLogger(__name__)


def low_stock_threshold() -> int:
    return getattr(settings, "LOW_STOCK_THRESHOLD", 5)


class InventoryService:
    """
    Stock queries and stock changes for the catalog.
    ALL stock changes must pass through here.
    """

    @staticmethod
    def get_low_stock_products():
        """Active products below the low-stock threshold (out-of-stock included)."""
        return Product.objects.filter(is_active=True, stock__lt=low_stock_threshold()).order_by("stock", "name")

    @staticmethod
    def get_low_stock_count() -> int:
        return InventoryService.get_low_stock_products().count()

    @staticmethod
    def get_out_of_stock_products():
        return Product.objects.filter(is_active=True, stock=0).order_by("name")

    @staticmethod
    def get_out_of_stock_count() -> int:
        return InventoryService.get_out_of_stock_products().count()

    @staticmethod
    def get_stock_level(product_id) -> int:
        stock = Product.objects.filter(pk=product_id).values_list("stock", flat=True).first()
        return stock or 0

    @staticmethod
    def has_sufficient_stock(product_id, requested_quantity: int) -> bool:
        product = Product.objects.filter(pk=product_id).first()
        return product is not None and product.is_active and product.stock >= requested_quantity

    @staticmethod
    def has_low_stock_items(product_ids: Iterable) -> bool:
        """
        True if any product is running low but not yet sold out.
        """
        threshold = low_stock_threshold()
        for product_id in product_ids:
            stock = InventoryService.get_stock_level(product_id)
            if 0 < stock < threshold:
                return True
        return False

    @staticmethod
    @transaction.atomic
    def reserve_stock(items: List[Dict], reference: str) -> Dict[str, Product]:
        """
        Locks product rows in deterministic order, validates availability
        and decrements stock. Returns the locked products keyed by id.
        """
        # Sort by Product ID to ensure lock ordering
        sorted_items = sorted(items, key=lambda x: str(x["product_id"]))
        product_ids = [i["product_id"] for i in sorted_items]

        products = Product.objects.select_for_update().filter(pk__in=product_ids).order_by("pk")
        product_map = {str(p.pk): p for p in products}

        for item in sorted_items:
            pid = str(item["product_id"])
            qty = item["quantity"]

            product = product_map.get(pid)
            if product is None or not product.is_active:
                raise BusinessLogicException(f"Product {pid} is not available.", code="product_unavailable")
            if product.stock < qty:
                raise BusinessLogicException(
                    f"Insufficient stock for {product.name}. "
                    f"Required: {qty}, Available: {product.stock}",
                    code="insufficient_stock",
                )

        for item in sorted_items:
            product = product_map[str(item["product_id"])]
            Product.objects.filter(pk=product.pk).update(stock=F("stock") - item["quantity"])
            product.refresh_from_db(fields=["stock"])

        logger.info(f"Reserved stock for {reference}: {len(sorted_items)} line(s)")
        return product_map
