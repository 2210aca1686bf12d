import logging
from celery import shared_task
from .services import InventoryService, low_stock_threshold

logger = logging.getLogger(__name__)

@shared_task
def report_low_stock():
    """
    Periodic (hourly) low-stock report for the shop admins.
    """
    products = list(InventoryService.get_low_stock_products())
    if not products:
        return "No low stock products"

    lines = ", ".join(f"{p} [{p.stock}]" for p in products)
    logger.warning(
        f"{len(products)} product(s) below stock threshold {low_stock_threshold()}: {lines}"
    )
    return f"Reported {len(products)} low stock products"
