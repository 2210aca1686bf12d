from django.db import models
from .order import Order
from apps.catalog.models import Product

__all__ = ["OrderItem"]


class OrderItem(models.Model):
    """
    One bottle line of an order. Name, brand, size and price are copied from
    the catalog at purchase time so later catalog edits never change receipts.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')

    product_name_snapshot = models.CharField(max_length=255)
    brand_snapshot = models.CharField(max_length=120, blank=True)
    volume_ml_snapshot = models.PositiveIntegerField(null=True, blank=True)
    unit_price_snapshot = models.DecimalField(max_digits=10, decimal_places=2)

    quantity = models.PositiveIntegerField()

    class Meta:
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_item_quantity_positive",
            ),
        ]

    @classmethod
    def from_product(cls, order, product, quantity):
        return cls(
            order=order,
            product=product,
            product_name_snapshot=product.name,
            brand_snapshot=product.brand,
            volume_ml_snapshot=product.volume_ml,
            unit_price_snapshot=product.price,
            quantity=quantity,
        )

    @property
    def subtotal(self):
        return self.unit_price_snapshot * self.quantity

    def __str__(self):
        size = f" {self.volume_ml_snapshot}ml" if self.volume_ml_snapshot else ""
        return f"{self.quantity}x {self.product_name_snapshot}{size}"
