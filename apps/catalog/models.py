# apps/catalog/models.py
from django.db import models
from apps.utils.models import TimestampedModel


class Product(TimestampedModel):
    """
    A sellable perfume (one bottle size per row).
    """
    name = models.CharField(max_length=255)
    brand = models.CharField(max_length=120, blank=True)
    volume_ml = models.PositiveIntegerField(default=100, help_text="Bottle size in millilitres")
    description = models.TextField(blank=True)

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Customer-facing selling price",
    )
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "stock"], name="product_active_stock_idx"),
        ]

    def __str__(self):
        if self.brand:
            return f"{self.brand} {self.name} ({self.volume_ml}ml)"
        return f"{self.name} ({self.volume_ml}ml)"
