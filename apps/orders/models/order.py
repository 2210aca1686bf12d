from django.db import models
from django.conf import settings
from apps.utils.models import TimestampedModel

__all__ = ["OrderStatus", "Order"]


class OrderStatus(models.TextChoices):
    PLACED = "PLACED", "Placed"              # Order created after payment confirmation
    CONFIRMED = "CONFIRMED", "Confirmed"     # Admin confirmed the order
    PACKED = "PACKED", "Packed"              # Packed and ready to ship
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"        # Refund processed


class Order(TimestampedModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    # Snapshot of Address (JSON) to prevent historical drift
    shipping_address = models.JSONField(default=dict, blank=True)

    total_amount = models.DecimalField(max_digits=10, decimal_places=2)

    payment_id = models.CharField(max_length=100, blank=True, null=True, help_text="Payment gateway reference")

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Order #{self.short_id}"

    @property
    def latest_entry(self):
        return self.timeline.order_by("-timestamp", "-sequence").first()

    @property
    def current_status(self):
        """
        Derived from the newest timeline entry; None before the order is started.
        """
        entry = self.latest_entry
        return entry.status if entry else None
