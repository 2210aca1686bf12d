import uuid
from django.db import models
from django.conf import settings
from django.utils import timezone
from .order import Order, OrderStatus

__all__ = ["SYSTEM_ACTOR", "NOTES_MAX_LENGTH", "ACTOR_MAX_LENGTH", "ImmutableEntryError", "OrderStatusEntry"]

SYSTEM_ACTOR = "SYSTEM"
NOTES_MAX_LENGTH = 500
ACTOR_MAX_LENGTH = 100


class ImmutableEntryError(Exception):
    """Raised on any attempt to edit or delete a written status entry."""


class OrderStatusEntry(models.Model):
    """
    One row of an order's append-only status log.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, related_name="timeline", on_delete=models.CASCADE)

    # 1 for the initial entry, previous + 1 afterwards
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    timestamp = models.DateTimeField(default=timezone.now)
    notes = models.CharField(max_length=NOTES_MAX_LENGTH, blank=True)

    # Admin email, or "SYSTEM" for automatic updates
    updated_by = models.CharField(max_length=ACTOR_MAX_LENGTH, default=SYSTEM_ACTOR)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="order_status_entries",
    )

    class Meta:
        ordering = ["timestamp", "sequence"]
        verbose_name = "order status entry"
        verbose_name_plural = "order status entries"
        indexes = [
            models.Index(fields=["order", "timestamp"], name="order_history_order_ts_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["order", "sequence"], name="uniq_order_history_sequence"),
        ]

    def __str__(self):
        return f"{self.order_id} #{self.sequence} {self.status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableEntryError("Order status entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError("Order status entries cannot be deleted.")
