from django.contrib import admin, messages
from .actors import Actor
from .exceptions import InvalidTransition, OrderNotFound, StoreUnavailable
from .models import Order, OrderItem, OrderStatus, OrderStatusEntry
from .services import OrderStatusService


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name_snapshot', 'brand_snapshot', 'volume_ml_snapshot', 'unit_price_snapshot', 'quantity')
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderStatusEntryInline(admin.TabularInline):
    model = OrderStatusEntry
    extra = 0
    ordering = ('timestamp', 'sequence')
    fields = ('sequence', 'timestamp', 'status', 'notes', 'updated_by')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


def _status_action(target, label):
    """
    Builds a bulk admin action that moves each selected order to `target`
    through OrderStatusService, acting as the logged-in admin.
    """
    def apply(modeladmin, request, queryset):
        service = OrderStatusService()
        actor = Actor.from_user(request.user)
        moved = 0
        for order in queryset:
            try:
                service.transition(order.pk, target, actor=actor, notes=f"{label} from admin panel")
                moved += 1
            except (InvalidTransition, OrderNotFound, StoreUnavailable) as e:
                modeladmin.message_user(request, f"{order.pk}: {e.message}", level=messages.WARNING)
        if moved:
            modeladmin.message_user(request, f"{label}: {moved} order(s) updated.", level=messages.SUCCESS)

    apply.__name__ = f"mark_{target.lower()}"
    return admin.action(description=f"{label} selected orders")(apply)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'status_badge', 'total_amount', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('id', 'user__email', 'payment_id')
    readonly_fields = ('id', 'user', 'total_amount', 'shipping_address', 'payment_id', 'created_at', 'updated_at')
    inlines = [OrderItemInline, OrderStatusEntryInline]
    actions = [
        _status_action(OrderStatus.CONFIRMED, "Confirm"),
        _status_action(OrderStatus.PACKED, "Mark packed"),
        _status_action(OrderStatus.SHIPPED, "Mark shipped"),
        _status_action(OrderStatus.DELIVERED, "Mark delivered"),
        _status_action(OrderStatus.CANCELLED, "Cancel"),
        _status_action(OrderStatus.REFUNDED, "Refund"),
    ]

    def has_add_permission(self, request):
        return False

    @admin.display(description="Status")
    def status_badge(self, obj):
        status = obj.current_status
        return OrderStatus(status).label if status else "-"


@admin.register(OrderStatusEntry)
class OrderStatusEntryAdmin(admin.ModelAdmin):
    """
    Audit view over every order's status log. Read-only.
    """
    list_display = ('order', 'sequence', 'status', 'timestamp', 'updated_by')
    list_filter = ('status', 'timestamp')
    search_fields = ('order__id', 'updated_by', 'notes')
    ordering = ('-timestamp', '-sequence')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
