from rest_framework import serializers
from .models import Order, OrderItem, OrderStatus
from .models.timeline import NOTES_MAX_LENGTH


class TimelineEntrySerializer(serializers.Serializer):
    """
    Wire shape consumed by the storefront OrderTimeline component.
    """
    id = serializers.UUIDField()
    status = serializers.CharField()
    timestamp = serializers.DateTimeField()
    notes = serializers.CharField(allow_blank=True)
    updatedBy = serializers.CharField(source='updated_by')
    isActive = serializers.BooleanField(source='is_active')


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(
        max_length=NOTES_MAX_LENGTH, required=False, allow_blank=True, allow_null=True, default=""
    )

    def to_internal_value(self, data):
        # Accept lower-case literals from the SPA ("shipped")
        if hasattr(data, "get") and isinstance(data.get("status"), str):
            data = data.copy()
            data["status"] = data["status"].strip().upper()
        return super().to_internal_value(data)


class AllowedTransitionsSerializer(serializers.Serializer):
    current = serializers.CharField()
    allowed = serializers.ListField(child=serializers.CharField())
    terminal = serializers.BooleanField()


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            'product_id', 'product_name_snapshot', 'brand_snapshot', 'volume_ml_snapshot',
            'quantity', 'unit_price_snapshot', 'subtotal',
        ]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    # Annotated by OrderViewSet.get_queryset; one query for the whole page
    current_status = serializers.CharField(source='latest_status', read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = [
            'id', 'current_status', 'total_amount', 
            'shipping_address', 'created_at', 'items'
        ]
