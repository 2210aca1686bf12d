from rest_framework import serializers
from apps.catalog.models import Product

class StockLevelSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'name', 'brand', 'volume_ml', 'stock', 'is_active']

class LowStockReportSerializer(serializers.Serializer):
    threshold = serializers.IntegerField()
    low_stock_count = serializers.IntegerField()
    out_of_stock_count = serializers.IntegerField()
    low_stock = StockLevelSerializer(many=True)
    out_of_stock = StockLevelSerializer(many=True)
