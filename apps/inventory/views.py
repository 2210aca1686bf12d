from rest_framework import views
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema

from apps.accounts.permissions import IsAdmin
from .serializers import LowStockReportSerializer
from .services import InventoryService, low_stock_threshold

class LowStockReportView(views.APIView):
    """
    Admin dashboard widget: products running low and sold out.
    """
    permission_classes = [IsAuthenticated, IsAdmin]

    @extend_schema(responses=LowStockReportSerializer)
    def get(self, request):
        low_stock = InventoryService.get_low_stock_products()
        out_of_stock = InventoryService.get_out_of_stock_products()
        serializer = LowStockReportSerializer({
            "threshold": low_stock_threshold(),
            "low_stock_count": low_stock.count(),
            "out_of_stock_count": out_of_stock.count(),
            "low_stock": low_stock,
            "out_of_stock": out_of_stock,
        })
        return Response(serializer.data)
