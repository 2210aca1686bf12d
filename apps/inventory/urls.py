from django.urls import path
from .views import LowStockReportView

urlpatterns = [
    path('low-stock/', LowStockReportView.as_view(), name='inventory-low-stock'),
]
