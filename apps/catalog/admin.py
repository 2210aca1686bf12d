# apps/catalog/admin.py
from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "brand", "volume_ml", "price", "stock", "is_active")
    search_fields = ("name", "brand")
    list_filter = ("is_active", "brand")
    list_editable = ("price", "stock", "is_active")
    readonly_fields = ("created_at", "updated_at")
