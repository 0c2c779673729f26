"""
Django Admin configuration for inventory models.

Stock is read-only here: it only changes through inventory.services so that
every change has a movement.
"""
from django.contrib import admin
from .models import Product, StockMovement


class StockMovementInline(admin.TabularInline):
    model = StockMovement
    extra = 0
    fields = ['created_at', 'kind', 'quantity', 'unit', 'quantity_after', 'reason', 'performed_by']
    readonly_fields = fields
    can_delete = False
    ordering = ['-created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'name', 'stock_quantity', 'unit', 'unit_price',
        'alert_threshold', 'is_low_stock', 'expiry_date', 'is_deleted'
    ]
    list_filter = ['unit', 'is_deleted', 'expiry_date']
    search_fields = ['name']
    ordering = ['name']
    readonly_fields = ['stock_quantity', 'created_at', 'updated_at']
    inlines = [StockMovementInline]

    def is_low_stock(self, obj):
        return obj.is_under_alert_threshold
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['id', 'product', 'kind', 'quantity', 'unit', 'quantity_after', 'menu_id', 'created_at']
    list_filter = ['kind', 'unit', 'created_at']
    search_fields = ['product__name', 'reason', 'performed_by']
    ordering = ['-created_at']
    raw_id_fields = ['product']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
