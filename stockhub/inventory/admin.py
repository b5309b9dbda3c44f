from django.contrib import admin
from .models import Item, Stock, StockMovement


class StockInline(admin.StackedInline):
    model = Stock
    can_delete = False
    readonly_fields = ['current_quantity', 'updated_by', 'updated_at']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'branch', 'threshold_level', 'unit', 'created_at']
    list_filter = ['branch', 'category']
    search_fields = ['name', 'category']
    inlines = [StockInline]


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['item', 'movement_type', 'quantity', 'reason', 'updated_by', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['item__name', 'reason']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
