from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Item(models.Model):
    """Inventory item tracked at one branch"""
    branch = models.ForeignKey('locations.Branch', on_delete=models.PROTECT, related_name='items')
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100)
    description = models.TextField(blank=True, null=True)
    unit = models.CharField(max_length=30, default='pcs')
    # Reorder point; at or below it the item is low, at or below half of it critical
    threshold_level = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='created_items'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'items'
        ordering = ['name']
        indexes = [
            models.Index(fields=['branch', 'name'], name='idx_item_branch_name'),
            models.Index(fields=['category'], name='idx_item_category'),
        ]


class Stock(models.Model):
    """Current quantity of an item; one row per item"""
    item = models.OneToOneField(Item, on_delete=models.CASCADE, related_name='stock')
    current_quantity = models.PositiveIntegerField(default=0)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.item.name}: {self.current_quantity}"

    class Meta:
        db_table = 'stock'


class StockMovement(models.Model):
    """Append-only ledger of stock changes"""
    MOVEMENT_TYPE_CHOICES = [
        ('in', 'Stock In'),
        ('out', 'Stock Out'),
    ]

    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='movements')
    movement_type = models.CharField(max_length=10, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    reason = models.CharField(max_length=255, blank=True, null=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='stock_movements'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['item', '-created_at'], name='idx_movement_item_created'),
            models.Index(fields=['-created_at'], name='idx_movement_created'),
        ]
