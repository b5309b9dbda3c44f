from django.urls import path
from .views import (
    item_list_create, item_detail, item_categories,
    stock_list, stock_low, stock_critical,
    stock_movement_list_create,
)

urlpatterns = [
    # Item endpoints
    path('items/', item_list_create, name='item-list-create'),
    path('items/categories/', item_categories, name='item-categories'),
    path('items/<int:pk>/', item_detail, name='item-detail'),

    # Stock endpoints
    path('stock/', stock_list, name='stock-list'),
    path('stock/low/', stock_low, name='stock-low'),
    path('stock/critical/', stock_critical, name='stock-critical'),

    # StockMovement endpoints
    path('stock-movements/', stock_movement_list_create, name='stock-movement-list-create'),
]
