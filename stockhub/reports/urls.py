from django.urls import path
from . import views

urlpatterns = [
    path('dashboard/', views.dashboard, name='dashboard'),
    path('reports/stock/', views.stock_report, name='stock-report'),
    path('reports/movements/', views.movements_report, name='movements-report'),
    path('activity/', views.activity_feed, name='activity-feed'),
    path('activity/summary/', views.activity_summary, name='activity-summary'),
    path('analytics/', views.analytics, name='analytics'),
    path('notifications/feed/', views.notifications_feed, name='notifications-feed'),
]
