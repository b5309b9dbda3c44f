from django.urls import path
from .views import (
    weather, notification_list, whatsapp_notification, email_notification,
    event_reminder, stock_alert, regular_alerts,
)

urlpatterns = [
    path('weather/', weather, name='weather'),
    path('notifications/', notification_list, name='notification-list'),
    path('notifications/whatsapp/', whatsapp_notification, name='notification-whatsapp'),
    path('notifications/email/', email_notification, name='notification-email'),
    path('notifications/event-reminder/', event_reminder, name='notification-event-reminder'),
    path('notifications/stock-alert/', stock_alert, name='notification-stock-alert'),
    path('notifications/regular-alerts/', regular_alerts, name='notification-regular-alerts'),
]
