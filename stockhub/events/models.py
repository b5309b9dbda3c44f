import datetime

from django.conf import settings
from django.db import models


def default_alert_time():
    hour, minute = settings.EVENT_ALERT_TIME.split(':')
    return datetime.time(int(hour), int(minute))


class CalendarEvent(models.Model):
    """Branch calendar entry (deliveries, meetings, stock counts, reminders)"""
    EVENT_TYPE_CHOICES = [
        ('reminder', 'Reminder'),
        ('meeting', 'Meeting'),
        ('delivery', 'Delivery'),
        ('inventory', 'Inventory'),
        ('other', 'Other'),
    ]

    branch = models.ForeignKey('locations.Branch', on_delete=models.PROTECT, related_name='events')
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    event_date = models.DateField()
    event_type = models.CharField(max_length=20, choices=EVENT_TYPE_CHOICES, default='reminder')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='calendar_events'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.event_date})"

    class Meta:
        db_table = 'calendar_events'
        ordering = ['event_date', 'id']
        indexes = [
            models.Index(fields=['branch', 'event_date'], name='idx_event_branch_date'),
        ]


class EventAlert(models.Model):
    """Scheduled WhatsApp reminder for an event"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
    ]

    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name='alerts')
    branch = models.ForeignKey('locations.Branch', on_delete=models.CASCADE, related_name='event_alerts')
    alert_date = models.DateField()
    alert_time = models.TimeField(default=default_alert_time)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'event_alerts'
        ordering = ['alert_date', 'alert_time']
        indexes = [
            models.Index(fields=['status', 'alert_date'], name='idx_event_alert_due'),
        ]
