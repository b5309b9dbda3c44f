from django.conf import settings
from django.db import models


class Notification(models.Model):
    """Record of every dispatched message (WhatsApp, email, in-app)"""
    TYPE_CHOICES = [
        ('stock_alert', 'Stock Alert'),
        ('event_reminder', 'Event Reminder'),
        ('general', 'General'),
        ('email', 'Email'),
        ('whatsapp', 'WhatsApp'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
    ]

    branch = models.ForeignKey(
        'locations.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='notifications'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='notifications'
    )
    # Phone number, email address, or 'branch' for in-app entries
    recipient = models.CharField(max_length=255)
    subject = models.CharField(max_length=255, blank=True)
    message = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='general')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    error_message = models.TextField(blank=True, null=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.type} -> {self.recipient} ({self.status})"

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['branch', '-created_at'], name='idx_notification_branch'),
            models.Index(fields=['status'], name='idx_notification_status'),
        ]
