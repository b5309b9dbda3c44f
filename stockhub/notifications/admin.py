from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['type', 'recipient', 'subject', 'status', 'branch', 'sent_at', 'created_at']
    list_filter = ['type', 'status', 'created_at']
    search_fields = ['recipient', 'subject', 'message']
    readonly_fields = ['created_at', 'sent_at']
