from django.contrib import admin
from .models import CalendarEvent, EventAlert


class EventAlertInline(admin.TabularInline):
    model = EventAlert
    extra = 0
    readonly_fields = ['sent_at', 'created_at']


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = ['title', 'event_type', 'event_date', 'branch', 'created_by']
    list_filter = ['event_type', 'branch']
    search_fields = ['title', 'description']
    date_hierarchy = 'event_date'
    inlines = [EventAlertInline]


@admin.register(EventAlert)
class EventAlertAdmin(admin.ModelAdmin):
    list_display = ['event', 'branch', 'alert_date', 'alert_time', 'status', 'sent_at']
    list_filter = ['status', 'alert_date']
