from rest_framework import serializers
from .models import CalendarEvent, EventAlert


class EventAlertSerializer(serializers.ModelSerializer):
    class Meta:
        model = EventAlert
        fields = ['id', 'alert_date', 'alert_time', 'status', 'sent_at']


class CalendarEventSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    created_by_name = serializers.CharField(source='created_by.display_name', read_only=True, default=None)
    alerts = EventAlertSerializer(many=True, read_only=True)

    class Meta:
        model = CalendarEvent
        fields = ['id', 'branch', 'branch_name', 'title', 'description', 'event_date', 'event_type',
                  'created_by', 'created_by_name', 'alerts', 'created_at', 'updated_at']
        read_only_fields = ['branch', 'created_by', 'created_at', 'updated_at']

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Title is required')
        return value
