from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source='branch.name', read_only=True, default=None)

    class Meta:
        model = Notification
        fields = ['id', 'branch', 'branch_name', 'recipient', 'subject', 'message', 'type',
                  'status', 'error_message', 'sent_at', 'created_at']


class WhatsAppRequestSerializer(serializers.Serializer):
    phone_number = serializers.CharField(max_length=30)
    message = serializers.CharField()
    type = serializers.ChoiceField(choices=['stock_alert', 'event_reminder', 'general'], default='general')
    branch = serializers.IntegerField(required=False, allow_null=True)


class EmailRequestSerializer(serializers.Serializer):
    to = serializers.EmailField()
    subject = serializers.CharField(max_length=255)
    body = serializers.CharField()
    type = serializers.ChoiceField(choices=['text', 'html'], default='text')


class EventReminderRequestSerializer(serializers.Serializer):
    event = serializers.IntegerField()


class StockAlertRequestSerializer(serializers.Serializer):
    item = serializers.IntegerField()
