import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.http import Http404
from django.shortcuts import get_object_or_404

from stockhub.core.roles import is_admin, is_manager
from stockhub.core.scoping import scope_queryset, branch_in_scope, effective_branch_id
from stockhub.events.models import CalendarEvent
from stockhub.inventory.models import Item
from stockhub.locations.models import Branch
from .models import Notification
from .serializers import (
    NotificationSerializer, WhatsAppRequestSerializer, EmailRequestSerializer,
    EventReminderRequestSerializer, StockAlertRequestSerializer,
)
from .services.alerts import send_stock_alert, send_event_reminder, send_regular_alerts
from .services.mail import send_email
from .services.weather import get_weather
from .services.whatsapp import send_whatsapp

logger = logging.getLogger('stockhub.notifications')

MANAGERS_ONLY = {'error': 'Only managers can send notifications'}


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def weather(request):
    """
    Current weather for ?city=, else the working branch's location, else the
    default city. Always 200; `available` is false when the provider fails.
    """
    city = request.query_params.get('city')
    if not city:
        branch_id = effective_branch_id(request.user)
        if branch_id:
            city = Branch.objects.filter(pk=branch_id).values_list('location', flat=True).first()
    return Response(get_weather(city))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def whatsapp_notification(request):
    """Send a single WhatsApp message and record it"""
    if not is_manager(request.user):
        logger.warning(f"User {request.user.username} attempted to send WhatsApp without manager role")
        return Response(MANAGERS_ONLY, status=status.HTTP_403_FORBIDDEN)
    serializer = WhatsAppRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    branch = None
    branch_id = data.get('branch') or effective_branch_id(request.user)
    if branch_id and branch_in_scope(request.user, branch_id):
        branch = Branch.objects.get(pk=branch_id)

    logger.info(f"User {request.user.username} sending WhatsApp ({data['type']}) to {data['phone_number']}")
    notification = send_whatsapp(
        data['phone_number'], data['message'],
        type=data['type'], subject='Notification', branch=branch, user=request.user,
    )
    if notification is None or notification.status != 'sent':
        return Response(
            {'success': False, 'error': 'Failed to send WhatsApp notification'},
            status=status.HTTP_502_BAD_GATEWAY,
        )

    message = data['message']
    return Response({
        'success': True,
        'message': 'WhatsApp notification sent',
        'details': {
            'recipient': data['phone_number'],
            'type': data['type'],
            'sent_at': notification.sent_at,
            'message_preview': message[:50] + ('...' if len(message) > 50 else ''),
            'notification': notification.id,
        },
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def email_notification(request):
    """Send a single email and record it"""
    if not is_manager(request.user):
        logger.warning(f"User {request.user.username} attempted to send email without manager role")
        return Response(MANAGERS_ONLY, status=status.HTTP_403_FORBIDDEN)
    serializer = EmailRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    logger.info(f"User {request.user.username} sending email '{data['subject']}' to {data['to']}")
    notification = send_email(data['to'], data['subject'], data['body'], content_type=data['type'], user=request.user)
    if notification is None or notification.status != 'sent':
        return Response({'success': False, 'error': 'Failed to send email'}, status=status.HTTP_502_BAD_GATEWAY)
    return Response({'success': True, 'message': 'Email sent', 'notification': notification.id})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def event_reminder(request):
    """Send the WhatsApp reminder for one event now"""
    serializer = EventReminderRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    events = scope_queryset(request.user, CalendarEvent.objects.select_related('branch'), request=request)
    event = get_object_or_404(events, pk=serializer.validated_data['event'])
    try:
        summary = send_event_reminder(event)
    except Exception as e:
        logger.error(f"Event reminder for event {event.id} failed: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'Failed to send event reminder'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'details': summary})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stock_alert(request):
    """Send the low/critical stock alert for one item now"""
    serializer = StockAlertRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        items = scope_queryset(request.user, Item.objects.all(), request=request)
        item = get_object_or_404(items, pk=serializer.validated_data['item'])
        summary = send_stock_alert(item.id)
    except (APIException, Http404):
        raise
    except Exception as e:
        logger.error(f"Stock alert request failed: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'Failed to send stock alert'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'details': summary})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def regular_alerts(request):
    """Send the heartbeat message to every user with WhatsApp switched on (admin)"""
    if not is_admin(request.user):
        logger.warning(f"User {request.user.username} attempted to send regular alerts without admin privileges")
        return Response({'error': 'Only administrators can send regular alerts'}, status=status.HTTP_403_FORBIDDEN)
    sent = send_regular_alerts()
    return Response({'success': True, 'alerts_sent': len(sent), 'details': sent})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """Dispatched messages of the working branch (managers)"""
    if not is_manager(request.user):
        return Response({'error': 'Only managers can view the notification history'}, status=status.HTTP_403_FORBIDDEN)
    notifications = scope_queryset(request.user, Notification.objects.select_related('branch'), request=request)
    type_filter = request.query_params.get('type')
    if type_filter:
        notifications = notifications.filter(type=type_filter)
    return Response(NotificationSerializer(notifications[:100], many=True).data)
