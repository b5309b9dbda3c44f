import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.http import Http404
from django.shortcuts import get_object_or_404
from django.utils import timezone

from stockhub.core.roles import is_manager
from stockhub.core.scoping import scope_queryset, branch_for_write
from stockhub.core.utils import create_activity_log
from .filters import CalendarEventFilter
from .models import CalendarEvent, EventAlert
from .serializers import CalendarEventSerializer

logger = logging.getLogger('stockhub.events')


def _scoped_events(request):
    return scope_queryset(
        request.user,
        CalendarEvent.objects.select_related('branch', 'created_by').prefetch_related('alerts'),
        request=request,
    )


def _can_change(user, event):
    return is_manager(user) or event.created_by_id == user.id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def event_list_create(request):
    """
    List events or create one.

    Without ?start= / ?end= only upcoming events (today onwards) are listed.
    A new event gets one pending WhatsApp alert on its date.
    """
    try:
        if request.method == 'GET':
            events = _scoped_events(request)
            params = request.query_params
            if not params.get('start') and not params.get('end'):
                events = events.filter(event_date__gte=timezone.localdate())
            filterset = CalendarEventFilter(params, queryset=events)
            if not filterset.is_valid():
                return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
            return Response(CalendarEventSerializer(filterset.qs, many=True).data)

        raw_branch = request.data.get('branch')
        try:
            branch_id = int(raw_branch) if raw_branch not in (None, '') else None
        except (TypeError, ValueError):
            return Response({'branch': ['A valid branch id is required.']}, status=status.HTTP_400_BAD_REQUEST)

        branch_id = branch_for_write(request.user, branch_id)
        if branch_id is None:
            return Response({'error': 'Select a branch for the event'}, status=status.HTTP_400_BAD_REQUEST)

        serializer = CalendarEventSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            event = serializer.save(branch_id=branch_id, created_by=request.user)
            EventAlert.objects.create(event=event, branch_id=branch_id, alert_date=event.event_date)
            create_activity_log(
                request=request,
                action='event_created',
                details={'event_id': event.id, 'title': event.title, 'event_date': str(event.event_date)},
                branch_id=branch_id,
            )

        logger.info(f"Event '{event.title}' on {event.event_date} created by {request.user.username}")
        return Response(CalendarEventSerializer(event).data, status=status.HTTP_201_CREATED)
    except (APIException, Http404):
        raise
    except Exception as e:
        logger.error(f"Error in event_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An unexpected error occurred'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def event_detail(request, pk):
    """Retrieve, update or delete an event (creator or managers)"""
    event = get_object_or_404(_scoped_events(request), pk=pk)

    if request.method == 'GET':
        return Response(CalendarEventSerializer(event).data)

    if not _can_change(request.user, event):
        logger.warning(f"User {request.user.username} attempted to {request.method} event {pk} they did not create")
        return Response({'error': 'Only the creator or a manager can change this event'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        details = {'event_id': event.id, 'title': event.title}
        branch_id = event.branch_id
        event.delete()
        create_activity_log(request=request, action='event_deleted', details=details, branch_id=branch_id)
        logger.info(f"Event {pk} deleted by {request.user.username}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = CalendarEventSerializer(event, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    with transaction.atomic():
        event = serializer.save()
        if 'event_date' in serializer.validated_data:
            # Pending reminders follow the event
            event.alerts.filter(status='pending').update(alert_date=event.event_date)
        create_activity_log(
            request=request,
            action='event_updated',
            details={'event_id': event.id, 'title': event.title, 'fields': sorted(serializer.validated_data)},
            branch_id=event.branch_id,
        )
    event = _scoped_events(request).get(pk=event.pk)
    return Response(CalendarEventSerializer(event).data)
