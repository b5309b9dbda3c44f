import csv
import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, renderer_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import JSONRenderer, BrowsableAPIRenderer
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.http import HttpResponse
from django.utils import timezone

from stockhub.core.exceptions import BranchSelectionRequired
from stockhub.core.models import ActivityLog
from stockhub.core.roles import is_admin, is_multi_branch
from stockhub.core.scoping import (
    require_branch, scope_queryset, scope_profiles, selectable_branches, effective_branch_id,
)
from stockhub.core.serializers import ActivityLogSerializer
from stockhub.events.models import CalendarEvent
from stockhub.events.serializers import CalendarEventSerializer
from stockhub.inventory.models import Item, StockMovement
from stockhub.inventory.stock_status import (
    CRITICAL, LOW, ADEQUATE, annotate_status, classify_stock, needs_attention,
)
from stockhub.notifications.models import Notification
from stockhub.notifications.serializers import NotificationSerializer
from .renderers import CSVRenderer

logger = logging.getLogger('stockhub.reports')

User = get_user_model()

ACTIVITY_FEED_LIMIT = 50
MOVEMENTS_REPORT_LIMIT = 50
STOCK_ACTIONS = ('stock_in', 'stock_out')


def _items(request):
    return scope_queryset(request.user, Item.objects.select_related('stock', 'branch'), request=request)


def _movements(request):
    return scope_queryset(
        request.user,
        StockMovement.objects.select_related('item', 'updated_by'),
        branch_field='item__branch',
        request=request,
    )


def _item_row(item):
    quantity = item.stock.current_quantity if getattr(item, 'stock', None) else 0
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'unit': item.unit,
        'current_quantity': quantity,
        'threshold_level': item.threshold_level,
        'status': classify_stock(quantity, item.threshold_level),
        'branch': item.branch_id,
    }


def _csv_response(filename, header, rows):
    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    writer = csv.writer(response)
    writer.writerow(header)
    writer.writerows(rows)
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    """
    Dashboard tiles for the working branch.

    Multi-branch managers without a branch context get the branch selection
    prompt (`requires_branch_selection`) instead of statistics.
    """
    user = request.user
    try:
        require_branch(user)
    except BranchSelectionRequired as e:
        logger.info(f"User {user.username} needs to select a branch before viewing the dashboard")
        return Response({'requires_branch_selection': True, 'branches': e.branches})

    items = list(_items(request))
    rows = [_item_row(item) for item in items]
    low = [row for row in rows if row['status'] == LOW]
    critical = [row for row in rows if row['status'] == CRITICAL]

    staff = scope_profiles(user, User.objects.filter(is_active=True), request=request)
    activities = scope_queryset(user, ActivityLog.objects.select_related('user'), request=request)[:5]
    events = scope_queryset(
        user,
        CalendarEvent.objects.select_related('branch', 'created_by').prefetch_related('alerts'),
        request=request,
    ).filter(event_date__gte=timezone.localdate())[:5]

    return Response({
        'requires_branch_selection': False,
        'branch': effective_branch_id(user),
        'stats': {
            'total_items': len(rows),
            'low_stock_items': len(low),
            'critical_stock_items': len(critical),
            'total_staff': staff.count(),
        },
        'low_stock_details': low,
        'critical_stock_details': critical,
        'recent_activities': ActivityLogSerializer(activities, many=True).data,
        'upcoming_events': CalendarEventSerializer(events, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@renderer_classes([JSONRenderer, BrowsableAPIRenderer, CSVRenderer])
def stock_report(request):
    """Stock level of every item; ?format=csv downloads it"""
    rows = [_item_row(item) for item in _items(request).order_by('name')]

    if request.query_params.get('format') == 'csv':
        logger.info(f"User {request.user.username} exported the stock report")
        return _csv_response(
            f"stock-report-{timezone.localdate().isoformat()}.csv",
            ['Item Name', 'Category', 'Current Stock', 'Threshold', 'Status'],
            [[r['name'], r['category'], r['current_quantity'], r['threshold_level'], r['status']] for r in rows],
        )

    summary = {ADEQUATE: 0, LOW: 0, CRITICAL: 0}
    for row in rows:
        summary[row['status']] += 1
    return Response({
        'generated_at': timezone.now(),
        'summary': {'total_items': len(rows), **summary},
        'items': rows,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@renderer_classes([JSONRenderer, BrowsableAPIRenderer, CSVRenderer])
def movements_report(request):
    """Latest stock movements; ?format=csv downloads them"""
    movements = list(_movements(request).order_by('-created_at')[:MOVEMENTS_REPORT_LIMIT])
    rows = [
        {
            'id': m.id,
            'date': m.created_at,
            'item': m.item.name,
            'movement_type': m.movement_type,
            'quantity': m.quantity,
            'reason': m.reason,
            'updated_by': m.updated_by.display_name if m.updated_by else 'System',
        }
        for m in movements
    ]

    if request.query_params.get('format') == 'csv':
        logger.info(f"User {request.user.username} exported the movements report")
        return _csv_response(
            f"movements-report-{timezone.localdate().isoformat()}.csv",
            ['Date', 'Item', 'Movement Type', 'Quantity', 'Updated By'],
            [
                [timezone.localtime(r['date']).strftime('%Y-%m-%d %H:%M'), r['item'], r['movement_type'],
                 r['quantity'], r['updated_by']]
                for r in rows
            ],
        )

    return Response({'generated_at': timezone.now(), 'count': len(rows), 'movements': rows})


def _movement_entry(movement):
    direction = 'added to' if movement.movement_type == 'in' else 'removed from'
    return {
        'id': f'movement-{movement.id}',
        'type': 'stock',
        'action': f'stock_{movement.movement_type}',
        'description': f"{movement.quantity} {movement.item.unit} of {movement.item.name} {direction} stock",
        'details': {
            'item_id': movement.item_id,
            'quantity': movement.quantity,
            'reason': movement.reason,
        },
        'user_name': movement.updated_by.display_name if movement.updated_by else 'System',
        'created_at': movement.created_at,
    }


def _log_entry(log):
    return {
        'id': f'log-{log.id}',
        'type': 'general',
        'action': log.action,
        'description': log.get_action_display(),
        'details': log.details,
        'user_name': log.user.display_name if log.user else 'System',
        'created_at': log.created_at,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_feed(request):
    """
    Stock movements and activity log entries merged newest first.

    ?type=stock|general narrows the feed; stock_in/stock_out log entries are
    left out because the movement itself is listed.
    """
    feed_type = request.query_params.get('type', 'all')
    if feed_type not in ('all', 'stock', 'general'):
        return Response({'error': 'type must be one of: all, stock, general'}, status=status.HTTP_400_BAD_REQUEST)

    entries = []
    if feed_type in ('all', 'stock'):
        movements = _movements(request).order_by('-created_at')[:ACTIVITY_FEED_LIMIT]
        entries.extend(_movement_entry(m) for m in movements)
    if feed_type in ('all', 'general'):
        logs = (
            scope_queryset(request.user, ActivityLog.objects.select_related('user'), request=request)
            .exclude(action__in=STOCK_ACTIONS)
            .order_by('-created_at')[:ACTIVITY_FEED_LIMIT]
        )
        entries.extend(_log_entry(log) for log in logs)

    entries.sort(key=lambda entry: entry['created_at'], reverse=True)
    return Response(entries[:ACTIVITY_FEED_LIMIT])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_summary(request):
    """Today's counters for the activity page"""
    user = request.user
    today = timezone.localdate()
    return Response({
        'date': today,
        'movements_today': _movements(request).filter(created_at__date=today).count(),
        'activities_today': scope_queryset(user, ActivityLog.objects.all(), request=request)
        .filter(created_at__date=today).count(),
        'alerts_today': scope_queryset(user, Notification.objects.all(), request=request)
        .filter(created_at__date=today).count(),
        'active_users': scope_queryset(user, User.objects.filter(is_active=True), request=request)
        .filter(last_access__date=today).count(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def analytics(request):
    """Category distribution, status breakdown, movement trend and top items"""
    user = request.user
    days = request.query_params.get('days', 30)
    try:
        days = max(1, min(int(days), 365))
    except (TypeError, ValueError):
        days = 30
    since = timezone.now() - timedelta(days=days)

    items = _items(request)
    categories = (
        items.values('category')
        .annotate(item_count=Count('id'), total_quantity=Sum('stock__current_quantity'))
        .order_by('-item_count', 'category')
    )
    status_breakdown = {ADEQUATE: 0, LOW: 0, CRITICAL: 0}
    for row in annotate_status(items).order_by().values('stock_status').annotate(count=Count('id')):
        status_breakdown[row['stock_status']] = row['count']

    movements = _movements(request).filter(created_at__gte=since)
    trend = (
        movements.annotate(date=TruncDate('created_at'))
        .values('date')
        .annotate(
            stock_in=Sum('quantity', filter=Q(movement_type='in')),
            stock_out=Sum('quantity', filter=Q(movement_type='out')),
            count=Count('id'),
        )
        .order_by('date')
    )
    top_items = (
        movements.values('item_id', 'item__name')
        .annotate(movement_count=Count('id'), total_quantity=Sum('quantity'))
        .order_by('-movement_count', 'item__name')[:10]
    )

    payload = {
        'period_days': days,
        'category_distribution': [
            {
                'category': row['category'],
                'item_count': row['item_count'],
                'total_quantity': row['total_quantity'] or 0,
            }
            for row in categories
        ],
        'status_breakdown': status_breakdown,
        'movement_trend': [
            {
                'date': row['date'],
                'stock_in': row['stock_in'] or 0,
                'stock_out': row['stock_out'] or 0,
                'count': row['count'],
            }
            for row in trend
        ],
        'top_items': [
            {
                'item_id': row['item_id'],
                'name': row['item__name'],
                'movement_count': row['movement_count'],
                'total_quantity': row['total_quantity'],
            }
            for row in top_items
        ],
    }

    if is_admin(user) or is_multi_branch(user):
        payload['branch_performance'] = _branch_performance(user, since)
    return Response(payload)


def _branch_performance(user, since):
    """Per-branch counters across every branch the user may select"""
    branches = selectable_branches(user).order_by('name')
    attention = {
        row['branch_id']: row['count']
        for row in needs_attention(Item.objects.filter(branch__in=branches))
        .order_by()
        .values('branch_id')
        .annotate(count=Count('id'))
    }
    results = []
    for branch in branches.annotate(
        item_count=Count('items', distinct=True),
        movement_count=Count('items__movements', filter=Q(items__movements__created_at__gte=since), distinct=True),
    ):
        results.append({
            'branch_id': branch.id,
            'name': branch.name,
            'item_count': branch.item_count,
            'movement_count': branch.movement_count,
            'items_needing_attention': attention.get(branch.id, 0),
        })
    return results


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications_feed(request):
    """Notification dropdown: latest notifications, events this week, stock alerts"""
    user = request.user
    today = timezone.localdate()

    notifications = scope_queryset(user, Notification.objects.select_related('branch'), request=request)[:5]
    events = scope_queryset(
        user,
        CalendarEvent.objects.select_related('branch', 'created_by').prefetch_related('alerts'),
        request=request,
    ).filter(event_date__gte=today, event_date__lte=today + timedelta(days=7))
    stock_alerts = [_item_row(item) for item in needs_attention(_items(request))]

    notification_data = NotificationSerializer(notifications, many=True).data
    event_data = CalendarEventSerializer(events, many=True).data
    return Response({
        'notifications': notification_data,
        'upcoming_events': event_data,
        'stock_alerts': stock_alerts,
        'count': len(notification_data) + len(event_data) + len(stock_alerts),
    })
