import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import ProtectedError
from django.http import Http404
from django.shortcuts import get_object_or_404

from stockhub.core.pagination import paginate
from stockhub.core.roles import is_manager
from stockhub.core.scoping import scope_queryset, branch_for_write
from stockhub.core.utils import create_activity_log
from .filters import ItemFilter, StockMovementFilter
from .models import Item, Stock, StockMovement
from .serializers import (
    ItemSerializer, ItemUpdateSerializer, StockSerializer,
    StockMovementSerializer, StockMovementCreateSerializer,
)
from .services import update_stock_quantity
from .stock_status import CRITICAL, LOW, STATUS_CHOICES, filter_status

logger = logging.getLogger('stockhub.inventory')

MANAGERS_ONLY = {'error': 'Only managers can change items'}


def _scoped_items(request):
    return scope_queryset(
        request.user,
        Item.objects.select_related('stock', 'branch', 'created_by'),
        request=request,
    )


def _scoped_stock(request):
    return scope_queryset(
        request.user,
        Stock.objects.select_related('item', 'updated_by'),
        branch_field='item__branch',
        request=request,
    )


def _optional_int(raw):
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


# Item views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def item_list_create(request):
    """List items (search, category and status filters) or create an item"""
    try:
        if request.method == 'GET':
            filterset = ItemFilter(request.query_params, queryset=_scoped_items(request))
            if not filterset.is_valid():
                return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
            return Response(paginate(request, filterset.qs, ItemSerializer))

        if not is_manager(request.user):
            logger.warning(f"User {request.user.username} attempted to create an item without manager role")
            return Response(MANAGERS_ONLY, status=status.HTTP_403_FORBIDDEN)

        branch_id = branch_for_write(request.user, _optional_int(request.data.get('branch')))
        if branch_id is None:
            return Response({'error': 'Select a branch for the new item'}, status=status.HTTP_400_BAD_REQUEST)

        serializer = ItemSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        initial_quantity = serializer.validated_data.pop('initial_quantity', 0)

        with transaction.atomic():
            item = serializer.save(branch_id=branch_id, created_by=request.user)
            Stock.objects.create(item=item, current_quantity=0, updated_by=request.user)
            create_activity_log(
                request=request,
                action='item_created',
                details={'item_id': item.id, 'item_name': item.name, 'category': item.category},
                branch_id=branch_id,
            )
            if initial_quantity:
                update_stock_quantity(
                    item, 'in', initial_quantity, user=request.user, reason='Initial stock', request=request
                )

        logger.info(f"Item '{item.name}' created in branch {branch_id} by {request.user.username}")
        item = Item.objects.select_related('stock', 'branch', 'created_by').get(pk=item.pk)
        return Response(ItemSerializer(item).data, status=status.HTTP_201_CREATED)
    except (APIException, Http404):
        raise
    except Exception as e:
        logger.error(f"Error in item_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An unexpected error occurred'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def item_detail(request, pk):
    """Retrieve, update or delete an item"""
    item = get_object_or_404(_scoped_items(request), pk=pk)

    if request.method == 'GET':
        return Response(ItemSerializer(item).data)

    if not is_manager(request.user):
        logger.warning(f"User {request.user.username} attempted to {request.method} item {pk} without manager role")
        return Response(MANAGERS_ONLY, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        details = {'item_id': item.id, 'item_name': item.name}
        branch_id = item.branch_id
        try:
            item.delete()
        except ProtectedError:
            logger.warning(f"User {request.user.username} tried to delete item {pk} that has stock movements")
            return Response(
                {'error': 'This item has stock movements and cannot be deleted'},
                status=status.HTTP_400_BAD_REQUEST,
            )
        create_activity_log(request=request, action='item_deleted', details=details, branch_id=branch_id)
        logger.info(f"Item {pk} deleted by {request.user.username}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = ItemUpdateSerializer(item, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item = serializer.save()
    create_activity_log(
        request=request,
        action='item_updated',
        details={'item_id': item.id, 'item_name': item.name, 'fields': sorted(serializer.validated_data)},
        branch_id=item.branch_id,
    )
    return Response(ItemSerializer(item).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_categories(request):
    """Distinct item categories in the user's branch"""
    categories = (
        _scoped_items(request)
        .order_by('category')
        .values_list('category', flat=True)
        .distinct()
    )
    return Response(list(categories))


# Stock views (read-only; quantities change through stock movements)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_list(request):
    """Current stock of every item, optionally narrowed by ?status="""
    stocks = _scoped_stock(request).order_by('item__name')
    status_param = request.query_params.get('status')
    if status_param:
        if status_param not in STATUS_CHOICES:
            return Response(
                {'error': f"status must be one of: {', '.join(STATUS_CHOICES)}"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        stocks = filter_status(stocks, status_param, quantity='current_quantity', threshold='item__threshold_level')
    return Response(StockSerializer(stocks, many=True).data)


def _stock_with_status(request, stock_status):
    stocks = filter_status(
        _scoped_stock(request), stock_status,
        quantity='current_quantity', threshold='item__threshold_level',
    ).order_by('current_quantity', 'item__name')
    return Response(StockSerializer(stocks, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_low(request):
    """Items above half their threshold but not above it"""
    return _stock_with_status(request, LOW)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_critical(request):
    """Items at or below half their threshold"""
    return _stock_with_status(request, CRITICAL)


# StockMovement views (append-only)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def stock_movement_list_create(request):
    """List stock movements or record a new one"""
    try:
        if request.method == 'GET':
            movements = scope_queryset(
                request.user,
                StockMovement.objects.select_related('item', 'updated_by'),
                branch_field='item__branch',
                request=request,
            )
            filterset = StockMovementFilter(request.query_params, queryset=movements)
            if not filterset.is_valid():
                return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
            return Response(paginate(request, filterset.qs, StockMovementSerializer))

        serializer = StockMovementCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        item = get_object_or_404(_scoped_items(request), pk=data['item'])
        logger.info(
            f"User {request.user.username} recording stock {data['movement_type']} of {data['quantity']} for item {item.id}"
        )
        movement = update_stock_quantity(
            item,
            data['movement_type'],
            data['quantity'],
            user=request.user,
            reason=data.get('reason'),
            request=request,
        )
        item.stock.refresh_from_db()
        response_data = StockMovementSerializer(movement).data
        response_data['current_quantity'] = item.stock.current_quantity
        return Response(response_data, status=status.HTTP_201_CREATED)
    except (APIException, Http404):
        raise
    except Exception as e:
        logger.error(f"Error in stock_movement_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An unexpected error occurred'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
