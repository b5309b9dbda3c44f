"""Stock mutation routine. Every quantity change goes through update_stock_quantity."""
import logging

from django.db import transaction
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError

from stockhub.core.utils import create_activity_log
from .models import Stock, StockMovement
from .stock_status import classify_stock, worsened

logger = logging.getLogger('stockhub.inventory')

MOVEMENT_TYPES = ('in', 'out')


class InsufficientStock(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Not enough stock for this movement.'
    default_code = 'insufficient_stock'

    def __init__(self, available=None, requested=None):
        detail = None
        if available is not None and requested is not None:
            detail = f'Cannot remove {requested}; only {available} in stock.'
        super().__init__(detail)
        self.available = available
        self.requested = requested


def _dispatch_stock_alert(item_id, status_):
    from stockhub.notifications.services.alerts import send_stock_alert
    try:
        send_stock_alert(item_id)
    except Exception as e:
        logger.error(f"Stock alert for item {item_id} ({status_}) failed: {str(e)}", exc_info=True)


def update_stock_quantity(item, movement_type, quantity, user=None, reason=None, request=None):
    """
    Apply one stock movement to `item`.

    Locks the stock row for the duration of the transaction so concurrent
    movements on the same item are applied one after another. Raises
    InsufficientStock when an `out` movement would go below zero; nothing
    is written in that case.

    Returns the created StockMovement.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError({'movement_type': f"Must be one of: {', '.join(MOVEMENT_TYPES)}"})
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError({'quantity': 'Must be a whole number'})
    if quantity <= 0:
        raise ValidationError({'quantity': 'Must be greater than zero'})

    with transaction.atomic():
        stock, _ = Stock.objects.select_for_update().get_or_create(item=item)
        before = classify_stock(stock.current_quantity, item.threshold_level)

        if movement_type == 'in':
            new_quantity = stock.current_quantity + quantity
        else:
            new_quantity = stock.current_quantity - quantity
            if new_quantity < 0:
                logger.warning(
                    f"Rejected stock out of {quantity} for item {item.id}: only {stock.current_quantity} available"
                )
                raise InsufficientStock(available=stock.current_quantity, requested=quantity)

        stock.current_quantity = new_quantity
        stock.updated_by = user
        stock.save(update_fields=['current_quantity', 'updated_by', 'updated_at'])

        movement = StockMovement.objects.create(
            item=item,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            updated_by=user,
        )

        create_activity_log(
            request=request,
            action=f'stock_{movement_type}',
            details={
                'item_id': item.id,
                'item_name': item.name,
                'quantity': quantity,
                'reason': reason,
                'new_quantity': new_quantity,
            },
            user=user,
            branch_id=item.branch_id,
        )

        after = classify_stock(new_quantity, item.threshold_level)
        if worsened(before, after):
            logger.info(f"Item {item.id} went from {before} to {after}; scheduling stock alert")
            transaction.on_commit(lambda: _dispatch_stock_alert(item.id, after))

    logger.info(
        f"Stock {movement_type} of {quantity} for '{item.name}' (item {item.id}); now {new_quantity}"
    )
    return movement
