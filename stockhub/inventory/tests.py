"""
Test suite for the inventory module
Tests: stock classification, stock movements, item CRUD, filters, stock alerts
"""
from unittest.mock import patch

from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError

from stockhub.core.models import ActivityLog
from stockhub.core.roles import ADMIN, REGIONAL_MANAGER, MANAGER, STAFF
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockhub.notifications.models import Notification
from .models import Item, Stock, StockMovement
from .services import InsufficientStock, update_stock_quantity
from .stock_status import (
    CRITICAL, LOW, ADEQUATE, annotate_status, classify_stock, needs_attention, worsened,
)


class StockClassificationTests(TestCase):
    """classify_stock and its ORM twin"""

    def test_classification_boundaries(self):
        cases = [
            (0, 10, CRITICAL),
            (5, 10, CRITICAL),
            (6, 10, LOW),
            (10, 10, LOW),
            (11, 10, ADEQUATE),
            (2, 5, CRITICAL),
            (3, 5, LOW),
            (0, 0, CRITICAL),
            (1, 0, ADEQUATE),
        ]
        for quantity, threshold, expected in cases:
            with self.subTest(quantity=quantity, threshold=threshold):
                self.assertEqual(classify_stock(quantity, threshold), expected)

    def test_orm_expression_agrees_with_python(self):
        branch = TestDataFactory.create_branch()
        pairs = [(0, 10), (5, 10), (6, 10), (10, 10), (11, 10), (2, 5), (3, 5), (0, 0), (1, 0), (7, 1)]
        for quantity, threshold in pairs:
            TestDataFactory.create_item(
                branch, name=f'q{quantity}-t{threshold}', threshold_level=threshold, quantity=quantity
            )
        # No stock row at all counts as zero
        Item.objects.create(branch=branch, name='no-stock', category='General', threshold_level=10)
        for item in annotate_status(Item.objects.select_related('stock')):
            quantity = item.stock.current_quantity if hasattr(item, 'stock') else 0
            with self.subTest(item=item.name):
                self.assertEqual(item.stock_status, classify_stock(quantity, item.threshold_level))
        self.assertEqual(annotate_status(Item.objects.filter(name='no-stock')).get().stock_status, CRITICAL)

    def test_worsened(self):
        self.assertTrue(worsened(ADEQUATE, LOW))
        self.assertTrue(worsened(LOW, CRITICAL))
        self.assertTrue(worsened(ADEQUATE, CRITICAL))
        self.assertFalse(worsened(LOW, LOW))
        self.assertFalse(worsened(CRITICAL, LOW))

    def test_needs_attention_orders_worst_first(self):
        branch = TestDataFactory.create_branch()
        TestDataFactory.create_item(branch, name='Fine', threshold_level=10, quantity=50)
        TestDataFactory.create_item(branch, name='Low', threshold_level=10, quantity=8)
        TestDataFactory.create_item(branch, name='Empty', threshold_level=10, quantity=0)
        names = [item.name for item in needs_attention(Item.objects.all())]
        self.assertEqual(names, ['Empty', 'Low'])


class UpdateStockQuantityTests(TestCase):
    """The stock mutation routine"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.item = TestDataFactory.create_item(self.branch, name='Milk', threshold_level=10, quantity=0)

    def _quantity(self):
        return Stock.objects.get(item=self.item).current_quantity

    def test_stock_in_adds(self):
        movement = update_stock_quantity(self.item, 'in', 5, user=self.user, reason='Delivery')
        self.assertEqual(self._quantity(), 5)
        self.assertEqual(movement.movement_type, 'in')
        self.assertEqual(movement.quantity, 5)
        self.assertEqual(movement.updated_by, self.user)
        log = ActivityLog.objects.get(action='stock_in')
        self.assertEqual(log.branch_id, self.branch.id)
        self.assertEqual(log.details['new_quantity'], 5)

    def test_stock_out_down_to_zero(self):
        update_stock_quantity(self.item, 'in', 5, user=self.user)
        update_stock_quantity(self.item, 'out', 5, user=self.user)
        self.assertEqual(self._quantity(), 0)
        self.assertEqual(StockMovement.objects.filter(item=self.item).count(), 2)

    def test_stock_out_below_zero_writes_nothing(self):
        update_stock_quantity(self.item, 'in', 3, user=self.user)
        with self.assertRaises(InsufficientStock) as ctx:
            update_stock_quantity(self.item, 'out', 4, user=self.user)
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(ctx.exception.requested, 4)
        self.assertEqual(self._quantity(), 3)
        self.assertEqual(StockMovement.objects.filter(item=self.item).count(), 1)
        self.assertFalse(ActivityLog.objects.filter(action='stock_out').exists())

    def test_invalid_quantity_and_type(self):
        with self.assertRaises(ValidationError):
            update_stock_quantity(self.item, 'in', 0)
        with self.assertRaises(ValidationError):
            update_stock_quantity(self.item, 'in', -2)
        with self.assertRaises(ValidationError):
            update_stock_quantity(self.item, 'sideways', 1)
        self.assertFalse(StockMovement.objects.exists())

    def test_missing_stock_row_is_created(self):
        item = Item.objects.create(branch=self.branch, name='Bread', category='Bakery', threshold_level=2)
        update_stock_quantity(item, 'in', 4)
        self.assertEqual(Stock.objects.get(item=item).current_quantity, 4)

    def test_alert_scheduled_when_status_worsens(self):
        update_stock_quantity(self.item, 'in', 30, user=self.user)
        with patch('stockhub.inventory.services._dispatch_stock_alert') as dispatch:
            with self.captureOnCommitCallbacks(execute=True):
                update_stock_quantity(self.item, 'out', 22, user=self.user)
        dispatch.assert_called_once_with(self.item.id, LOW)

    def test_no_alert_when_status_does_not_worsen(self):
        update_stock_quantity(self.item, 'in', 8, user=self.user)
        with patch('stockhub.inventory.services._dispatch_stock_alert') as dispatch:
            with self.captureOnCommitCallbacks(execute=True):
                update_stock_quantity(self.item, 'out', 1, user=self.user)
                update_stock_quantity(self.item, 'in', 10, user=self.user)
        dispatch.assert_not_called()

    def test_worsening_movement_sends_whatsapp_to_branch(self):
        self.branch.notification_settings = {'email': True, 'sms': False, 'whatsapp': True}
        self.branch.save()
        TestDataFactory.create_user(branch=self.branch, phone='+46700000001')
        update_stock_quantity(self.item, 'in', 20, user=self.user)
        with self.captureOnCommitCallbacks(execute=True):
            update_stock_quantity(self.item, 'out', 16, user=self.user)
        notification = Notification.objects.get(type='stock_alert')
        self.assertEqual(notification.recipient, '+46700000001')
        self.assertIn('CRITICAL ALERT', notification.message)
        self.assertEqual(notification.status, 'sent')


class ItemAPITests(TestCase):
    """Item endpoints"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.other_branch = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_create_item_with_initial_quantity(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Coffee',
            'category': 'Drinks',
            'threshold_level': 10,
            'initial_quantity': 25,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['current_quantity'], 25)
        self.assertEqual(response.data['stock_status'], ADEQUATE)
        self.assertEqual(response.data['branch'], self.branch.id)
        item = Item.objects.get(name='Coffee')
        movement = StockMovement.objects.get(item=item)
        self.assertEqual((movement.movement_type, movement.quantity, movement.reason), ('in', 25, 'Initial stock'))
        self.assertTrue(ActivityLog.objects.filter(action='item_created').exists())

    def test_create_item_without_initial_quantity_starts_empty(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Tea',
            'category': 'Drinks',
            'threshold_level': 4,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['current_quantity'], 0)
        self.assertEqual(response.data['stock_status'], CRITICAL)
        self.assertFalse(StockMovement.objects.exists())

    def test_staff_cannot_create_item(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/items/', {'name': 'Tea', 'category': 'Drinks'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_item_in_foreign_branch_is_refused(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Tea', 'category': 'Drinks', 'branch': self.other_branch.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Item.objects.exists())

    def test_regional_manager_must_select_branch(self):
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.branch.region)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_list_is_scoped_and_paginated(self):
        for i in range(3):
            TestDataFactory.create_item(self.branch, name=f'Item {i}')
        TestDataFactory.create_item(self.other_branch, name='Foreign')
        response = self.client.get('/api/v1/items/?limit=2')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['next'], 2)
        self.assertNotIn('Foreign', [i['name'] for i in response.data['results']])

    def test_filters(self):
        TestDataFactory.create_item(self.branch, name='Apple', category='Fruit', threshold_level=10, quantity=50)
        TestDataFactory.create_item(self.branch, name='Banana', category='Fruit', threshold_level=10, quantity=7)
        TestDataFactory.create_item(self.branch, name='Soap', category='Hygiene', threshold_level=10, quantity=2)

        response = self.client.get('/api/v1/items/?search=ban')
        self.assertEqual([i['name'] for i in response.data['results']], ['Banana'])

        response = self.client.get('/api/v1/items/?category=fruit')
        self.assertEqual([i['name'] for i in response.data['results']], ['Apple', 'Banana'])

        response = self.client.get('/api/v1/items/?status=critical')
        self.assertEqual([i['name'] for i in response.data['results']], ['Soap'])

        response = self.client.get('/api/v1/items/?status=broken')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_item_without_stock_row_filters_as_critical(self):
        item = Item.objects.create(branch=self.branch, name='Unstocked', category='General', threshold_level=5)
        response = self.client.get(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.data['stock_status'], CRITICAL)
        response = self.client.get('/api/v1/items/?status=critical')
        self.assertIn('Unstocked', [i['name'] for i in response.data['results']])

    def test_categories(self):
        TestDataFactory.create_item(self.branch, category='Fruit')
        TestDataFactory.create_item(self.branch, category='Fruit')
        TestDataFactory.create_item(self.branch, category='Dairy')
        response = self.client.get('/api/v1/items/categories/')
        self.assertEqual(response.data, ['Dairy', 'Fruit'])

    def test_update_item_does_not_touch_quantity(self):
        item = TestDataFactory.create_item(self.branch, quantity=4)
        response = self.client.patch(f'/api/v1/items/{item.id}/', {
            'threshold_level': 3, 'initial_quantity': 99,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_quantity'], 4)
        self.assertEqual(response.data['stock_status'], ADEQUATE)

    def test_staff_cannot_delete_item(self):
        item = TestDataFactory.create_item(self.branch)
        self.client.authenticate_user(self.staff)
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_deletes_item(self):
        item = TestDataFactory.create_item(self.branch)
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Item.objects.filter(pk=item.pk).exists())
        self.assertTrue(ActivityLog.objects.filter(action='item_deleted').exists())

    def test_item_with_movements_cannot_be_deleted(self):
        item = TestDataFactory.create_item(self.branch, quantity=5)
        update_stock_quantity(item, 'out', 2, user=self.manager)
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Item.objects.filter(pk=item.pk).exists())
        self.assertEqual(StockMovement.objects.filter(item=item).count(), 1)
        self.assertFalse(ActivityLog.objects.filter(action='item_deleted').exists())

    def test_foreign_item_not_found(self):
        item = TestDataFactory.create_item(self.other_branch)
        response = self.client.get(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_narrows_by_branch(self):
        TestDataFactory.create_item(self.branch, name='Here')
        TestDataFactory.create_item(self.other_branch, name='There')
        admin = TestDataFactory.create_user(role=ADMIN)
        self.client.authenticate_user(admin)
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get(f'/api/v1/items/?branch={self.other_branch.id}')
        self.assertEqual([i['name'] for i in response.data['results']], ['There'])


class StockAPITests(TestCase):
    """Stock and stock movement endpoints"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.low = TestDataFactory.create_item(self.branch, name='Low', threshold_level=10, quantity=9)
        self.critical = TestDataFactory.create_item(self.branch, name='Critical', threshold_level=10, quantity=1)
        self.fine = TestDataFactory.create_item(self.branch, name='Fine', threshold_level=10, quantity=40)

    def test_stock_list_and_status_filter(self):
        response = self.client.get('/api/v1/stock/')
        self.assertEqual(len(response.data), 3)
        response = self.client.get('/api/v1/stock/?status=adequate')
        self.assertEqual([s['item_name'] for s in response.data], ['Fine'])
        response = self.client.get('/api/v1/stock/?status=empty')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_low_and_critical_lists(self):
        response = self.client.get('/api/v1/stock/low/')
        self.assertEqual([s['item_name'] for s in response.data], ['Low'])
        response = self.client.get('/api/v1/stock/critical/')
        self.assertEqual([s['item_name'] for s in response.data], ['Critical'])
        self.assertEqual(response.data[0]['status'], CRITICAL)

    def test_staff_records_movement(self):
        response = self.client.post('/api/v1/stock-movements/', {
            'item': self.low.id, 'movement_type': 'in', 'quantity': 5, 'reason': 'Delivery',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['current_quantity'], 14)
        self.assertEqual(response.data['updated_by'], self.staff.id)

    def test_out_movement_exceeding_stock_is_rejected(self):
        response = self.client.post('/api/v1/stock-movements/', {
            'item': self.critical.id, 'movement_type': 'out', 'quantity': 2,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Stock.objects.get(item=self.critical).current_quantity, 1)
        self.assertFalse(StockMovement.objects.filter(item=self.critical).exists())

    def test_zero_quantity_is_rejected(self):
        response = self.client.post('/api/v1/stock-movements/', {
            'item': self.low.id, 'movement_type': 'in', 'quantity': 0,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_movement_on_foreign_item_not_found(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_branch(), quantity=5)
        response = self.client.post('/api/v1/stock-movements/', {
            'item': foreign.id, 'movement_type': 'out', 'quantity': 1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Stock.objects.get(item=foreign).current_quantity, 5)

    def test_movement_list_filters(self):
        update_stock_quantity(self.low, 'in', 1, user=self.staff)
        update_stock_quantity(self.fine, 'out', 3, user=self.staff)
        response = self.client.get('/api/v1/stock-movements/?movement_type=out')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['item_name'], 'Fine')
        response = self.client.get(f'/api/v1/stock-movements/?item={self.low.id}')
        self.assertEqual(response.data['count'], 1)
