"""
Test suite for the reports module
Tests: dashboard, stock and movement reports (JSON and CSV), activity feed, summary, analytics
"""
import csv
import datetime
import io

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from stockhub.core.roles import ADMIN, REGIONAL_MANAGER, MANAGER, STAFF
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockhub.core.utils import create_activity_log
from stockhub.inventory.services import update_stock_quantity
from stockhub.notifications.utils import record_notification


class DashboardTests(TestCase):
    """Dashboard endpoint"""

    def setUp(self):
        self.region = TestDataFactory.create_region()
        district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=district)
        self.other_branch = TestDataFactory.create_branch(district=district)
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        TestDataFactory.create_user(role=STAFF, branch=self.branch)
        TestDataFactory.create_user(role=STAFF, branch=self.other_branch)
        TestDataFactory.create_item(self.branch, name='Fine', threshold_level=10, quantity=40)
        TestDataFactory.create_item(self.branch, name='Low', threshold_level=10, quantity=9)
        TestDataFactory.create_item(self.branch, name='Critical', threshold_level=10, quantity=2)
        TestDataFactory.create_item(self.other_branch, name='Elsewhere', threshold_level=10, quantity=0)
        self.client = AuthenticatedAPIClient()

    def test_branch_dashboard(self):
        """Stats only count the working branch"""
        TestDataFactory.create_event(self.branch, title='Delivery')
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['requires_branch_selection'])
        self.assertEqual(response.data['stats'], {
            'total_items': 3,
            'low_stock_items': 1,
            'critical_stock_items': 1,
            'total_staff': 2,
        })
        self.assertEqual([r['name'] for r in response.data['low_stock_details']], ['Low'])
        self.assertEqual([r['name'] for r in response.data['critical_stock_details']], ['Critical'])
        self.assertEqual([e['title'] for e in response.data['upcoming_events']], ['Delivery'])

    def test_staff_count_respects_role_visibility(self):
        """Staff viewers only count accounts at or below their own role"""
        self.client.authenticate_user(TestDataFactory.create_user(role=STAFF, branch=self.branch))
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.data['stats']['total_staff'], 2)

    def test_regional_manager_without_context_is_prompted(self):
        """Multi-branch managers get the branch list instead of statistics"""
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['requires_branch_selection'])
        self.assertEqual(
            {b['id'] for b in response.data['branches']},
            {self.branch.id, self.other_branch.id},
        )
        self.assertNotIn('stats', response.data)

    def test_regional_manager_with_context(self):
        manager = TestDataFactory.create_user(
            role=REGIONAL_MANAGER, region=self.region, branch_context=self.other_branch
        )
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/dashboard/')
        self.assertFalse(response.data['requires_branch_selection'])
        self.assertEqual(response.data['branch'], self.other_branch.id)
        self.assertEqual(response.data['stats']['total_items'], 1)

    def test_admin_without_context_sees_all_branches(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ADMIN))
        response = self.client.get('/api/v1/dashboard/')
        self.assertEqual(response.data['stats']['total_items'], 4)
        self.assertEqual(response.data['stats']['critical_stock_items'], 2)


class StockReportTests(TestCase):
    """Stock and movements reports"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(role=MANAGER, branch=self.branch, name='Maja')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.apple = TestDataFactory.create_item(self.branch, name='Apple', category='Fruit', threshold_level=10, quantity=30)
        self.bread = TestDataFactory.create_item(self.branch, name='Bread', category='Bakery', threshold_level=10, quantity=4)

    def _csv_rows(self, response):
        return list(csv.reader(io.StringIO(response.content.decode('utf-8'))))

    def test_stock_report_json(self):
        response = self.client.get('/api/v1/reports/stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary'], {'total_items': 2, 'adequate': 1, 'low': 0, 'critical': 1})
        self.assertEqual([i['name'] for i in response.data['items']], ['Apple', 'Bread'])
        self.assertIn('generated_at', response.data)

    def test_stock_report_csv(self):
        response = self.client.get('/api/v1/reports/stock/?format=csv')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response['Content-Type'].startswith('text/csv'))
        self.assertIn('attachment; filename="stock-report-', response['Content-Disposition'])
        rows = self._csv_rows(response)
        self.assertEqual(rows[0], ['Item Name', 'Category', 'Current Stock', 'Threshold', 'Status'])
        self.assertEqual(rows[1], ['Apple', 'Fruit', '30', '10', 'adequate'])
        self.assertEqual(rows[2], ['Bread', 'Bakery', '4', '10', 'critical'])

    def test_movements_report_json(self):
        update_stock_quantity(self.apple, 'out', 5, user=self.user, reason='Sold')
        response = self.client.get('/api/v1/reports/movements/')
        self.assertEqual(response.data['count'], 1)
        movement = response.data['movements'][0]
        self.assertEqual(movement['item'], 'Apple')
        self.assertEqual(movement['updated_by'], 'Maja')

    def test_movements_report_csv(self):
        update_stock_quantity(self.bread, 'in', 6, user=self.user)
        response = self.client.get('/api/v1/reports/movements/?format=csv')
        rows = self._csv_rows(response)
        self.assertEqual(rows[0], ['Date', 'Item', 'Movement Type', 'Quantity', 'Updated By'])
        self.assertEqual(rows[1][1:], ['Bread', 'in', '6', 'Maja'])

    def test_reports_are_branch_scoped(self):
        TestDataFactory.create_item(TestDataFactory.create_branch(), name='Foreign')
        response = self.client.get('/api/v1/reports/stock/')
        self.assertNotIn('Foreign', [i['name'] for i in response.data['items']])


class ActivityFeedTests(TestCase):
    """Activity feed and today's summary"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.item = TestDataFactory.create_item(self.branch, name='Rice', quantity=20)
        update_stock_quantity(self.item, 'out', 2, user=self.user)
        create_activity_log(action='item_updated', user=self.user, details={'item_id': self.item.id})

    def test_feed_merges_movements_and_logs(self):
        response = self.client.get('/api/v1/activity/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        types = sorted(entry['type'] for entry in response.data)
        self.assertEqual(types, ['general', 'stock'])
        stock_entry = next(e for e in response.data if e['type'] == 'stock')
        self.assertTrue(stock_entry['id'].startswith('movement-'))
        self.assertEqual(stock_entry['action'], 'stock_out')

    def test_feed_type_filter(self):
        response = self.client.get('/api/v1/activity/?type=stock')
        self.assertEqual({e['type'] for e in response.data}, {'stock'})
        response = self.client.get('/api/v1/activity/?type=general')
        self.assertEqual([e['action'] for e in response.data], ['item_updated'])

    def test_feed_invalid_type(self):
        response = self.client.get('/api/v1/activity/?type=sales')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary_counts_today(self):
        record_notification('+46700000000', 'Hi', branch=self.branch)
        self.client.get('/api/v1/auth/me/')
        response = self.client.get('/api/v1/activity/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['movements_today'], 1)
        self.assertEqual(response.data['activities_today'], 2)
        self.assertEqual(response.data['alerts_today'], 1)
        self.assertEqual(response.data['active_users'], 1)


class AnalyticsTests(TestCase):
    """Analytics and notification feed"""

    def setUp(self):
        self.region = TestDataFactory.create_region()
        district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=district, name='Alpha')
        self.other_branch = TestDataFactory.create_branch(district=district, name='Beta')
        self.user = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.milk = TestDataFactory.create_item(self.branch, name='Milk', category='Dairy', threshold_level=10, quantity=0)
        self.cheese = TestDataFactory.create_item(self.branch, name='Cheese', category='Dairy', threshold_level=10, quantity=50)
        TestDataFactory.create_item(self.branch, name='Salt', category='Pantry', threshold_level=10, quantity=8)
        update_stock_quantity(self.milk, 'in', 3, user=self.user)
        update_stock_quantity(self.milk, 'in', 2, user=self.user)
        update_stock_quantity(self.cheese, 'out', 5, user=self.user)

    def test_analytics_payload(self):
        response = self.client.get('/api/v1/analytics/?days=7')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['period_days'], 7)
        self.assertEqual(response.data['category_distribution'][0], {
            'category': 'Dairy', 'item_count': 2, 'total_quantity': 50,
        })
        self.assertEqual(response.data['status_breakdown'], {'adequate': 1, 'low': 1, 'critical': 1})
        trend = response.data['movement_trend']
        self.assertEqual(len(trend), 1)
        self.assertEqual((trend[0]['stock_in'], trend[0]['stock_out'], trend[0]['count']), (5, 5, 3))
        self.assertEqual(response.data['top_items'][0]['name'], 'Milk')
        self.assertNotIn('branch_performance', response.data)

    def test_regional_manager_gets_branch_performance(self):
        manager = TestDataFactory.create_user(
            role=REGIONAL_MANAGER, region=self.region, branch_context=self.branch
        )
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/analytics/')
        performance = response.data['branch_performance']
        self.assertEqual([b['name'] for b in performance], ['Alpha', 'Beta'])
        self.assertEqual(performance[0]['item_count'], 3)
        self.assertEqual(performance[0]['movement_count'], 3)
        self.assertEqual(performance[0]['items_needing_attention'], 2)
        self.assertEqual(performance[1]['item_count'], 0)

    def test_invalid_days_falls_back(self):
        response = self.client.get('/api/v1/analytics/?days=lots')
        self.assertEqual(response.data['period_days'], 30)

    def test_notifications_feed(self):
        record_notification('+46700000000', 'Restock milk', type='stock_alert', branch=self.branch)
        TestDataFactory.create_event(self.branch, title='Soon', event_date=timezone.localdate() + datetime.timedelta(days=2))
        TestDataFactory.create_event(self.branch, title='Far', event_date=timezone.localdate() + datetime.timedelta(days=20))
        response = self.client.get('/api/v1/notifications/feed/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['notifications']), 1)
        self.assertEqual([e['title'] for e in response.data['upcoming_events']], ['Soon'])
        self.assertEqual([i['name'] for i in response.data['stock_alerts']], ['Milk', 'Salt'])
        self.assertEqual(response.data['count'], 4)
