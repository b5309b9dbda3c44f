"""
Test suite for the events module
Tests: calendar event CRUD, alert scheduling, scoping and permissions
"""
import datetime

from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from stockhub.core.models import ActivityLog
from stockhub.core.roles import MANAGER, STAFF, REGIONAL_MANAGER
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import CalendarEvent, EventAlert, default_alert_time


class DefaultAlertTimeTests(TestCase):

    @override_settings(EVENT_ALERT_TIME='07:45')
    def test_reads_configured_time(self):
        self.assertEqual(default_alert_time(), datetime.time(7, 45))


class CalendarEventAPITests(TestCase):
    """Calendar event endpoints"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.other_branch = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.colleague = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.today = timezone.localdate()

    def test_create_event_schedules_pending_alert(self):
        event_date = self.today + datetime.timedelta(days=3)
        response = self.client.post('/api/v1/events/', {
            'title': 'Milk delivery',
            'event_date': event_date.isoformat(),
            'event_type': 'delivery',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        event = CalendarEvent.objects.get(title='Milk delivery')
        self.assertEqual(event.branch_id, self.branch.id)
        self.assertEqual(event.created_by, self.staff)

        alert = EventAlert.objects.get(event=event)
        self.assertEqual(alert.status, 'pending')
        self.assertEqual(alert.alert_date, event_date)
        self.assertEqual(alert.alert_time, default_alert_time())
        self.assertEqual(alert.branch_id, self.branch.id)
        self.assertTrue(ActivityLog.objects.filter(action='event_created').exists())

    def test_event_type_defaults_to_reminder(self):
        response = self.client.post('/api/v1/events/', {
            'title': 'Check fridge', 'event_date': self.today.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event_type'], 'reminder')

    def test_invalid_event_type_rejected(self):
        response = self.client.post('/api/v1/events/', {
            'title': 'Party', 'event_date': self.today.isoformat(), 'event_type': 'party',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(CalendarEvent.objects.exists())

    def test_blank_title_rejected(self):
        response = self.client.post('/api/v1/events/', {
            'title': '   ', 'event_date': self.today.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_event_in_foreign_branch_refused(self):
        response = self.client.post('/api/v1/events/', {
            'title': 'Sneaky', 'event_date': self.today.isoformat(), 'branch': self.other_branch.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_defaults_to_upcoming(self):
        TestDataFactory.create_event(self.branch, title='Past', event_date=self.today - datetime.timedelta(days=2))
        TestDataFactory.create_event(self.branch, title='Today', event_date=self.today)
        TestDataFactory.create_event(self.branch, title='Later', event_date=self.today + datetime.timedelta(days=5))
        TestDataFactory.create_event(self.other_branch, title='Elsewhere', event_date=self.today)
        response = self.client.get('/api/v1/events/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['title'] for e in response.data], ['Today', 'Later'])

    def test_list_date_range(self):
        past = self.today - datetime.timedelta(days=2)
        TestDataFactory.create_event(self.branch, title='Past', event_date=past)
        TestDataFactory.create_event(self.branch, title='Later', event_date=self.today + datetime.timedelta(days=5))
        response = self.client.get(f'/api/v1/events/?start={past.isoformat()}&end={self.today.isoformat()}')
        self.assertEqual([e['title'] for e in response.data], ['Past'])

    def test_list_by_type(self):
        TestDataFactory.create_event(self.branch, title='Count', event_type='inventory')
        TestDataFactory.create_event(self.branch, title='Meet', event_type='meeting')
        response = self.client.get('/api/v1/events/?event_type=meeting')
        self.assertEqual([e['title'] for e in response.data], ['Meet'])

    def test_moving_event_moves_pending_alert(self):
        event = TestDataFactory.create_event(self.branch, created_by=self.staff)
        new_date = self.today + datetime.timedelta(days=7)
        response = self.client.patch(f'/api/v1/events/{event.id}/', {'event_date': new_date.isoformat()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(EventAlert.objects.get(event=event).alert_date, new_date)
        self.assertEqual(response.data['alerts'][0]['alert_date'], new_date.isoformat())

    def test_sent_alert_is_not_moved(self):
        event = TestDataFactory.create_event(self.branch, created_by=self.staff)
        EventAlert.objects.filter(event=event).update(status='sent')
        new_date = self.today + datetime.timedelta(days=7)
        self.client.patch(f'/api/v1/events/{event.id}/', {'event_date': new_date.isoformat()}, format='json')
        self.assertEqual(EventAlert.objects.get(event=event).alert_date, self.today)

    def test_staff_cannot_edit_colleagues_event(self):
        event = TestDataFactory.create_event(self.branch, created_by=self.colleague)
        response = self.client.patch(f'/api/v1/events/{event.id}/', {'title': 'Mine now'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.delete(f'/api/v1/events/{event.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_deletes_any_event_and_alerts_go_with_it(self):
        event = TestDataFactory.create_event(self.branch, created_by=self.colleague)
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/events/{event.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(EventAlert.objects.filter(event_id=event.id).exists())
        self.assertTrue(ActivityLog.objects.filter(action='event_deleted').exists())

    def test_foreign_event_not_found(self):
        event = TestDataFactory.create_event(self.other_branch)
        response = self.client.get(f'/api/v1/events/{event.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_regional_manager_with_context_creates_event(self):
        manager = TestDataFactory.create_user(
            role=REGIONAL_MANAGER, region=self.branch.region, branch_context=self.branch
        )
        self.client.authenticate_user(manager)
        response = self.client.post('/api/v1/events/', {
            'title': 'Area visit', 'event_date': self.today.isoformat(), 'event_type': 'meeting',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['branch'], self.branch.id)
