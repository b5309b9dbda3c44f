"""
Test suite for the notifications module
Tests: WhatsApp and email dispatch, weather lookup, stock alerts, event alerts, regular alerts
"""
import datetime
from io import StringIO
from smtplib import SMTPException
from unittest.mock import Mock, patch

import requests
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from stockhub.core.roles import ADMIN, REGIONAL_MANAGER, DISTRICT_MANAGER, MANAGER, STAFF
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockhub.events.models import EventAlert
from .models import Notification
from .services.alerts import (
    branch_recipients, send_event_alerts, send_regular_alerts, send_stock_alert, send_stock_alerts,
    wants_event_reminders,
)
from .services.mail import send_email
from .services.weather import get_weather
from .services.whatsapp import send_whatsapp, whatsapp_address

TWILIO_SETTINGS = {
    'WHATSAPP_BACKEND': 'twilio',
    'TWILIO_ACCOUNT_SID': 'AC00000000000000000000000000000000',
    'TWILIO_AUTH_TOKEN': 'secret',
    'TWILIO_WHATSAPP_FROM': 'whatsapp:+14155238886',
}


class WhatsAppTests(TestCase):
    """WhatsApp transport"""

    def test_whatsapp_address(self):
        self.assertEqual(whatsapp_address('+46700000000'), 'whatsapp:+46700000000')
        self.assertEqual(whatsapp_address('whatsapp:+46700000000'), 'whatsapp:+46700000000')

    @override_settings(WHATSAPP_BACKEND='console')
    def test_console_backend_records_sent_notification(self):
        notification = send_whatsapp('+46700000000', 'Hello', type='general')
        self.assertEqual(notification.status, 'sent')
        self.assertIsNotNone(notification.sent_at)
        self.assertEqual(notification.recipient, '+46700000000')

    def test_missing_number_is_skipped(self):
        self.assertIsNone(send_whatsapp('', 'Hello'))
        self.assertFalse(Notification.objects.exists())

    @override_settings(**TWILIO_SETTINGS)
    @patch('stockhub.notifications.services.whatsapp.requests.post')
    def test_twilio_backend_posts_message(self, mock_post):
        mock_post.return_value = Mock(ok=True, status_code=201, json=Mock(return_value={'sid': 'SM1'}))
        notification = send_whatsapp('+46700000000', 'Hello')
        self.assertEqual(notification.status, 'sent')
        args, kwargs = mock_post.call_args
        self.assertIn(TWILIO_SETTINGS['TWILIO_ACCOUNT_SID'], args[0])
        self.assertEqual(kwargs['data']['To'], 'whatsapp:+46700000000')
        self.assertEqual(kwargs['data']['From'], 'whatsapp:+14155238886')
        self.assertEqual(kwargs['auth'], (TWILIO_SETTINGS['TWILIO_ACCOUNT_SID'], 'secret'))

    @override_settings(**TWILIO_SETTINGS)
    @patch('stockhub.notifications.services.whatsapp.requests.post')
    def test_twilio_rejection_records_failure(self, mock_post):
        mock_post.return_value = Mock(ok=False, status_code=401, text='Authenticate')
        notification = send_whatsapp('+46700000000', 'Hello')
        self.assertEqual(notification.status, 'failed')
        self.assertIn('401', notification.error_message)
        self.assertIsNone(notification.sent_at)

    @override_settings(**TWILIO_SETTINGS)
    @patch('stockhub.notifications.services.whatsapp.requests.post')
    def test_twilio_unreachable_records_failure(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('no route')
        notification = send_whatsapp('+46700000000', 'Hello')
        self.assertEqual(notification.status, 'failed')

    @override_settings(WHATSAPP_BACKEND='twilio', TWILIO_ACCOUNT_SID='', TWILIO_AUTH_TOKEN='')
    def test_twilio_without_credentials_fails(self):
        notification = send_whatsapp('+46700000000', 'Hello')
        self.assertEqual(notification.status, 'failed')


class EmailTests(TestCase):
    """Email transport"""

    def test_text_email(self):
        notification = send_email('ops@example.com', 'Stock report', 'All good')
        self.assertEqual(notification.status, 'sent')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['ops@example.com'])
        self.assertEqual(mail.outbox[0].body, 'All good')

    def test_html_email_carries_text_part(self):
        send_email('ops@example.com', 'Report', '<p>All <b>good</b></p>', content_type='html')
        message = mail.outbox[0]
        self.assertEqual(message.body, 'All good')
        self.assertEqual(message.alternatives[0][1], 'text/html')

    @patch('stockhub.notifications.services.mail.send_mail', side_effect=SMTPException('relay denied'))
    def test_smtp_failure_records_failure(self, mock_send):
        notification = send_email('ops@example.com', 'Report', 'Body')
        self.assertEqual(notification.status, 'failed')
        self.assertIn('relay denied', notification.error_message)


@override_settings(OPENWEATHER_API_KEY='key', OPENWEATHER_URL='https://weather.test/data')
class WeatherTests(TestCase):
    """Weather lookup"""

    def setUp(self):
        cache.clear()

    @patch('stockhub.notifications.services.weather.requests.get')
    def test_weather_payload_is_cached(self, mock_get):
        mock_get.return_value = Mock(json=Mock(return_value={
            'name': 'Lund',
            'main': {'temp': 12.6, 'humidity': 81},
            'wind': {'speed': 4.1},
            'weather': [{'description': 'light rain'}],
        }))
        mock_get.return_value.raise_for_status = Mock()

        payload = get_weather('Lund')
        self.assertEqual(payload, {
            'city': 'Lund',
            'available': True,
            'temperature': 13,
            'humidity': 81,
            'wind_speed': 4.1,
            'description': 'light rain',
        })
        self.assertEqual(mock_get.call_args.kwargs['params'], {'q': 'Lund', 'appid': 'key', 'units': 'metric'})

        get_weather('lund ')
        self.assertEqual(mock_get.call_count, 1)

    @patch('stockhub.notifications.services.weather.requests.get', side_effect=requests.Timeout('slow'))
    def test_provider_failure_falls_back(self, mock_get):
        payload = get_weather('Lund')
        self.assertFalse(payload['available'])
        self.assertIsNone(payload['temperature'])
        self.assertEqual(payload['city'], 'Lund')

    @override_settings(OPENWEATHER_API_KEY='', DEFAULT_WEATHER_CITY='Vaxjo')
    @patch('stockhub.notifications.services.weather.requests.get')
    def test_no_api_key_falls_back_to_default_city(self, mock_get):
        payload = get_weather()
        self.assertEqual(payload['city'], 'Vaxjo')
        self.assertFalse(payload['available'])
        mock_get.assert_not_called()

    @patch('stockhub.notifications.views.get_weather')
    def test_endpoint_uses_branch_location(self, mock_weather):
        mock_weather.return_value = {'city': 'Malmo', 'available': False}
        branch = TestDataFactory.create_branch(location='Malmo')
        user = TestDataFactory.create_user(branch=branch)
        client = AuthenticatedAPIClient()
        client.authenticate_user(user)
        response = client.get('/api/v1/weather/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_weather.assert_called_once_with('Malmo')


class StockAlertTests(TestCase):
    """Low and critical stock alerts"""

    def setUp(self):
        self.region = TestDataFactory.create_region()
        self.district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=self.district, whatsapp=True)
        self.member = TestDataFactory.create_user(branch=self.branch, phone='+46700000001')
        self.regional = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region, phone='+46700000002')
        self.no_phone = TestDataFactory.create_user(branch=self.branch)
        self.elsewhere = TestDataFactory.create_user(
            role=DISTRICT_MANAGER, district=TestDataFactory.create_district(), phone='+46700000003'
        )

    def test_recipients_are_branch_members_and_area_managers_with_phone(self):
        self.assertEqual(
            set(branch_recipients(self.branch).values_list('id', flat=True)),
            {self.member.id, self.regional.id},
        )

    def test_critical_item_alerts_recipients(self):
        item = TestDataFactory.create_item(self.branch, name='Eggs', threshold_level=10, quantity=3)
        summary = send_stock_alert(item.id)
        self.assertEqual(summary['alert_type'], 'critical')
        self.assertEqual(summary['notifications_sent'], 2)
        notifications = Notification.objects.filter(type='stock_alert')
        self.assertEqual(notifications.count(), 2)
        self.assertTrue(all('CRITICAL ALERT' in n.message for n in notifications))

    def test_low_item_message(self):
        item = TestDataFactory.create_item(self.branch, name='Eggs', threshold_level=10, quantity=8)
        send_stock_alert(item.id)
        self.assertIn('LOW STOCK ALERT', Notification.objects.filter(type='stock_alert').first().message)

    def test_adequate_item_is_skipped(self):
        item = TestDataFactory.create_item(self.branch, threshold_level=10, quantity=30)
        summary = send_stock_alert(item.id)
        self.assertEqual(summary['notifications_sent'], 0)
        self.assertIn('skipped', summary)
        self.assertFalse(Notification.objects.exists())

    def test_branch_with_whatsapp_off_is_skipped(self):
        quiet = TestDataFactory.create_branch(district=self.district)
        item = TestDataFactory.create_item(quiet, threshold_level=10, quantity=0)
        summary = send_stock_alert(item.id)
        self.assertEqual(summary['notifications_sent'], 0)
        self.assertFalse(Notification.objects.exists())

    def test_bulk_alerts_cover_only_items_needing_attention(self):
        TestDataFactory.create_item(self.branch, name='Low', threshold_level=10, quantity=7)
        TestDataFactory.create_item(self.branch, name='Fine', threshold_level=10, quantity=70)
        results = send_stock_alerts(branch_id=self.branch.id)
        self.assertEqual([r['item'] for r in results], ['Low'])

    def test_management_command(self):
        TestDataFactory.create_item(self.branch, name='Low', threshold_level=10, quantity=7)
        out = StringIO()
        call_command('send_stock_alerts', branch=self.branch.id, stdout=out)
        self.assertIn('Items alerted: 1', out.getvalue())

    def test_endpoint_scoped_to_branch(self):
        item = TestDataFactory.create_item(self.branch, threshold_level=10, quantity=0)
        foreign = TestDataFactory.create_item(TestDataFactory.create_branch(whatsapp=True), quantity=0)
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.member)
        response = client.post('/api/v1/notifications/stock-alert/', {'item': item.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['details']['notifications_sent'], 2)
        response = client.post('/api/v1/notifications/stock-alert/', {'item': foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


@override_settings(EVENT_ALERT_TIME='23:30', EVENT_ALERT_WINDOW_MINUTES=5, WHATSAPP_BACKEND='console')
class EventAlertTests(TestCase):
    """Scheduled event reminders"""

    def setUp(self):
        self.day = datetime.date(2026, 3, 10)
        self.branch = TestDataFactory.create_branch(whatsapp=True)
        self.member = TestDataFactory.create_user(branch=self.branch, phone='+46700000001')
        self.event = TestDataFactory.create_event(self.branch, title='Stock count', event_date=self.day,
                                                  event_type='inventory')

    def _at(self, hour, minute, day=None):
        return timezone.make_aware(datetime.datetime.combine(day or self.day, datetime.time(hour, minute)))

    def test_alert_sent_inside_window(self):
        processed = send_event_alerts(now=self._at(23, 32))
        self.assertEqual(len(processed), 1)
        alert = EventAlert.objects.get(event=self.event)
        self.assertEqual(alert.status, 'sent')
        self.assertIsNotNone(alert.sent_at)
        reminder = Notification.objects.get(type='event_reminder', recipient='+46700000001')
        self.assertIn('EVENT ALERT REMINDER', reminder.message)
        self.assertIn('Stock count', reminder.message)
        self.assertTrue(Notification.objects.filter(type='event_reminder', recipient='branch').exists())

    def test_alert_not_sent_before_time_or_after_window(self):
        self.assertEqual(send_event_alerts(now=self._at(23, 20)), [])
        self.assertEqual(send_event_alerts(now=self._at(23, 36)), [])
        self.assertEqual(EventAlert.objects.get(event=self.event).status, 'pending')

    def test_alert_for_other_day_not_sent(self):
        self.assertEqual(send_event_alerts(now=self._at(23, 31, day=self.day - datetime.timedelta(days=1))), [])

    def test_alert_sent_once(self):
        send_event_alerts(now=self._at(23, 31))
        self.assertEqual(send_event_alerts(now=self._at(23, 33)), [])
        self.assertEqual(Notification.objects.filter(recipient='+46700000001').count(), 1)

    def test_branch_with_whatsapp_off_stays_pending(self):
        self.branch.notification_settings = {'email': True, 'sms': False, 'whatsapp': False}
        self.branch.save()
        self.assertEqual(send_event_alerts(now=self._at(23, 31)), [])
        self.assertEqual(EventAlert.objects.get(event=self.event).status, 'pending')

    def test_user_without_event_reminders_is_skipped(self):
        self.member.notification_settings = {'email': True, 'whatsapp': True, 'eventReminders': False}
        self.member.save()
        self.assertFalse(wants_event_reminders(self.member, self.branch))
        processed = send_event_alerts(now=self._at(23, 31))
        self.assertEqual(processed[0]['notifications_sent'], 0)

    @patch('stockhub.notifications.services.alerts.send_event_reminder', side_effect=RuntimeError('boom'))
    def test_failed_reminder_marks_alert_failed(self, mock_reminder):
        send_event_alerts(now=self._at(23, 31))
        self.assertEqual(EventAlert.objects.get(event=self.event).status, 'failed')

    def test_manual_reminder_endpoint(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.member)
        response = client.post('/api/v1/notifications/event-reminder/', {'event': self.event.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['details']['notifications_sent'], 1)


class RegularAlertTests(TestCase):
    """Heartbeat alerts"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.opted_in = TestDataFactory.create_user(
            branch=self.branch, phone='+46700000001',
            notification_settings={'email': True, 'whatsapp': True, 'eventReminders': True},
        )
        self.opted_out = TestDataFactory.create_user(branch=self.branch, phone='+46700000002')

    def test_only_users_with_whatsapp_on_are_messaged(self):
        sent = send_regular_alerts()
        self.assertEqual([s['phone'] for s in sent], ['+46700000001'])
        self.assertIn('REGULAR ALERT', Notification.objects.get(recipient='+46700000001').message)

    def test_endpoint_is_admin_only(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user(role=MANAGER, branch=self.branch))
        response = client.post('/api/v1/notifications/regular-alerts/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        client.authenticate_user(TestDataFactory.create_user(role=ADMIN))
        response = client.post('/api/v1/notifications/regular-alerts/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['alerts_sent'], 1)


class NotificationAPITests(TestCase):
    """Direct dispatch endpoints and history"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    @override_settings(WHATSAPP_BACKEND='console')
    def test_send_whatsapp(self):
        response = self.client.post('/api/v1/notifications/whatsapp/', {
            'phone_number': '+46700000009', 'message': 'Delivery at 9', 'type': 'general',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['details']['recipient'], '+46700000009')
        self.assertEqual(Notification.objects.get().branch, self.branch)

    @override_settings(**TWILIO_SETTINGS)
    @patch('stockhub.notifications.services.whatsapp.requests.post')
    def test_send_whatsapp_provider_failure(self, mock_post):
        mock_post.return_value = Mock(ok=False, status_code=500, text='oops')
        response = self.client.post('/api/v1/notifications/whatsapp/', {
            'phone_number': '+46700000009', 'message': 'Hi',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)

    def test_send_whatsapp_requires_number(self):
        response = self.client.post('/api/v1/notifications/whatsapp/', {'message': 'Hi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_send_email(self):
        response = self.client.post('/api/v1/notifications/email/', {
            'to': 'ops@example.com', 'subject': 'Hello', 'body': 'Body',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 1)

    def test_send_email_invalid_address(self):
        response = self.client.post('/api/v1/notifications/email/', {
            'to': 'not-an-email', 'subject': 'Hello', 'body': 'Body',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_send_directly(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/notifications/whatsapp/', {
            'phone_number': '+46700000009', 'message': 'Hi',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post('/api/v1/notifications/email/', {
            'to': 'ops@example.com', 'subject': 'Hello', 'body': 'Body',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Notification.objects.exists())
        self.assertEqual(len(mail.outbox), 0)

    def test_history_is_for_managers(self):
        send_whatsapp('+46700000009', 'Hi', branch=self.branch)
        send_whatsapp('+46700000008', 'Elsewhere', branch=TestDataFactory.create_branch())
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual([n['recipient'] for n in response.data], ['+46700000009'])

        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
