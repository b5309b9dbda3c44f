"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from stockhub.core.roles import STAFF
from stockhub.locations.models import Region, District, Branch
from stockhub.inventory.models import Item, Stock
from stockhub.events.models import CalendarEvent, EventAlert
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_region(name=None, regional_manager=None):
        """Create a test region"""
        if not name:
            name = f'Region_{TestDataFactory.random_string(6)}'
        return Region.objects.create(name=name, regional_manager=regional_manager)

    @staticmethod
    def create_district(region=None, name=None):
        """Create a test district"""
        if not region:
            region = TestDataFactory.create_region()
        if not name:
            name = f'District_{TestDataFactory.random_string(6)}'
        return District.objects.create(name=name, region=region)

    @staticmethod
    def create_branch(district=None, name=None, location='Vaxjo', whatsapp=False):
        """Create a test branch (with its own region and district unless given)"""
        if not district:
            district = TestDataFactory.create_district()
        if not name:
            name = f'Branch_{TestDataFactory.random_string(6)}'
        return Branch.objects.create(
            name=name,
            location=location,
            region=district.region,
            district=district,
            notification_settings={'email': True, 'sms': False, 'whatsapp': whatsapp},
        )

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=STAFF, branch=None,
                    region=None, district=None, phone=None, is_superuser=False, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            branch=branch,
            region=region,
            district=district,
            phone=phone,
            is_superuser=is_superuser,
            name=extra.pop('name', username),
            **extra
        )
        return user

    @staticmethod
    def create_item(branch, name=None, category='General', threshold_level=10, quantity=0, created_by=None):
        """Create a test item together with its stock row"""
        if not name:
            name = f'Item_{TestDataFactory.random_string(6)}'
        item = Item.objects.create(
            branch=branch,
            name=name,
            category=category,
            threshold_level=threshold_level,
            created_by=created_by,
        )
        Stock.objects.create(item=item, current_quantity=quantity)
        return item

    @staticmethod
    def create_event(branch, title=None, event_date=None, event_type='reminder', created_by=None, with_alert=True):
        """Create a test calendar event (and its pending alert)"""
        if not title:
            title = f'Event_{TestDataFactory.random_string(6)}'
        if not event_date:
            event_date = timezone.localdate()
        event = CalendarEvent.objects.create(
            branch=branch,
            title=title,
            event_date=event_date,
            event_type=event_type,
            created_by=created_by,
        )
        if with_alert:
            EventAlert.objects.create(event=event, branch=branch, alert_date=event_date)
        return event


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
