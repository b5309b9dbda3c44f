"""
Test suite for the locations module
Tests: region, district and branch CRUD, scoping, branch settings, branch list caching
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from stockhub.core.models import ActivityLog
from stockhub.core.model_cache import branch_scope_key, get_branch_list_cache_key
from stockhub.core.roles import ADMIN, REGIONAL_MANAGER, DISTRICT_MANAGER, MANAGER, STAFF
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Region, District, Branch


class RegionAPITests(TestCase):
    """Region endpoints"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role=ADMIN)
        self.region = TestDataFactory.create_region(name='South')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_admin_creates_region(self):
        response = self.client.post('/api/v1/regions/', {'name': 'North'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Region.objects.filter(name='North').exists())

    def test_duplicate_region_name_rejected(self):
        response = self.client.post('/api/v1/regions/', {'name': 'South'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_regional_manager_assignment_requires_role(self):
        staff = TestDataFactory.create_user(role=STAFF)
        response = self.client.patch(
            f'/api/v1/regions/{self.region.id}/', {'regional_manager': staff.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, name='Rita')
        response = self.client.patch(
            f'/api/v1/regions/{self.region.id}/', {'regional_manager': manager.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['regional_manager_name'], 'Rita')

    def test_region_with_branches_cannot_be_deleted(self):
        district = TestDataFactory.create_district(region=self.region)
        TestDataFactory.create_branch(district=district)
        response = self.client.delete(f'/api/v1/regions/{self.region.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Region.objects.filter(pk=self.region.pk).exists())

    def test_non_admin_cannot_create_region(self):
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.client.authenticate_user(manager)
        response = self.client.post('/api/v1/regions/', {'name': 'West'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_lists_only_regions_with_reachable_branches(self):
        branch = TestDataFactory.create_branch()
        TestDataFactory.create_branch()
        manager = TestDataFactory.create_user(role=MANAGER, branch=branch)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/regions/')
        self.assertEqual([r['id'] for r in response.data], [branch.region_id])


class DistrictAPITests(TestCase):
    """District endpoints"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role=ADMIN)
        self.region = TestDataFactory.create_region()
        self.other_region = TestDataFactory.create_region()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_admin_creates_district(self):
        response = self.client.post(
            '/api/v1/districts/', {'name': 'Centre', 'region': self.region.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['region_name'], self.region.name)

    def test_filter_districts_by_region(self):
        TestDataFactory.create_district(region=self.region, name='A')
        TestDataFactory.create_district(region=self.other_region, name='B')
        response = self.client.get(f'/api/v1/districts/?region={self.region.id}')
        self.assertEqual([d['name'] for d in response.data], ['A'])

    def test_district_manager_cannot_edit_district(self):
        district = TestDataFactory.create_district(region=self.region)
        TestDataFactory.create_branch(district=district)
        manager = TestDataFactory.create_user(role=DISTRICT_MANAGER, region=self.region, district=district)
        self.client.authenticate_user(manager)
        response = self.client.patch(f'/api/v1/districts/{district.id}/', {'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        district.refresh_from_db()
        self.assertNotEqual(district.name, 'Renamed')


class BranchAPITests(TestCase):
    """Branch endpoints"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role=ADMIN)
        self.region = TestDataFactory.create_region()
        self.district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=self.district, name='Alpha')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_admin_creates_branch(self):
        response = self.client.post('/api/v1/branches/', {
            'name': 'Beta',
            'location': 'Lund',
            'region': self.region.id,
            'district': self.district.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        branch = Branch.objects.get(name='Beta')
        self.assertEqual(branch.notification_settings, {'email': True, 'sms': False, 'whatsapp': False})
        self.assertEqual(branch.alert_frequency, 'weekly')

    def test_district_must_belong_to_region(self):
        other_district = TestDataFactory.create_district()
        response = self.client.post('/api/v1/branches/', {
            'name': 'Gamma',
            'region': self.region.id,
            'district': other_district.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('district', response.data)

    def test_manager_cannot_create_branch(self):
        manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.client.authenticate_user(manager)
        response = self.client.post('/api/v1/branches/', {
            'name': 'Delta',
            'region': self.region.id,
            'district': self.district.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Branch.objects.filter(name='Delta').exists())

    def test_regional_manager_lists_own_region_only(self):
        TestDataFactory.create_branch(name='Elsewhere')
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/branches/')
        self.assertEqual([b['name'] for b in response.data], ['Alpha'])

    def test_branch_outside_scope_is_not_found(self):
        foreign = TestDataFactory.create_branch()
        staff = TestDataFactory.create_user(branch=self.branch)
        self.client.authenticate_user(staff)
        response = self.client.get(f'/api/v1/branches/{foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_branch_with_items_cannot_be_deleted(self):
        TestDataFactory.create_item(self.branch)
        response = self.client.delete(f'/api/v1/branches/{self.branch.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Branch.objects.filter(pk=self.branch.pk).exists())

    def test_branch_list_is_cached_and_invalidated_on_save(self):
        first = self.client.get('/api/v1/branches/')
        self.assertEqual([b['name'] for b in first.data], ['Alpha'])
        cache_key = get_branch_list_cache_key(branch_scope_key(self.admin))
        self.assertIsNotNone(cache.get(cache_key))

        TestDataFactory.create_branch(district=self.district, name='Beta')
        self.assertIsNone(cache.get(get_branch_list_cache_key(branch_scope_key(self.admin))))

        second = self.client.get('/api/v1/branches/')
        self.assertEqual([b['name'] for b in second.data], ['Alpha', 'Beta'])

    def test_region_rename_refreshes_branch_list(self):
        self.client.get('/api/v1/branches/')
        self.region.name = 'Renamed region'
        self.region.save()
        response = self.client.get('/api/v1/branches/')
        self.assertEqual(response.data[0]['region_name'], 'Renamed region')

    def test_district_rename_refreshes_branch_list(self):
        self.client.get('/api/v1/branches/')
        self.district.name = 'Renamed district'
        self.district.save()
        response = self.client.get('/api/v1/branches/')
        self.assertEqual(response.data[0]['district_name'], 'Renamed district')

    def test_scope_keys(self):
        self.assertEqual(branch_scope_key(self.admin), 'all')
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.assertEqual(branch_scope_key(manager), f'region-{self.region.id}')
        staff = TestDataFactory.create_user(branch=self.branch)
        self.assertEqual(branch_scope_key(staff), f'branch-{self.branch.id}')


class BranchSettingsTests(TestCase):
    """Branch notification settings"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.url = f'/api/v1/branches/{self.branch.id}/settings/'

    def test_read_settings(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notification_settings']['email'], True)
        self.assertEqual(response.data['alert_frequency'], 'weekly')

    def test_manager_toggles_channel(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(self.url, {
            'notification_settings': {'whatsapp': True},
            'alert_frequency': 'daily',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.branch.refresh_from_db()
        self.assertEqual(self.branch.notification_settings, {'email': True, 'sms': False, 'whatsapp': True})
        self.assertEqual(self.branch.alert_frequency, 'daily')
        self.assertTrue(self.branch.notifications_enabled('whatsapp'))
        self.assertTrue(ActivityLog.objects.filter(action='branch_settings_updated', branch=self.branch).exists())

    def test_unknown_channel_rejected(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(self.url, {'notification_settings': {'pigeon': True}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_boolean_toggle_rejected(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(self.url, {'notification_settings': {'email': 'yes'}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_change_settings(self):
        self.client.authenticate_user(self.staff)
        response = self.client.patch(self.url, {'alert_frequency': 'daily'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_settings_of_foreign_branch_not_found(self):
        foreign = TestDataFactory.create_branch()
        self.client.authenticate_user(self.manager)
        response = self.client.get(f'/api/v1/branches/{foreign.id}/settings/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_district_hierarchy_defaults(self):
        self.assertIsInstance(self.branch.district, District)
        self.assertEqual(self.branch.region_id, self.branch.district.region_id)
