"""
Test suite for the core module
Tests: roles, branch scoping, authentication, profile, branch context, staff management, activity logs
"""
import datetime
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from stockhub.core.exceptions import BranchSelectionRequired, BranchOutOfScope
from stockhub.core.models import ActivityLog, User
from stockhub.core.roles import (
    ADMIN, REGIONAL_MANAGER, DISTRICT_MANAGER, MANAGER, ASSISTANT_MANAGER, STAFF,
    ROLE_LEVELS, visible_roles, can_manage,
)
from stockhub.core.scoping import selectable_branches, require_branch, branch_for_write
from stockhub.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockhub.core.utils import create_activity_log


class RoleTests(TestCase):
    """Role hierarchy helpers"""

    def test_staff_sees_only_staff(self):
        self.assertEqual(visible_roles(STAFF), [STAFF])

    def test_visible_roles_are_at_or_below_own_level(self):
        for role, level in ROLE_LEVELS.items():
            for visible in visible_roles(role):
                self.assertLessEqual(ROLE_LEVELS[visible], level)
            self.assertIn(role, visible_roles(role))

    def test_admin_sees_every_role(self):
        self.assertEqual(set(visible_roles(ADMIN)), set(ROLE_LEVELS))

    def test_unknown_role_sees_nothing(self):
        self.assertEqual(visible_roles('cashier'), [])

    def test_can_manage(self):
        self.assertTrue(can_manage(MANAGER, STAFF))
        self.assertTrue(can_manage(MANAGER, MANAGER))
        self.assertTrue(can_manage(ASSISTANT_MANAGER, STAFF))
        self.assertFalse(can_manage(MANAGER, DISTRICT_MANAGER))
        self.assertFalse(can_manage(STAFF, STAFF))
        self.assertTrue(can_manage(ADMIN, REGIONAL_MANAGER))


class ScopingTests(TestCase):
    """Branch scoping rules"""

    def setUp(self):
        self.region = TestDataFactory.create_region()
        self.district = TestDataFactory.create_district(region=self.region)
        self.other_district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=self.district)
        self.sibling = TestDataFactory.create_branch(district=self.other_district)
        self.foreign = TestDataFactory.create_branch()

    def test_regional_manager_selects_branches_of_own_region(self):
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.assertEqual(
            set(selectable_branches(manager).values_list('id', flat=True)),
            {self.branch.id, self.sibling.id},
        )

    def test_district_manager_selects_branches_of_own_district(self):
        manager = TestDataFactory.create_user(role=DISTRICT_MANAGER, district=self.district, region=self.region)
        self.assertEqual(list(selectable_branches(manager).values_list('id', flat=True)), [self.branch.id])

    def test_staff_selects_home_branch_only(self):
        staff = TestDataFactory.create_user(branch=self.branch)
        self.assertEqual(list(selectable_branches(staff).values_list('id', flat=True)), [self.branch.id])

    def test_admin_selects_every_branch(self):
        admin = TestDataFactory.create_user(role=ADMIN)
        self.assertEqual(selectable_branches(admin).count(), 3)

    def test_multi_branch_manager_without_context_must_select(self):
        manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        with self.assertRaises(BranchSelectionRequired) as ctx:
            require_branch(manager)
        branch_ids = {b['id'] for b in ctx.exception.branches}
        self.assertEqual(branch_ids, {self.branch.id, self.sibling.id})

    def test_multi_branch_manager_with_foreign_context_must_select(self):
        manager = TestDataFactory.create_user(
            role=REGIONAL_MANAGER, region=self.region, branch_context=self.foreign
        )
        with self.assertRaises(BranchSelectionRequired):
            require_branch(manager)

    def test_write_outside_scope_is_refused(self):
        manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        with self.assertRaises(BranchOutOfScope):
            branch_for_write(manager, self.foreign.id)
        self.assertEqual(branch_for_write(manager), self.branch.id)

    def test_stale_context_falls_back_to_home_branch(self):
        manager = TestDataFactory.create_user(role=MANAGER, branch=self.sibling, branch_context=self.branch)
        self.assertEqual(require_branch(manager), self.sibling.id)

    def test_moved_manager_stops_seeing_old_branch(self):
        """Moving a manager to another branch drops the old branch context"""
        manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch, branch_context=self.branch)
        TestDataFactory.create_item(self.branch, name='Old stock')
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user(role=ADMIN))
        response = client.patch(f'/api/v1/staff/{manager.id}/', {'branch': self.sibling.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        manager.refresh_from_db()
        self.assertIsNone(manager.branch_context_id)

        client.authenticate_user(manager)
        response = client.get('/api/v1/items/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results'], [])


class AuthTests(TestCase):
    """Login, registration, logout and token refresh"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(username='alice', password='testpass123', branch=self.branch)
        self.client = AuthenticatedAPIClient()

    def _login(self):
        return self.client.post(
            '/api/v1/auth/login/', {'username': 'alice', 'password': 'testpass123'}, format='json'
        )

    def test_login_returns_tokens_and_logs_activity(self):
        response = self._login()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'alice')
        self.assertTrue(ActivityLog.objects.filter(user=self.user, action='login').exists())

    def test_login_succeeds_when_activity_logging_fails(self):
        with patch.object(ActivityLog.objects, 'create', side_effect=DatabaseError('activity log down')):
            response = self._login()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(ActivityLog.objects.filter(action='login').exists())

    def test_login_with_wrong_password(self):
        response = self.client.post(
            '/api/v1/auth/login/', {'username': 'alice', 'password': 'wrong'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_register_creates_staff_account(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newbie',
            'email': 'newbie@test.com',
            'password': 'S3cure-pass-123',
            'password_confirm': 'S3cure-pass-123',
            'name': 'New Bie',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(username='newbie').role, STAFF)

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newbie',
            'email': 'newbie@test.com',
            'password': 'S3cure-pass-123',
            'password_confirm': 'other-pass-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_logout_clears_context_and_blacklists_refresh_token(self):
        self.user.branch_context = self.branch
        self.user.save()
        tokens = self._login().data

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = self.client.post('/api/v1/auth/logout/', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.user.refresh_from_db()
        self.assertIsNone(self.user.branch_context_id)
        self.assertTrue(ActivityLog.objects.filter(user=self.user, action='logout').exists())

        self.client.credentials()
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_succeeds_when_activity_logging_fails(self):
        self.client.authenticate_user(self.user)
        with patch.object(ActivityLog.objects, 'create', side_effect=DatabaseError('activity log down')):
            response = self.client.post('/api/v1/auth/logout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProfileTests(TestCase):
    """Current user profile"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_profile_fetch_counts_one_access_per_day(self):
        self.client.get('/api/v1/auth/me/')
        self.client.get('/api/v1/auth/me/')
        self.user.refresh_from_db()
        self.assertEqual(self.user.access_count, 1)
        self.assertEqual(timezone.localdate(self.user.last_access), timezone.localdate())

    def test_profile_fetch_on_new_day_counts_again(self):
        User.objects.filter(pk=self.user.pk).update(
            last_access=timezone.now() - datetime.timedelta(days=1), access_count=4
        )
        self.client.get('/api/v1/auth/me/')
        self.user.refresh_from_db()
        self.assertEqual(self.user.access_count, 5)

    def test_profile_payload(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['effective_role'], STAFF)
        self.assertEqual(response.data['branch'], self.branch.id)
        self.assertFalse(response.data['requires_branch_selection'])

    def test_update_profile(self):
        response = self.client.patch('/api/v1/auth/me/', {
            'name': 'Renamed',
            'phone': '+46700000000',
            'notification_settings': {'email': False, 'whatsapp': True, 'eventReminders': True},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.name, 'Renamed')
        self.assertTrue(self.user.notification_settings['whatsapp'])
        self.assertTrue(ActivityLog.objects.filter(user=self.user, action='profile_updated').exists())

    def test_profile_update_cannot_change_role(self):
        self.client.patch('/api/v1/auth/me/', {'role': ADMIN}, format='json')
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, STAFF)


class BranchContextTests(TestCase):
    """Branch selection for multi-branch managers"""

    def setUp(self):
        self.region = TestDataFactory.create_region()
        district = TestDataFactory.create_district(region=self.region)
        self.branch = TestDataFactory.create_branch(district=district)
        self.foreign = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=REGIONAL_MANAGER, region=self.region)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_profile_flags_branch_selection(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertTrue(response.data['requires_branch_selection'])

    def test_branch_options_limited_to_region(self):
        response = self.client.get('/api/v1/auth/branches/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([b['id'] for b in response.data], [self.branch.id])

    def test_select_branch_in_region(self):
        response = self.client.post('/api/v1/auth/branch-context/', {'branch': self.branch.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.manager.refresh_from_db()
        self.assertEqual(self.manager.branch_context_id, self.branch.id)
        self.assertTrue(ActivityLog.objects.filter(action='branch_context_changed', branch=self.branch).exists())

    def test_select_branch_outside_region_is_refused(self):
        response = self.client.post('/api/v1/auth/branch-context/', {'branch': self.foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.manager.refresh_from_db()
        self.assertIsNone(self.manager.branch_context_id)

    def test_branch_scoped_list_requires_selection(self):
        response = self.client.get('/api/v1/staff/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'branch_selection_required')
        self.assertEqual([b['id'] for b in response.data['branches']], [self.branch.id])


class StaffTests(TestCase):
    """Staff listing and account management"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.other_branch = TestDataFactory.create_branch()
        self.manager = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.assistant = TestDataFactory.create_user(role=ASSISTANT_MANAGER, branch=self.branch)
        self.staff = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.colleague = TestDataFactory.create_user(role=STAFF, branch=self.branch)
        self.outsider = TestDataFactory.create_user(role=STAFF, branch=self.other_branch)
        self.client = AuthenticatedAPIClient()

    def test_staff_sees_only_staff_of_own_branch(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/staff/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({u['role'] for u in response.data}, {STAFF})
        self.assertEqual({u['id'] for u in response.data}, {self.staff.id, self.colleague.id})

    def test_manager_sees_roles_at_or_below(self):
        TestDataFactory.create_user(role=DISTRICT_MANAGER, branch=self.branch)
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/staff/')
        roles = {u['role'] for u in response.data}
        self.assertEqual(roles, {MANAGER, ASSISTANT_MANAGER, STAFF})

    def test_staff_cannot_see_manager_profile(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get(f'/api/v1/staff/{self.manager.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_manager_creates_staff_in_own_branch(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/staff/', {
            'username': 'bob',
            'email': 'bob@test.com',
            'password': 'S3cure-pass-123',
            'name': 'Bob',
            'role': STAFF,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        bob = User.objects.get(username='bob')
        self.assertEqual(bob.branch_id, self.branch.id)
        self.assertTrue(ActivityLog.objects.filter(action='user_created').exists())

    def test_manager_cannot_create_higher_role(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/staff/', {
            'username': 'boss',
            'email': 'boss@test.com',
            'password': 'S3cure-pass-123',
            'role': REGIONAL_MANAGER,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_cannot_create_account_in_other_branch(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/staff/', {
            'username': 'carol',
            'email': 'carol@test.com',
            'password': 'S3cure-pass-123',
            'role': STAFF,
            'branch': self.other_branch.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_cannot_create_accounts(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/staff/', {
            'username': 'dave',
            'email': 'dave@test.com',
            'password': 'S3cure-pass-123',
            'role': STAFF,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_updates_staff(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/staff/{self.staff.id}/', {'position': 'Cashier'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.staff.refresh_from_db()
        self.assertEqual(self.staff.position, 'Cashier')

    def test_manager_cannot_change_own_role(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/staff/{self.manager.id}/', {'role': STAFF}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_only_admin_deletes_accounts(self):
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/staff/{self.staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        admin = TestDataFactory.create_user(role=ADMIN)
        self.client.authenticate_user(admin)
        response = self.client.delete(f'/api/v1/staff/{self.staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=self.staff.pk).exists())


class ActivityLogTests(TestCase):
    """Activity log helper and endpoints"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.other_branch = TestDataFactory.create_branch()
        self.user = TestDataFactory.create_user(role=MANAGER, branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_activity_log_defaults_to_working_branch(self):
        log = create_activity_log(action='item_created', user=self.user, details={'item_name': 'Milk'})
        self.assertEqual(log.branch_id, self.branch.id)

    def test_create_activity_log_without_action(self):
        self.assertIsNone(create_activity_log(user=self.user))

    def test_create_activity_log_swallows_database_errors(self):
        with patch.object(ActivityLog.objects, 'create', side_effect=DatabaseError('down')):
            self.assertIsNone(create_activity_log(action='login', user=self.user))

    def test_activity_log_list_is_branch_scoped(self):
        create_activity_log(action='item_created', user=self.user)
        create_activity_log(action='item_created', user=self.user, branch_id=self.other_branch.id)
        response = self.client.get('/api/v1/activity-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['branch'], self.branch.id)

    def test_activity_log_filter_by_action(self):
        create_activity_log(action='item_created', user=self.user)
        create_activity_log(action='stock_in', user=self.user)
        response = self.client.get('/api/v1/activity-logs/?action=stock_in')
        self.assertEqual([log['action'] for log in response.data], ['stock_in'])

    def test_unknown_route_returns_json_404(self):
        response = self.client.get('/api/v1/does-not-exist/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
