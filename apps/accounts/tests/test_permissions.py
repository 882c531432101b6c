"""
Permission Sync Tests
=====================

Test Cases:
1. Permission names from resources and custom permissions
2. Role resolution: tokens, permission sets, inheritance, cycles
3. Membership sync through TeamMembership signals
4. permissions_for (super admins, inactive users, other teams)

Run tests:
    python manage.py test apps.accounts.tests.test_permissions
"""

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase

from apps.accounts.models import Permission, Role, RoleAssignment
from apps.accounts.permissions import PermissionService
from apps.core.models import Team

User = get_user_model()


DEFINITIONS = {
    'guard': 'web',
    'super_admin_roles': ['admin'],
    'resources': {
        'leads': ['view', 'create', 'update', 'delete'],
        'orders': ['view', 'create'],
    },
    'custom_permissions': ['reports.export', 'leads.view'],
    'permission_sets': {
        'billing': ['orders.*'],
    },
    'roles': {
        'admin': {'permissions': ['*']},
        'viewer': {'permissions': ['leads.view', 'orders.view', 'unknown.permission']},
        'sales': {'permissions': ['leads.*'], 'inherits': ['viewer']},
        'billing': {'permission_sets': ['billing', 'missing-set'], 'inherits': ['viewer']},
        'loop_a': {'permissions': ['leads.view'], 'inherits': ['loop_b']},
        'loop_b': {'permissions': ['orders.view'], 'inherits': ['loop_a']},
    },
    'team_role_map': {
        'owner': 'admin',
        'member': 'viewer',
        'ghost': 'phantom',
    },
}


class PermissionDefinitionTest(SimpleTestCase):

    def setUp(self):
        self.service = PermissionService(DEFINITIONS)

    def test_build_permission_names(self):
        self.assertEqual(self.service.build_permission_names(), [
            'leads.view', 'leads.create', 'leads.update', 'leads.delete',
            'orders.view', 'orders.create',
            'reports.export',
        ])

    def test_unknown_permissions_dropped(self):
        self.assertEqual(self.service.resolve_role_permissions('viewer'), ['leads.view', 'orders.view'])

    def test_wildcard(self):
        self.assertEqual(self.service.resolve_role_permissions('admin'), self.service.build_permission_names())

    def test_resource_wildcard_and_inheritance(self):
        self.assertEqual(
            set(self.service.resolve_role_permissions('sales')),
            {'leads.view', 'leads.create', 'leads.update', 'leads.delete', 'orders.view'},
        )

    def test_permission_sets(self):
        self.assertEqual(
            set(self.service.resolve_role_permissions('billing')),
            {'orders.view', 'orders.create', 'leads.view'},
        )

    def test_inheritance_cycle_terminates(self):
        self.assertEqual(set(self.service.resolve_role_permissions('loop_a')), {'leads.view', 'orders.view'})

    def test_unknown_role(self):
        self.assertEqual(self.service.resolve_role_permissions('nobody'), [])

    def test_map_team_role(self):
        self.assertEqual(self.service.map_team_role('owner'), 'admin')
        self.assertEqual(self.service.map_team_role('viewer'), 'viewer')


class MembershipSyncTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.team = Team.objects.create(name='Sales')
        self.other_team = Team.objects.create(name='Support')
        self.user = User.objects.create_user(email='rep@test.com', password='testpass123')
        self.service = PermissionService()

    def test_membership_creates_roles_and_assignment(self):
        self.team.add_member(self.user, 'member')

        self.assertTrue(Role.objects.filter(team=self.team, name='admin').exists())
        self.assertEqual(self.service.role_names_for(self.user, self.team), {'user'})
        self.assertTrue(Permission.objects.filter(name='leads.view', guard='web').exists())

    def test_role_change_replaces_assignment(self):
        self.team.add_member(self.user, 'member')
        self.team.add_member(self.user, 'editor')

        self.assertEqual(self.service.role_names_for(self.user, self.team), {'editor'})
        self.assertEqual(RoleAssignment.objects.filter(user=self.user, team=self.team).count(), 1)

    def test_sync_is_idempotent(self):
        self.team.add_member(self.user, 'member')
        permission_count = Permission.objects.count()

        self.service.sync_team_definitions(self.team)
        self.service.sync_membership(self.user, self.team, 'member')

        self.assertEqual(Permission.objects.count(), permission_count)
        self.assertEqual(Role.objects.filter(team=self.team, name='user').count(), 1)

    def test_removal_clears_assignment(self):
        self.team.add_member(self.user, 'member')
        self.user.switch_team(self.team)

        self.team.remove_member(self.user)

        self.assertEqual(self.service.role_names_for(self.user, self.team), set())
        self.user.refresh_from_db()
        self.assertIsNone(self.user.current_team)

    def test_roles_are_per_team(self):
        self.team.add_member(self.user, 'owner')
        self.other_team.add_member(self.user, 'member')

        self.assertEqual(self.service.role_names_for(self.user, self.team), {'admin'})
        self.assertEqual(self.service.role_names_for(self.user, self.other_team), {'user'})

    def test_undefined_mapped_role(self):
        service = PermissionService(DEFINITIONS)
        self.assertIsNone(service.sync_membership(self.user, self.team, 'ghost'))
        self.assertFalse(RoleAssignment.objects.filter(user=self.user, team=self.team).exists())


class PermissionsForTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.team = Team.objects.create(name='Sales')
        self.service = PermissionService()

        self.owner = User.objects.create_user(email='owner@test.com', password='testpass123')
        self.member = User.objects.create_user(email='member@test.com', password='testpass123')
        self.team.add_member(self.owner, 'owner')
        self.team.add_member(self.member, 'member')

    def test_super_admin_gets_everything(self):
        self.assertEqual(self.service.permissions_for(self.owner, self.team),
                         set(self.service.build_permission_names()))

    def test_member_permissions(self):
        permissions = self.service.permissions_for(self.member, self.team)
        self.assertIn('companies.view', permissions)
        self.assertIn('orders.view', permissions)
        self.assertNotIn('companies.update', permissions)

    def test_no_team(self):
        self.assertEqual(self.service.permissions_for(self.member, None), set())

    def test_other_team(self):
        other = Team.objects.create(name='Other')
        self.assertEqual(self.service.permissions_for(self.owner, other), set())

    def test_inactive_user(self):
        self.member.is_active = False
        self.member.save()
        self.assertEqual(self.service.permissions_for(self.member, self.team), set())

    def test_sales_role_from_permission_set(self):
        sales_user = User.objects.create_user(email='sales@test.com', password='testpass123')
        self.service.sync_team_definitions(self.team)
        RoleAssignment.objects.create(
            user=sales_user, team=self.team, role=Role.objects.get(team=self.team, name='sales')
        )

        permissions = self.service.permissions_for(sales_user, self.team)

        self.assertIn('leads.force-delete', permissions)
        self.assertIn('notes.create', permissions)
        self.assertNotIn('notes.delete', permissions)
        self.assertIn('orders.view', permissions)
