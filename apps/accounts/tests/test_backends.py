"""
Team Permission Backend Tests
=============================

Test Cases:
1. Resource names and ability mapping
2. Dotted permissions in the current team
3. Abilities on model classes and instances (record's team wins)
4. Super admin role, inactive users, no team

Run tests:
    python manage.py test apps.accounts.tests.test_backends
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TestCase

from apps.accounts.backends import TeamPermissionBackend, ability_to_permission, resource_name
from apps.core.models import Team
from apps.core.tenancy import team_context
from apps.crm.models import Company, Opportunity, People
from apps.leads.models import Lead

User = get_user_model()


class AbilityMappingTest(SimpleTestCase):

    def test_resource_names(self):
        self.assertEqual(resource_name(Company), 'companies')
        self.assertEqual(resource_name(People), 'people')
        self.assertEqual(resource_name(Opportunity), 'opportunities')
        self.assertEqual(resource_name(Lead), 'leads')

    def test_ability_to_permission(self):
        self.assertEqual(ability_to_permission('viewAny', Company), 'companies.view')
        self.assertEqual(ability_to_permission('change', Lead), 'leads.update')
        self.assertEqual(ability_to_permission('force_delete', Opportunity), 'opportunities.force-delete')

    def test_unknown_ability(self):
        self.assertIsNone(ability_to_permission('teleport', Company))
        self.assertIsNone(ability_to_permission('view', None))
        self.assertIsNone(ability_to_permission('view', object()))


class TeamPermissionBackendTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.backend = TeamPermissionBackend()
        self.sales = Team.objects.create(name='Sales')
        self.support = Team.objects.create(name='Support')

        self.user = User.objects.create_user(email='rep@test.com', password='testpass123')
        self.sales.add_member(self.user, 'editor')
        self.support.add_member(self.user, 'member')

        self.admin = User.objects.create_user(email='admin@test.com', password='testpass123')
        self.sales.add_member(self.admin, 'admin')

        self.sales_company = Company.all_objects.create(team=self.sales, name='Acme')
        self.support_company = Company.all_objects.create(team=self.support, name='Globex')

    def _fresh(self, user):
        return User.objects.get(pk=user.pk)

    def test_dotted_permission_in_current_team(self):
        with team_context(self.sales):
            self.assertTrue(self.backend.has_perm(self._fresh(self.user), 'companies.update'))
        with team_context(self.support):
            self.assertFalse(self.backend.has_perm(self._fresh(self.user), 'companies.update'))

    def test_falls_back_to_current_team(self):
        self.user.switch_team(self.sales)
        self.assertTrue(self.backend.has_perm(self._fresh(self.user), 'leads.create'))

    def test_no_team_denied(self):
        loner = User.objects.create_user(email='loner@test.com', password='testpass123')
        self.assertFalse(self.backend.has_perm(loner, 'companies.view'))
        self.assertEqual(self.backend.get_all_permissions(loner), set())

    def test_ability_on_model_class(self):
        with team_context(self.support):
            user = self._fresh(self.user)
            self.assertTrue(self.backend.has_perm(user, 'viewAny', Company))
            self.assertFalse(self.backend.has_perm(user, 'add', Company))

    def test_instance_team_wins(self):
        """The record's team decides, not the active team"""
        with team_context(self.support):
            user = self._fresh(self.user)
            self.assertTrue(self.backend.has_perm(user, 'change', self.sales_company))
            self.assertFalse(self.backend.has_perm(user, 'change', self.support_company))

    def test_user_has_perm_goes_through_backend(self):
        with team_context(self.sales):
            user = self._fresh(self.user)
            self.assertTrue(user.has_perm('update', self.sales_company))
            self.assertFalse(user.has_perm('settings.manage'))

    def test_super_admin_role(self):
        with team_context(self.sales):
            admin = self._fresh(self.admin)
            self.assertTrue(self.backend.has_perm(admin, 'settings.manage'))
            self.assertTrue(self.backend.has_perm(admin, 'forceDelete', self.sales_company))
            self.assertFalse(self.backend.has_perm(admin, 'change', self.support_company))

    def test_inactive_user_denied(self):
        self.user.is_active = False
        self.user.save()
        with team_context(self.sales):
            self.assertFalse(self.backend.has_perm(self._fresh(self.user), 'companies.view'))

    def test_anonymous_denied(self):
        self.assertFalse(self.backend.has_perm(AnonymousUser(), 'companies.view'))

    def test_get_all_permissions(self):
        with team_context(self.support):
            permissions = self.backend.get_all_permissions(self._fresh(self.user))
        self.assertIn('companies.view', permissions)
        self.assertNotIn('companies.update', permissions)

    def test_permissions_cached_on_user(self):
        user = self._fresh(self.user)
        with team_context(self.sales):
            self.backend.has_perm(user, 'companies.view')
            with self.assertNumQueries(0):
                self.backend.has_perm(user, 'companies.update')
