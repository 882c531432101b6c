"""
Lead Service Tests
==================

Test Coverage:
1. LeadAssignmentService
   - Round robin rotation per team
   - Weighted (fewest open leads)
   - Territory rules (primary member, rule operators)
   - Rule based: territory first, weighted fallback
   - Manual, no eligible users
   - Bulk assign and reassign

2. LeadConversionService
   - Company / contact / opportunity creation
   - Existing company, opportunity fields
   - Already converted leads
   - Nothing is kept when a step fails

Run tests:
    python manage.py test apps.leads.tests.test_services
"""

from datetime import date
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone

from apps.accounts.models import User
from apps.core.models import Team
from apps.core.tenancy import team_context
from apps.crm.models import Company, Opportunity, People
from apps.leads.models import Lead, LeadAlreadyConverted, Territory, TerritoryMember
from apps.leads.services import LeadAssignmentService, LeadConversionService


class LeadAssignmentServiceTest(TestCase):

    def setUp(self):
        """Setup test data"""
        cache.clear()
        self.service = LeadAssignmentService()

        self.team = Team.objects.create(name='Sales')
        self.other_team = Team.objects.create(name='Support')

        self.agent1 = User.objects.create_user(email='agent1@test.com', password='testpass123',
                                               first_name='Ahmed', last_name='Ali')
        self.agent2 = User.objects.create_user(email='agent2@test.com', password='testpass123',
                                               first_name='Mohamed', last_name='Hassan')
        self.inactive = User.objects.create_user(email='gone@test.com', password='testpass123', is_active=False)
        self.outsider = User.objects.create_user(email='outsider@test.com', password='testpass123')

        for user in (self.agent1, self.agent2, self.inactive):
            self.team.add_member(user, 'member')
        self.other_team.add_member(self.outsider, 'member')

    def _lead(self, team=None, **kwargs):
        kwargs.setdefault('name', 'Test Lead')
        with team_context(team or self.team):
            return Lead.objects.create(**kwargs)

    def test_eligible_users(self):
        self.assertEqual(self.service.eligible_users(self._lead()), [self.agent1, self.agent2])

    def test_round_robin_rotates(self):
        assigned = [self.service.assign(self._lead(), 'round_robin') for _ in range(3)]
        self.assertEqual(assigned, [self.agent1, self.agent2, self.agent1])

    def test_round_robin_per_team(self):
        self.service.assign(self._lead(), 'round_robin')

        other_lead = self._lead(team=self.other_team)
        self.assertEqual(self.service.assign(other_lead, 'round_robin'), self.outsider)

        self.assertEqual(self.service.assign(self._lead(), 'round_robin'), self.agent2)

    def test_assignment_recorded(self):
        lead = self._lead()

        user = self.service.assign(lead, 'round_robin')

        lead.refresh_from_db()
        self.assertEqual(lead.assigned_to, user)
        self.assertEqual(lead.assignment_strategy, 'round_robin')
        self.assertTrue(lead.activities.filter(activity_type='assigned').exists())

    def test_weighted_picks_least_loaded(self):
        self._lead(assigned_to=self.agent1)
        self._lead(assigned_to=self.agent1)
        self._lead(assigned_to=self.agent2)

        self.assertEqual(self.service.assign(self._lead(), 'weighted'), self.agent2)

    def test_weighted_ignores_converted_and_other_teams(self):
        self._lead(assigned_to=self.agent1, converted_at=timezone.now(), status='converted')
        self._lead(team=self.other_team, assigned_to=self.agent1)
        self._lead(assigned_to=self.agent2)

        self.assertEqual(self.service.assign(self._lead(), 'weighted'), self.agent1)

    def test_weighted_tie_keeps_first(self):
        self.assertEqual(self.service.assign(self._lead(), 'weighted'), self.agent1)

    def test_rule_based_falls_back_to_weighted(self):
        self._lead(assigned_to=self.agent1)
        self.assertEqual(self.service.assign(self._lead(), 'rule_based'), self.agent2)

    def _territory(self, rules, members=(), team=None, **kwargs):
        territory = Territory.all_objects.create(team=team or self.team, name=kwargs.pop('name', 'North'),
                                                 assignment_rules=rules, **kwargs)
        for user, primary in members:
            TerritoryMember.objects.create(territory=territory, user=user, is_primary=primary)
        return territory

    def test_territory_assigns_primary_member(self):
        territory = self._territory(
            [{'field': 'source', 'operator': '=', 'value': 'referral'}],
            members=[(self.agent1, False), (self.agent2, True)],
        )
        lead = self._lead(source='referral')

        self.assertEqual(self.service.assign(lead, 'territory'), self.agent2)
        lead.refresh_from_db()
        self.assertEqual(lead.territory, territory)
        self.assertEqual(lead.assignment_strategy, 'territory')

    def test_territory_without_primary_uses_first_member(self):
        self._territory([{'field': 'email', 'operator': 'ends_with', 'value': '@acme.com'}],
                        members=[(self.agent1, False), (self.agent2, False)])
        lead = self._lead(email='sara@acme.com')

        self.assertEqual(self.service.assign(lead, 'territory'), self.agent1)

    def test_territory_every_rule_must_match(self):
        territory = self._territory([
            {'field': 'source', 'operator': 'in', 'value': ['website', 'referral']},
            {'field': 'score', 'operator': '>=', 'value': 50},
            {'field': 'company_name', 'operator': 'contains', 'value': 'Dental'},
        ])

        self.assertTrue(territory.matches(Lead(source='website', score=70, company_name='Khan Dental')))
        self.assertFalse(territory.matches(Lead(source='website', score=20, company_name='Khan Dental')))
        self.assertFalse(territory.matches(Lead(source='event', score=70, company_name='Khan Dental')))

    def test_territory_rules_ignore_unknown_fields(self):
        territory = self._territory([
            {'field': 'country', 'value': 'EG'},
            {'field': 'priority', 'operator': '!=', 'value': 'low'},
        ])
        self.assertTrue(territory.matches(Lead(priority='high')))
        self.assertFalse(self._territory([], name='Empty').matches(Lead(priority='high')))

    def test_territory_no_match(self):
        self._territory([{'field': 'source', 'value': 'referral'}], members=[(self.agent1, True)])
        lead = self._lead(source='website')

        self.assertIsNone(self.service.assign(lead, 'territory'))
        lead.refresh_from_db()
        self.assertIsNone(lead.territory)

    def test_territory_skips_inactive_and_other_teams(self):
        rules = [{'field': 'source', 'value': 'referral'}]
        self._territory(rules, members=[(self.agent1, True)], is_active=False)
        self._territory(rules, members=[(self.outsider, True)], team=self.other_team)

        self.assertIsNone(self.service.find_matching_territory(self._lead(source='referral')))

    def test_territory_member_outside_team_skipped(self):
        self._territory([{'field': 'source', 'value': 'referral'}],
                        members=[(self.outsider, True), (self.agent2, False)])

        self.assertEqual(self.service.assign(self._lead(source='referral'), 'territory'), self.agent2)

    def test_rule_based_prefers_territory(self):
        self._lead(assigned_to=self.agent2)
        self._territory([{'field': 'source', 'value': 'referral'}], members=[(self.agent2, True)])

        self.assertEqual(self.service.assign(self._lead(source='referral'), 'rule_based'), self.agent2)

    def test_manual_assigns_nobody(self):
        lead = self._lead()
        self.assertIsNone(self.service.assign(lead))
        self.assertIsNone(self.service.assign(lead, 'manual'))
        lead.refresh_from_db()
        self.assertIsNone(lead.assigned_to)

    def test_no_eligible_users(self):
        empty_team = Team.objects.create(name='Empty')
        self.assertIsNone(self.service.assign(self._lead(team=empty_team), 'round_robin'))
        self.assertIsNone(self.service.assign(self._lead(team=empty_team), 'weighted'))

    def test_closed_lead_not_assigned(self):
        lead = self._lead(status='lost')
        self.assertIsNone(self.service.assign(lead, 'round_robin'))

    def test_bulk_assign(self):
        leads = [self._lead(), self._lead()]

        results = self.service.bulk_assign(leads, 'round_robin')

        self.assertEqual([r['user'] for r in results], [self.agent1, self.agent2])

    def test_reassign(self):
        self._lead(assigned_to=self.agent1)
        self._lead(assigned_to=self.agent1)
        self._lead(assigned_to=self.agent1, converted_at=timezone.now(), status='converted')
        self._lead(team=self.other_team, assigned_to=self.agent1)

        moved = self.service.reassign(self.agent1, self.agent2, team=self.team)

        self.assertEqual(moved, 2)
        self.assertEqual(Lead.all_objects.filter(assigned_to=self.agent2).count(), 2)
        self.assertEqual(Lead.all_objects.filter(assigned_to=self.agent1).count(), 2)

    def test_reassign_all_teams(self):
        self._lead(assigned_to=self.agent1)
        self._lead(team=self.other_team, assigned_to=self.agent1)

        self.assertEqual(self.service.reassign(self.agent1, self.agent2), 2)


class LeadConversionServiceTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.service = LeadConversionService()
        self.team = Team.objects.create(name='Sales')
        self.agent = User.objects.create_user(email='agent@test.com', password='testpass123')

        with team_context(self.team):
            self.lead = Lead.objects.create(
                first_name='Sara', last_name='Khan',
                email='sara@example.com', phone='+201000000111',
                company_name='Khan Dental', job_title='Owner',
                assigned_to=self.agent,
            )

    def test_default_conversion(self):
        """Company from company_name and an opportunity; no contact by default"""
        result = self.service.convert(self.lead, user=self.agent)

        self.assertEqual(result.company.name, 'Khan Dental')
        self.assertEqual(result.company.team, self.team)
        self.assertEqual(result.company.owner, self.agent)
        self.assertIsNone(result.contact)
        self.assertEqual(result.opportunity.name, 'Sara Khan')
        self.assertEqual(result.opportunity.company, result.company)
        self.assertEqual(result.opportunity.stage, 'prospecting')

        self.lead.refresh_from_db()
        self.assertEqual(self.lead.status, 'converted')
        self.assertEqual(self.lead.converted_by, self.agent)
        self.assertEqual(self.lead.converted_company, result.company)
        self.assertEqual(self.lead.converted_opportunity, result.opportunity)
        self.assertTrue(self.lead.activities.filter(activity_type='converted').exists())

    def test_contact_and_opportunity_fields(self):
        result = self.service.convert(self.lead, {
            'new_company_name': 'Khan Clinics Ltd',
            'create_contact': True,
            'contact_email': 'sara@khan.example',
            'opportunity_name': 'Clinic rollout',
            'amount': Decimal('12000.00'),
            'probability': 40,
            'stage': 'proposal',
            'close_date': date(2026, 12, 31),
        })

        self.assertEqual(result.company.name, 'Khan Clinics Ltd')

        contact = result.contact
        self.assertEqual(contact.name, 'Sara Khan')
        self.assertEqual(contact.primary_email, 'sara@khan.example')
        self.assertEqual(contact.phone_mobile, '+201000000111')
        self.assertEqual(contact.company, result.company)
        self.assertEqual(self.lead.converted_contact, contact)

        opportunity = Opportunity.all_objects.get(pk=result.opportunity.pk)
        self.assertEqual(opportunity.name, 'Clinic rollout')
        self.assertEqual(opportunity.amount, Decimal('12000.00'))
        self.assertEqual(opportunity.probability, 40)
        self.assertEqual(opportunity.stage, 'proposal')
        self.assertEqual(opportunity.contact, contact)

    def test_existing_company(self):
        company = Company.all_objects.create(team=self.team, name='Existing Co')

        result = self.service.convert(self.lead, {'company_id': company.pk, 'create_opportunity': False})

        self.assertEqual(result.company, company)
        self.assertIsNone(result.opportunity)
        self.assertEqual(Company.all_objects.filter(team=self.team).count(), 1)

    def test_company_of_other_team_not_used(self):
        foreign = Company.all_objects.create(team=Team.objects.create(name='Other'), name='Foreign Co')

        result = self.service.convert(self.lead, {'company_id': foreign.pk})

        self.assertIsNone(result.company)
        self.assertIsNone(result.opportunity.company)

    def test_company_name_falls_back_to_lead_name(self):
        self.lead.company_name = ''
        result = self.service.convert(self.lead)
        self.assertEqual(result.company.name, 'Sara Khan')

    def test_failure_rolls_back(self):
        with mock.patch.object(LeadConversionService, '_maybe_create_opportunity',
                               side_effect=RuntimeError('database unavailable')):
            with self.assertRaises(RuntimeError):
                self.service.convert(self.lead, {'create_contact': True}, user=self.agent)

        self.assertEqual(Company.all_objects.count(), 0)
        self.assertEqual(People.all_objects.count(), 0)
        self.lead.refresh_from_db()
        self.assertFalse(self.lead.is_converted())
        self.assertFalse(self.lead.activities.filter(activity_type='converted').exists())

    def test_already_converted(self):
        self.service.convert(self.lead)

        with self.assertRaises(LeadAlreadyConverted):
            self.service.convert(self.lead)

        self.assertEqual(People.all_objects.count(), 0)
        self.assertEqual(Opportunity.all_objects.count(), 1)
