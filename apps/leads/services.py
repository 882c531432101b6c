"""
Lead assignment and conversion
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.crm.models import Company, Opportunity, People
from .models import Activity, Lead, LeadAlreadyConverted, Territory

logger = logging.getLogger(__name__)

User = get_user_model()

ROUND_ROBIN_TTL = 60 * 60 * 24


class LeadAssignmentService:
    """
    Strategies:
        round_robin  next team member after the last one picked (index kept in cache per team)
        weighted     team member with the fewest open (unconverted) leads
        territory    primary member of the first active territory whose rules match
        rule_based   territory first, falling back to weighted
        manual       nobody; a person assigns the lead
    """

    def assign(self, lead, strategy=None):
        """
        Assign lead with strategy (defaults to lead.assignment_strategy)

        Returns:
            User or None
        """
        strategy = strategy or lead.assignment_strategy or 'manual'

        with transaction.atomic():
            if strategy == 'round_robin':
                user = self._assign_round_robin(lead)
            elif strategy == 'weighted':
                user = self._assign_weighted(lead)
            elif strategy == 'territory':
                user = self._assign_by_territory(lead)
            elif strategy == 'rule_based':
                user = self._assign_rule_based(lead)
            else:
                user = None

            if user is not None:
                lead.assignment_strategy = strategy
                if not lead.assign_to(user):
                    return None
                logger.info(f"Lead assigned: lead={lead.pk} user={user.pk} strategy={strategy} team={lead.team_id}")

        return user

    def bulk_assign(self, leads, strategy):
        return [{'lead': lead, 'user': self.assign(lead, strategy)} for lead in leads]

    def reassign(self, from_user, to_user, team=None):
        """Move every open lead of from_user to to_user; returns how many moved"""
        leads = Lead.all_objects.filter(assigned_to=from_user, converted_at__isnull=True)
        if team is not None:
            leads = leads.filter(team=team)

        count = leads.update(assigned_to=to_user, assigned_at=timezone.now())

        logger.info(f"Leads reassigned: from={from_user.pk} to={to_user.pk} count={count} "
                    f"team={team.pk if team else None}")
        return count

    def eligible_users(self, lead):
        """Active members of the lead's team, in a stable order"""
        if lead.team_id is None:
            return []
        return list(
            User.objects.filter(team_memberships__team_id=lead.team_id, is_active=True)
            .order_by('pk').distinct()
        )

    def _assign_round_robin(self, lead):
        users = self.eligible_users(lead)
        if not users:
            return None

        cache_key = f"lead_round_robin:{lead.team_id}"
        last_index = cache.get(cache_key, -1)
        next_index = (last_index + 1) % len(users)
        cache.set(cache_key, next_index, ROUND_ROBIN_TTL)

        return users[next_index]

    def _assign_weighted(self, lead):
        users = self.eligible_users(lead)
        if not users:
            return None

        loads = dict(
            User.objects.filter(pk__in=[u.pk for u in users]).annotate(
                open_leads=Count('assigned_leads', filter=Q(
                    assigned_leads__team_id=lead.team_id,
                    assigned_leads__converted_at__isnull=True,
                ))
            ).values_list('pk', 'open_leads')
        )
        # min() keeps the first user on ties
        return min(users, key=lambda user: loads.get(user.pk, 0))

    def find_matching_territory(self, lead):
        """First active territory of the lead's team (by name) whose rules match"""
        if lead.team_id is None:
            return None
        for territory in Territory.all_objects.filter(team_id=lead.team_id, is_active=True):
            if territory.matches(lead):
                return territory
        return None

    def _assign_by_territory(self, lead):
        territory = self.find_matching_territory(lead)
        if territory is None:
            return None

        if lead.territory_id != territory.pk:
            lead.territory = territory
            lead.save(update_fields=['territory', 'updated_at'])

        return territory.primary_member()

    def _assign_rule_based(self, lead):
        return self._assign_by_territory(lead) or self._assign_weighted(lead)


@dataclass
class LeadConversionResult:
    company: Optional[Company]
    contact: Optional[People]
    opportunity: Optional[Opportunity]


class LeadConversionService:

    def convert(self, lead, payload=None, user=None):
        """
        Convert a lead into a company, an optional contact and an optional opportunity

        payload keys:
            company_id / new_company_name   existing company or name for a new one
            create_contact (False)          contact_name, contact_email, contact_phone
            create_opportunity (True)       opportunity_name, amount, probability, close_date, stage

        Raises:
            LeadAlreadyConverted
        """
        payload = payload or {}

        if lead.is_converted():
            raise LeadAlreadyConverted(f"Lead {lead.pk} has already been converted")

        with transaction.atomic():
            company = self._resolve_company(lead, payload)
            contact = self._maybe_create_contact(lead, company, payload)
            opportunity = self._maybe_create_opportunity(lead, company, contact, payload)

            lead.status = 'converted'
            lead.converted_at = timezone.now()
            lead.converted_by = user
            lead.converted_company = company
            lead.converted_contact = contact
            lead.converted_opportunity = opportunity
            lead.save()

            Activity.objects.create(
                lead=lead,
                user=user,
                activity_type='converted',
                description=f'Lead converted{f" to {company.name}" if company else ""}'
            )

        logger.info(
            f"Lead converted: lead={lead.pk} company={company.pk if company else None} "
            f"contact={contact.pk if contact else None} "
            f"opportunity={opportunity.pk if opportunity else None} "
            f"by={user.pk if user else None}"
        )
        return LeadConversionResult(company=company, contact=contact, opportunity=opportunity)

    def _resolve_company(self, lead, payload):
        company_id = payload.get('company_id')
        if company_id:
            return Company.all_objects.filter(pk=company_id, team_id=lead.team_id).first()

        name = payload.get('new_company_name') or lead.company_name or lead.name
        if not name or not name.strip():
            return None

        return Company.all_objects.create(team_id=lead.team_id, name=name.strip(), owner=lead.assigned_to)

    def _maybe_create_contact(self, lead, company, payload):
        if not payload.get('create_contact', False):
            return None

        name = payload.get('contact_name') or lead.name
        if not name or not name.strip():
            return None

        return People.all_objects.create(
            team_id=lead.team_id,
            name=name,
            company=company,
            primary_email=payload.get('contact_email') or lead.email,
            phone_mobile=payload.get('contact_phone') or lead.phone,
            job_title=lead.job_title,
            owner=lead.assigned_to,
        )

    def _maybe_create_opportunity(self, lead, company, contact, payload):
        if not payload.get('create_opportunity', True):
            return None

        name = payload.get('opportunity_name') or lead.name
        if not name or not name.strip():
            return None

        opportunity = Opportunity(
            team_id=lead.team_id,
            name=name,
            company=company,
            contact=contact,
            owner=lead.assigned_to,
        )
        if payload.get('stage'):
            opportunity.stage = payload['stage']
        if payload.get('amount') is not None:
            opportunity.amount = payload['amount']
        if payload.get('probability') is not None:
            opportunity.probability = payload['probability']
        if payload.get('close_date'):
            opportunity.close_date = payload['close_date']
        opportunity.save()
        return opportunity
