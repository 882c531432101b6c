import logging

from celery import shared_task
from django.db.models import Exists, OuterRef
from django.utils import timezone

from .models import Activity, Lead

logger = logging.getLogger(__name__)


@shared_task
def send_follow_up_notifications():
    now = timezone.now()

    # One reminder per scheduled follow-up
    already_reminded = Activity.objects.filter(
        lead=OuterRef('pk'),
        activity_type='follow_up_reminder',
        created_at__gte=OuterRef('next_follow_up'),
    )
    leads = Lead.all_objects.filter(
        next_follow_up__lte=now,
        status__in=Lead.OPEN_STATUSES,
        assigned_to__isnull=False,
    ).exclude(Exists(already_reminded)).select_related('assigned_to')

    notifications_sent = 0

    for lead in leads:
        lead.activities.create(
            user=None,
            activity_type='follow_up_reminder',
            description=f'Follow-up reminder for lead "{lead.name}"'
        )
        logger.info(f"Follow-up due for lead {lead.pk} (user {lead.assigned_to.pk})")
        notifications_sent += 1

    return f'{notifications_sent} follow-up notifications sent.'
