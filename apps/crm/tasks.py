import logging
import re
import smtplib
from urllib.parse import urljoin

import requests
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from apps.core.crm_config import CrmConfig

from .models import Company, Task

logger = logging.getLogger(__name__)

ICON_LINK_RE = re.compile(
    r'<link[^>]+rel=["\'](?:shortcut )?icon["\'][^>]*>', re.IGNORECASE
)
HREF_RE = re.compile(r'href=["\']([^"\']+)["\']', re.IGNORECASE)


def discover_favicon(website, timeout=None):
    """
    Find a favicon URL for website

    Looks for <link rel="icon"> on the home page, then for /favicon.ico.
    Network failures are logged and answer None.

    The home page is scanned with a regex, not parsed: only rel="icon" and
    rel="shortcut icon" links whose rel comes before href are found, so
    apple-touch-icon and other attribute orders fall through to /favicon.ico.
    """
    timeout = timeout if timeout is not None else CrmConfig.favicon_timeout()
    if not website.startswith(('http://', 'https://')):
        website = f"https://{website}"

    try:
        response = requests.get(website, timeout=timeout)
        if response.status_code == 200:
            link = ICON_LINK_RE.search(response.text)
            href = HREF_RE.search(link.group(0)) if link else None
            if href:
                return urljoin(response.url, href.group(1))

        fallback = urljoin(website, '/favicon.ico')
        response = requests.get(fallback, timeout=timeout)
        if response.status_code == 200 and response.headers.get('Content-Type', '').startswith('image'):
            return fallback

    except requests.exceptions.Timeout:
        logger.warning(f"Favicon fetch timed out for {website}")
    except requests.exceptions.RequestException as e:
        logger.warning(f"Favicon fetch failed for {website}: {e}")

    return None


@shared_task
def fetch_company_favicon(company_id):
    company = Company.all_objects.filter(pk=company_id).first()
    if company is None or not company.website:
        return None

    favicon = discover_favicon(company.website)
    if favicon is None:
        return None

    Company.all_objects.filter(pk=company.pk).update(favicon_url=favicon)
    logger.info(f"Favicon stored for company {company.pk}: {favicon}")
    return favicon


@shared_task
def send_task_reminders():
    """
    Email the active assignees of open tasks whose reminder time has passed

    Users who turned off email notifications are skipped. Each task is
    reminded once (reminded_at).
    """
    now = timezone.now()
    tasks = Task.all_objects.filter(
        reminder_at__lte=now,
        reminded_at__isnull=True,
        status__in=['pending', 'in_progress'],
    ).prefetch_related('assignees__profile')

    reminders_sent = 0

    for task in tasks:
        for user in task.assignees.all():
            if not user.is_active or not _wants_email(user):
                continue
            if _send_task_reminder(task, user):
                reminders_sent += 1
        Task.all_objects.filter(pk=task.pk).update(reminded_at=now)

    logger.info(f"{reminders_sent} task reminders sent")
    return f'{reminders_sent} task reminders sent.'


def _wants_email(user):
    profile = getattr(user, 'profile', None)
    return profile is None or profile.email_notifications


def _send_task_reminder(task, user):
    due = timezone.localtime(task.due_date).strftime('%Y-%m-%d %H:%M') if task.due_date else 'soon'
    try:
        send_mail(
            subject=f"Reminder: {task.title}",
            message=f"Hello {user.get_full_name() or user.email},\n\n"
                    f"The task '{task.title}' is due {due}.\n",
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Task reminder for task {task.pk} to user {user.pk} failed: {e}")
        return False

    logger.info(f"Reminder sent: task {task.pk} to user {user.pk}")
    return True
