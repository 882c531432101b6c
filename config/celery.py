# ==============================================================================
# TEAMCRM - CELERY CONFIGURATION
# ==============================================================================
# Celery runs deferred work outside the request cycle:
# - Fetch company favicons after a website is saved
# - Send lead follow-up notifications
# - Send task due-date reminders
#
# Start worker: celery -A config worker -l info
# Start beat: celery -A config beat -l info
# ==============================================================================

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for Celery
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('teamcrm')

# All settings prefixed with 'CELERY_' will be used
# Example: CELERY_BROKER_URL, CELERY_RESULT_BACKEND
app.config_from_object('django.conf:settings', namespace='CELERY')

# Looks for tasks.py file in each installed app
app.autodiscover_tasks()


# CELERY BEAT SCHEDULE (Periodic Tasks)

app.conf.beat_schedule = {
    'send-lead-follow-up-notifications': {
        'task': 'apps.leads.tasks.send_follow_up_notifications',
        'schedule': crontab(minute='*/15'),  # Every 15 minutes
    },

    'send-task-reminders': {
        'task': 'apps.crm.tasks.send_task_reminders',
        'schedule': crontab(minute=0),  # Every hour at minute 0
    },
}


# CELERY TASK ANNOTATIONS

app.conf.task_annotations = {
    # Favicon fetching hits third-party sites
    'apps.crm.tasks.fetch_company_favicon': {
        'rate_limit': '30/m',
        'time_limit': 60,
        'soft_time_limit': 45,
    },
}
