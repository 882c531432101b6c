"""
CRM Background Job Tests
========================

Test Coverage:
- Favicon discovery (icon link, /favicon.ico fallback, network errors)
- fetch_company_favicon job and the website-change trigger
- Task reminder job (emails, notification preference, send failures)

Run tests:
    python manage.py test apps.crm.tests.test_tasks
"""

from datetime import timedelta
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core import mail
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from apps.core import features
from apps.core.models import Team
from apps.core.tenancy import team_context
from apps.crm.models import Company, Task
from apps.crm.tasks import discover_favicon, fetch_company_favicon, send_task_reminders

User = get_user_model()


def fake_response(status_code=200, text='', url='https://acme.com/', content_type='text/html'):
    response = mock.Mock()
    response.status_code = status_code
    response.text = text
    response.url = url
    response.headers = {'Content-Type': content_type}
    return response


class DiscoverFaviconTest(SimpleTestCase):

    @mock.patch('apps.crm.tasks.requests.get')
    def test_icon_link_on_home_page(self, mock_get):
        mock_get.return_value = fake_response(
            text='<html><head><link rel="shortcut icon" href="/static/icon.png"></head></html>'
        )

        self.assertEqual(discover_favicon('acme.com'), 'https://acme.com/static/icon.png')
        mock_get.assert_called_once_with('https://acme.com', timeout=5.0)

    @mock.patch('apps.crm.tasks.requests.get')
    def test_favicon_ico_fallback(self, mock_get):
        mock_get.side_effect = [
            fake_response(text='<html></html>'),
            fake_response(content_type='image/x-icon'),
        ]

        self.assertEqual(discover_favicon('https://acme.com', timeout=2), 'https://acme.com/favicon.ico')

    @mock.patch('apps.crm.tasks.requests.get')
    def test_fallback_must_be_an_image(self, mock_get):
        mock_get.side_effect = [
            fake_response(status_code=404),
            fake_response(content_type='text/html'),
        ]

        self.assertIsNone(discover_favicon('https://acme.com'))

    @mock.patch('apps.crm.tasks.requests.get')
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()

        with self.assertLogs('apps.crm.tasks', level='WARNING'):
            self.assertIsNone(discover_favicon('https://acme.com'))

    @mock.patch('apps.crm.tasks.requests.get')
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError('refused')

        self.assertIsNone(discover_favicon('https://acme.com'))


class FetchCompanyFaviconTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.team = Team.objects.create(name='Sales')

    @mock.patch('apps.crm.tasks.discover_favicon', return_value='https://acme.com/favicon.ico')
    def test_favicon_stored(self, mock_discover):
        company = Company.all_objects.create(team=self.team, name='Acme', website='https://acme.com')

        self.assertEqual(fetch_company_favicon(company.pk), 'https://acme.com/favicon.ico')

        company.refresh_from_db()
        self.assertEqual(company.favicon_url, 'https://acme.com/favicon.ico')

    @mock.patch('apps.crm.tasks.discover_favicon', return_value=None)
    def test_nothing_found(self, mock_discover):
        company = Company.all_objects.create(team=self.team, name='Acme', website='https://acme.com')

        self.assertIsNone(fetch_company_favicon(company.pk))
        company.refresh_from_db()
        self.assertEqual(company.favicon_url, '')

    def test_missing_company_or_website(self):
        company = Company.all_objects.create(team=self.team, name='No Site')
        self.assertIsNone(fetch_company_favicon(company.pk))
        self.assertIsNone(fetch_company_favicon(99999))


class FaviconTriggerTest(TestCase):
    """Favicon job is queued after commit when the website changes"""

    def setUp(self):
        """Setup test data"""
        self.team = Team.objects.create(name='Sales')

    def test_queued_on_create_with_website(self):
        with mock.patch.object(fetch_company_favicon, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                company = Company.all_objects.create(team=self.team, name='Acme', website='https://acme.com')

        mock_delay.assert_called_once_with(company.pk)

    def test_queued_only_when_website_changes(self):
        company = Company.all_objects.create(team=self.team, name='Acme', website='https://acme.com')

        with mock.patch.object(fetch_company_favicon, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                company.industry = 'Software'
                company.save()
            mock_delay.assert_not_called()

            with self.captureOnCommitCallbacks(execute=True):
                company.website = 'https://acme.io'
                company.save()
            mock_delay.assert_called_once_with(company.pk)

    def test_not_queued_when_feature_disabled(self):
        features.disable('favicon_fetching', self.team)

        with mock.patch.object(fetch_company_favicon, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                Company.all_objects.create(team=self.team, name='Acme', website='https://acme.com')

        mock_delay.assert_not_called()


class SendTaskRemindersTest(TestCase):

    def setUp(self):
        """Setup test data"""
        self.team = Team.objects.create(name='Sales')
        self.rep = User.objects.create_user(email='rep@test.com', password='testpass123')
        self.manager = User.objects.create_user(email='manager@test.com', password='testpass123')
        self.former = User.objects.create_user(email='former@test.com', password='testpass123', is_active=False)

        soon = timezone.now() + timedelta(hours=2)
        with team_context(self.team):
            self.due_soon = Task.objects.create(title='Send proposal', due_date=soon)
            self.due_later = Task.objects.create(title='Quarterly review', due_date=timezone.now() + timedelta(days=5))
            self.done = Task.objects.create(title='Done already', due_date=soon, status='completed')

        self.due_soon.assignees.add(self.rep, self.manager, self.former)
        self.due_later.assignees.add(self.rep)
        self.done.assignees.add(self.rep)

    def test_reminds_active_assignees_once(self):
        with self.assertLogs('apps.crm.tasks', level='INFO'):
            result = send_task_reminders()

        self.assertEqual(result, '2 task reminders sent.')
        self.assertEqual(sorted(message.to[0] for message in mail.outbox), ['manager@test.com', 'rep@test.com'])
        self.assertEqual(mail.outbox[0].subject, 'Reminder: Send proposal')
        self.assertIn('Send proposal', mail.outbox[0].body)
        self.due_soon.refresh_from_db()
        self.assertIsNotNone(self.due_soon.reminded_at)

        self.assertEqual(send_task_reminders(), '0 task reminders sent.')

    def test_email_notifications_off_skipped(self):
        self.manager.profile.email_notifications = False
        self.manager.profile.save()

        self.assertEqual(send_task_reminders(), '1 task reminders sent.')
        self.assertEqual([message.to for message in mail.outbox], [['rep@test.com']])

    def test_send_failure_not_counted(self):
        with mock.patch('apps.crm.tasks.send_mail', side_effect=OSError('connection refused')):
            with self.assertLogs('apps.crm.tasks', level='ERROR'):
                self.assertEqual(send_task_reminders(), '0 task reminders sent.')

        self.due_soon.refresh_from_db()
        self.assertIsNotNone(self.due_soon.reminded_at)

    def test_future_and_completed_tasks_skipped(self):
        send_task_reminders()

        self.due_later.refresh_from_db()
        self.done.refresh_from_db()
        self.assertIsNone(self.due_later.reminded_at)
        self.assertIsNone(self.done.reminded_at)
