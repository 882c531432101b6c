import hashlib
import re

from django.conf import settings
from django.contrib.contenttypes.fields import GenericRelation
from django.db import models
from django.utils import timezone
from taggit.managers import TaggableManager

from apps.core.crm_config import CrmConfig
from apps.core.tenancy import TeamOwnedModel


class LeadAlreadyConverted(ValueError):
    """Raised when converting a lead that was converted before."""


def duplicate_hash_for(email=None, phone=None):
    """sha256 of the normalized email, or of the phone digits when there is no email"""
    key = None
    if email and email.strip():
        key = f"email:{email.strip().lower()}"
    elif phone:
        digits = re.sub(r'\D', '', phone)
        if digits:
            key = f"phone:{digits}"
    if key is None:
        return ''
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


class Lead(TeamOwnedModel):

    # Status choices
    STATUS_CHOICES = [
        ('new', 'New'),
        ('contacted', 'Contacted'),
        ('qualified', 'Qualified'),
        ('unqualified', 'Unqualified'),
        ('converted', 'Converted'),
        ('lost', 'Lost'),
    ]
    OPEN_STATUSES = ['new', 'contacted', 'qualified']

    # Priority choices
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    STRATEGY_CHOICES = [
        ('manual', 'Manual'),
        ('round_robin', 'Round Robin'),
        ('weighted', 'Weighted'),
        ('territory', 'Territory'),
        ('rule_based', 'Rule Based'),
    ]

    # Basic Information
    name = models.CharField(max_length=200, help_text="Lead's full name")
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True, db_index=True, help_text='Email address')
    phone = models.CharField(max_length=40, blank=True, db_index=True, help_text='Phone number in international format')
    company_name = models.CharField(max_length=200, blank=True, help_text='Company the lead works for (free text)')
    job_title = models.CharField(max_length=100, blank=True)

    # Lead Classification
    source = models.CharField(max_length=50, blank=True, help_text='Where did this lead come from?')
    campaign = models.CharField(max_length=100, blank=True)
    message = models.TextField(blank=True, help_text='Message sent with the web form')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, blank=True, db_index=True, help_text='Current internal status')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium', help_text='How urgent is this lead?')
    score = models.PositiveSmallIntegerField(default=0, help_text='Lead score (0-100)')

    # Assignment & Management
    assignment_strategy = models.CharField(max_length=20, choices=STRATEGY_CHOICES, default='manual')
    assigned_to = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_leads', db_index=True, help_text='Which user is responsible for this lead')
    assigned_at = models.DateTimeField(null=True, blank=True)
    territory = models.ForeignKey('Territory', on_delete=models.SET_NULL, null=True, blank=True, related_name='leads', help_text='Territory whose rules matched this lead')
    next_follow_up = models.DateTimeField(null=True, blank=True, db_index=True, help_text='When is the next follow-up scheduled?')

    # Web form
    consent_marketing = models.BooleanField(default=False)
    consent_data_processing = models.BooleanField(default=False)
    web_form_payload = models.JSONField(null=True, blank=True, help_text='Raw submitted form data')

    # Duplicates
    duplicate_hash = models.CharField(max_length=64, blank=True, db_index=True)
    duplicate_of = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='duplicates')
    potential_duplicates = models.JSONField(default=list, blank=True, help_text='IDs of leads sharing the duplicate hash')

    # Conversion
    converted_at = models.DateTimeField(null=True, blank=True)
    converted_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='converted_leads')
    converted_company = models.ForeignKey('crm.Company', on_delete=models.SET_NULL, null=True, blank=True, related_name='converted_leads')
    converted_contact = models.ForeignKey('crm.People', on_delete=models.SET_NULL, null=True, blank=True, related_name='converted_leads')
    converted_opportunity = models.ForeignKey('crm.Opportunity', on_delete=models.SET_NULL, null=True, blank=True, related_name='converted_leads')

    tags = TaggableManager(blank=True)
    notes = GenericRelation('crm.Note', related_query_name='lead')

    class Meta:
        verbose_name = 'Lead'
        verbose_name_plural = 'Leads'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['team', 'status']),
            models.Index(fields=['team', 'assigned_to']),
            models.Index(fields=['next_follow_up']),
        ]

    def __str__(self):
        """String representation: Name (email) - Status"""
        contact = self.email or self.phone
        return f"{self.name} ({contact}) - {self.get_status_display()}"

    def save(self, *args, **kwargs):
        if not self.name:
            self.name = f"{self.first_name} {self.last_name}".strip()
        defaults = CrmConfig.lead_defaults()
        if not self.status:
            self.status = defaults['status']
        if not self.source:
            self.source = defaults['source']
        self.duplicate_hash = duplicate_hash_for(self.email, self.phone)
        super().save(*args, **kwargs)

    def get_full_name(self):
        """Returns the lead's full name"""
        return self.name

    def get_initials(self):
        """Returns first letters for avatar: 'Sara Khan' → 'SK'"""
        parts = self.name.split()
        if len(parts) >= 2:
            return f"{parts[0][0]}{parts[1][0]}".upper()
        elif len(parts) == 1:
            return parts[0][0].upper()
        return "?"

    def is_converted(self):
        return self.converted_at is not None or self.status == 'converted'

    def can_be_assigned(self):
        """Check if lead can be assigned (not converted/lost)"""
        return self.status not in ['converted', 'lost']

    def assign_to(self, user, assigned_by=None):
        """
        Assign lead to user
        Updates assigned_to / assigned_at and creates an activity log entry
        """
        if not self.can_be_assigned():
            return False

        self.assigned_to = user
        self.assigned_at = timezone.now() if user else None
        self.save()

        Activity.objects.create(
            lead=self,
            user=assigned_by,
            activity_type='assigned',
            description=f'Lead assigned to {user.get_full_name()}' if user else 'Lead assignment removed'
        )

        return True

    def change_status(self, new_status, user=None):

        old_status = self.status
        self.status = new_status
        self.save()

        status_display = dict(self.STATUS_CHOICES).get(new_status, new_status)
        old_status_display = dict(self.STATUS_CHOICES).get(old_status, old_status)
        Activity.objects.create(
            lead=self,
            user=user,
            activity_type='status_changed',
            description=f'Status changed from "{old_status_display}" to "{status_display}"'
        )

    def add_note(self, content, user, visibility='internal', title=''):
        from apps.crm.models import Note

        note = Note.objects.create(
            team_id=self.team_id,
            target=self,
            creator=user,
            title=title,
            body=content,
            visibility=visibility,
        )

        Activity.objects.create(
            lead=self,
            user=user,
            activity_type='note_added',
            description='Added a note'
        )

        return note

    def find_potential_duplicates(self):
        """Other leads of the same team with the same duplicate hash, oldest first"""
        if not self.duplicate_hash:
            return Lead.all_objects.none()
        return Lead.all_objects.filter(team_id=self.team_id, duplicate_hash=self.duplicate_hash) \
            .exclude(pk=self.pk).order_by('created_at', 'pk')

    def flag_duplicates(self):
        """Store potential duplicates; returns True when any were found"""
        ids = list(self.find_potential_duplicates().values_list('pk', flat=True))
        self.potential_duplicates = ids
        self.duplicate_of_id = ids[0] if ids else None
        self.save(update_fields=['potential_duplicates', 'duplicate_of', 'duplicate_hash', 'updated_at'])

        if ids:
            Activity.objects.create(
                lead=self,
                user=None,
                activity_type='duplicate_detected',
                description=f'Possible duplicate of {len(ids)} existing lead{"s" if len(ids) > 1 else ""}'
            )
        return bool(ids)

    def get_activities(self):
        """Get all activities for this lead (ordered newest first)"""
        return self.activities.all().select_related('user').order_by('-created_at')


class Activity(models.Model):

    # Activity type choices
    ACTIVITY_TYPE_CHOICES = [
        ('created', 'Created'),
        ('assigned', 'Assigned'),
        ('status_changed', 'Status Changed'),
        ('note_added', 'Note Added'),
        ('converted', 'Converted'),
        ('follow_up_reminder', 'Follow-up Reminder'),
        ('duplicate_detected', 'Duplicate Detected'),
    ]

    lead = models.ForeignKey(Lead, on_delete=models.CASCADE, related_name='activities', help_text='Which lead this activity is for')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='lead_activities', help_text='Who performed this action')
    activity_type = models.CharField(max_length=30, choices=ACTIVITY_TYPE_CHOICES, help_text='Type of activity/action')
    description = models.TextField(help_text='Human-readable description of what happened')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True, help_text='When did this activity occur')

    class Meta:
        verbose_name = 'Activity'
        verbose_name_plural = 'Activities'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['lead', '-created_at']),
            models.Index(fields=['user', '-created_at']),
        ]

    def __str__(self):
        """String representation"""
        user_name = self.user.get_full_name() if self.user else 'System'
        return f"{user_name}: {self.description}"


class Territory(TeamOwnedModel):
    """
    Sales territory of a team

    assignment_rules is a list of {"field", "operator", "value"} conditions
    on lead attributes; a lead matches when every condition holds.
    Operators: = != > < >= <= contains starts_with ends_with in
    """

    name = models.CharField(max_length=150)
    code = models.CharField(max_length=50, blank=True)
    description = models.TextField(blank=True)
    assignment_rules = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    members = models.ManyToManyField(settings.AUTH_USER_MODEL, through='TerritoryMember', related_name='territories', blank=True)

    class Meta:
        verbose_name = 'Territory'
        verbose_name_plural = 'Territories'
        ordering = ['name', 'pk']

    def __str__(self):
        return self.name

    def matches(self, record):
        """True when record satisfies every assignment rule (never for an empty rule list)"""
        if not self.assignment_rules:
            return False

        for rule in self.assignment_rules:
            field = rule.get('field')
            if not field or not hasattr(record, field):
                continue
            if not _rule_holds(getattr(record, field), rule.get('operator', '='), rule.get('value')):
                return False
        return True

    def primary_member(self):
        """Primary member, else the first member; inactive users and non team members are skipped"""
        assignment = self.assignments.filter(user__is_active=True, user__team_memberships__team_id=self.team_id) \
            .select_related('user').order_by('-is_primary', 'pk').first()
        return assignment.user if assignment else None


def _rule_holds(actual, operator, expected):
    try:
        if operator == '=':
            return actual == expected
        if operator == '!=':
            return actual != expected
        if operator == '>':
            return actual > expected
        if operator == '<':
            return actual < expected
        if operator == '>=':
            return actual >= expected
        if operator == '<=':
            return actual <= expected
    except TypeError:
        return False
    if operator == 'contains':
        return str(expected) in str(actual)
    if operator == 'starts_with':
        return str(actual).startswith(str(expected))
    if operator == 'ends_with':
        return str(actual).endswith(str(expected))
    if operator == 'in':
        values = expected if isinstance(expected, (list, tuple)) else [expected]
        return actual in values
    return False


class TerritoryMember(models.Model):

    territory = models.ForeignKey(Territory, on_delete=models.CASCADE, related_name='assignments')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='territory_assignments')
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Territory member'
        verbose_name_plural = 'Territory members'
        unique_together = ['territory', 'user']

    def __str__(self):
        return f"{self.user} in {self.territory}"
