from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import urlparse

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey, GenericRelation
from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Max, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.crm_config import CrmConfig
from apps.core.tenancy import TeamOwnedModel, TeamScopedManager, TeamScopedQuerySet, get_current_user

CENTS = Decimal('0.01')


def money(value):
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class OwnedRecord(TeamOwnedModel):
    """
    Team record with an owner field

    With CRM['owner']['auto_assign_on_create'] on, a new record without an
    owner is owned by the acting user.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self._state.adding and self.owner_id is None and CrmConfig.auto_assign_owner():
            user = get_current_user()
            if user is not None and user.is_authenticated:
                self.owner = user
        super().save(*args, **kwargs)


class Company(OwnedRecord):

    name = models.CharField(max_length=200, help_text='Company name')
    website = models.URLField(max_length=255, blank=True, help_text='Public website, used for the favicon and duplicate checks')
    industry = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    revenue = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True, help_text='Annual revenue')
    employee_count = models.PositiveIntegerField(null=True, blank=True)
    favicon_url = models.URLField(max_length=500, blank=True, help_text='Filled in by the favicon job')

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_companies', help_text='Account owner')
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')

    notes = GenericRelation('crm.Note', related_query_name='company')

    class Meta:
        verbose_name = 'Company'
        verbose_name_plural = 'Companies'
        ordering = ['name']
        indexes = [
            models.Index(fields=['team', 'name']),
        ]

    def __str__(self):
        return self.name

    @property
    def domain(self):
        if not self.website:
            return None
        host = urlparse(self.website).hostname or self.website
        host = host.lower().strip()
        return host[4:] if host.startswith('www.') else host or None

    def would_create_cycle(self, parent_id):
        """True if making parent_id the parent would loop back to this company"""
        if parent_id is None or self.pk is None:
            return False
        visited = set()
        current = parent_id
        while current is not None and current not in visited:
            if current == self.pk:
                return True
            visited.add(current)
            current = Company.all_objects.filter(pk=current).values_list('parent_id', flat=True).first()
        return False

    def clean(self):
        if self.would_create_cycle(self.parent_id):
            raise ValidationError({'parent': _('A company cannot be its own ancestor.')})


class People(OwnedRecord):
    """Contact person"""

    name = models.CharField(max_length=200)
    company = models.ForeignKey(Company, on_delete=models.SET_NULL, null=True, blank=True, related_name='people')
    primary_email = models.EmailField(blank=True, db_index=True)
    phone_mobile = models.CharField(max_length=30, blank=True)
    job_title = models.CharField(max_length=100, blank=True)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_people')

    notes = GenericRelation('crm.Note', related_query_name='person')

    class Meta:
        verbose_name = 'Person'
        verbose_name_plural = 'People'
        ordering = ['name']

    def __str__(self):
        return self.name


class Account(OwnedRecord):

    TYPE_CHOICES = [
        ('customer', 'Customer'),
        ('prospect', 'Prospect'),
        ('partner', 'Partner'),
        ('vendor', 'Vendor'),
    ]

    name = models.CharField(max_length=200)
    account_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='prospect', db_index=True)
    company = models.ForeignKey(Company, on_delete=models.SET_NULL, null=True, blank=True, related_name='accounts')
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_accounts')
    currency = models.CharField(max_length=3, blank=True)

    class Meta:
        verbose_name = 'Account'
        verbose_name_plural = 'Accounts'
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.currency:
            self.currency = CrmConfig.default_currency()
        super().save(*args, **kwargs)

    def clean(self):
        if self.parent_id is not None and self.parent_id == self.pk:
            raise ValidationError({'parent': _('An account cannot be its own parent.')})


class Opportunity(OwnedRecord):

    STAGE_CHOICES = [
        ('prospecting', 'Prospecting'),
        ('qualification', 'Qualification'),
        ('proposal', 'Proposal'),
        ('negotiation', 'Negotiation'),
        ('closed_won', 'Closed Won'),
        ('closed_lost', 'Closed Lost'),
    ]
    CLOSED_STAGES = ('closed_won', 'closed_lost')

    name = models.CharField(max_length=200)
    company = models.ForeignKey(Company, on_delete=models.SET_NULL, null=True, blank=True, related_name='opportunities')
    contact = models.ForeignKey(People, on_delete=models.SET_NULL, null=True, blank=True, related_name='opportunities')
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_opportunities')

    stage = models.CharField(max_length=20, choices=STAGE_CHOICES, blank=True, db_index=True)
    amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    probability = models.PositiveSmallIntegerField(null=True, blank=True, help_text='Win probability in percent (0-100)')
    close_date = models.DateField(null=True, blank=True, help_text='Expected close date')
    closed_at = models.DateTimeField(null=True, blank=True)
    close_reason = models.CharField(max_length=255, blank=True)

    notes = GenericRelation('crm.Note', related_query_name='opportunity')

    class Meta:
        verbose_name = 'Opportunity'
        verbose_name_plural = 'Opportunities'
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        defaults = CrmConfig.opportunity_defaults()
        if not self.stage:
            self.stage = defaults['stage']
        if self.probability is None:
            self.probability = defaults['probability']
        super().save(*args, **kwargs)

    @property
    def is_closed(self):
        return self.stage in self.CLOSED_STAGES

    def weighted_amount(self):
        return money(self.amount * Decimal(self.probability or 0) / 100)

    def mark_won(self, reason=''):
        self._close('closed_won', 100, reason)

    def mark_lost(self, reason=''):
        if not reason and CrmConfig.opportunity_defaults()['require_close_reason']:
            raise ValidationError({'close_reason': _('A reason is required to close an opportunity as lost.')})
        self._close('closed_lost', 0, reason)

    def _close(self, stage, probability, reason):
        self.stage = stage
        self.probability = probability
        self.close_reason = reason
        self.closed_at = timezone.now()
        self.save(update_fields=['stage', 'probability', 'close_reason', 'closed_at', 'updated_at'])


class Order(TeamOwnedModel):

    STATUS_DRAFT = 'draft'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_FULFILLED = 'fulfilled'
    STATUS_INVOICED = 'invoiced'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_FULFILLED, 'Fulfilled'),
        (STATUS_INVOICED, 'Invoiced'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    FULFILLMENT_PENDING = 'pending'
    FULFILLMENT_PARTIAL = 'partial'
    FULFILLMENT_FULFILLED = 'fulfilled'

    FULFILLMENT_CHOICES = [
        (FULFILLMENT_PENDING, 'Pending'),
        (FULFILLMENT_PARTIAL, 'Partially fulfilled'),
        (FULFILLMENT_FULFILLED, 'Fulfilled'),
    ]

    number = models.CharField(max_length=30, blank=True, help_text='ORD-YYYY-NNNNN, assigned on first save')
    sequence = models.PositiveIntegerField(null=True, blank=True, help_text='Per team, per year')

    company = models.ForeignKey(Company, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    contact = models.ForeignKey(People, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    opportunity = models.ForeignKey(Opportunity, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    fulfillment_status = models.CharField(max_length=20, choices=FULFILLMENT_CHOICES, default=FULFILLMENT_PENDING)
    currency = models.CharField(max_length=3, blank=True)

    # Totals
    subtotal = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    discount_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    tax_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    invoiced_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    paid_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    balance_due = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    ordered_at = models.DateField(null=True, blank=True)
    invoiced_at = models.DateTimeField(null=True, blank=True)
    fulfilled_at = models.DateTimeField(null=True, blank=True)

    notes = GenericRelation('crm.Note', related_query_name='order')

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['team', 'number'], condition=~Q(number=''), name='unique_order_number_per_team'),
        ]

    def __str__(self):
        return self.number or f"Order #{self.pk}"

    def save(self, *args, **kwargs):
        self.ensure_team()
        if not self.currency:
            self.currency = CrmConfig.default_currency()
        if self.ordered_at is None:
            self.ordered_at = timezone.localdate()
        self.register_number_if_missing()
        super().save(*args, **kwargs)

    def register_number_if_missing(self):
        if self.team_id is None:
            return
        if self.number and self.sequence is not None:
            return

        year = (self.ordered_at or timezone.localdate()).year
        last = Order.all_objects.filter(team_id=self.team_id, ordered_at__year=year) \
            .exclude(pk=self.pk).aggregate(last=Max('sequence'))['last']
        self.sequence = (last or 0) + 1
        self.number = f"ORD-{year}-{self.sequence:05d}"

    def _fulfillment_status(self, items):
        if not items:
            return self.FULFILLMENT_PENDING

        ordered = sum((item.quantity for item in items), Decimal('0'))
        fulfilled = sum((min(item.fulfilled_quantity, item.quantity) for item in items), Decimal('0'))

        if fulfilled <= 0:
            return self.FULFILLMENT_PENDING
        if abs(fulfilled - ordered) < Decimal('0.0001'):
            return self.FULFILLMENT_FULFILLED
        return self.FULFILLMENT_PARTIAL

    def sync_financials(self):
        """
        Recalculate totals, fulfillment status and balance from the line items

        Status moves to fulfilled once every line is fulfilled, otherwise to
        invoiced once an invoice was recorded. Cancelled orders keep their
        status.
        """
        items = list(self.line_items.all())

        subtotal = sum((money(item.quantity * item.unit_price) for item in items), Decimal('0'))
        tax_total = sum((money(item.quantity * item.unit_price * item.tax_rate / 100) for item in items), Decimal('0'))
        discount_total = money(self.discount_total or 0)
        total = max(money(subtotal - discount_total + tax_total), Decimal('0.00'))

        invoiced = money(self.invoiced_total) if self.invoiced_at else Decimal('0.00')
        balance = max(money((invoiced or total) - money(self.paid_total or 0)), Decimal('0.00'))

        previous_fulfillment = self.fulfillment_status or self.FULFILLMENT_PENDING
        fulfillment = self._fulfillment_status(items)

        status = self.status or self.STATUS_DRAFT
        if status != self.STATUS_CANCELLED and fulfillment == self.FULFILLMENT_FULFILLED:
            status = self.STATUS_FULFILLED
        elif status != self.STATUS_CANCELLED and self.invoiced_at:
            status = self.STATUS_INVOICED

        if fulfillment == self.FULFILLMENT_FULFILLED and previous_fulfillment != self.FULFILLMENT_FULFILLED:
            self.fulfilled_at = self.fulfilled_at or timezone.now()

        self.subtotal = money(subtotal)
        self.tax_total = money(tax_total)
        self.discount_total = discount_total
        self.total = total
        self.invoiced_total = invoiced or total
        self.balance_due = balance
        self.fulfillment_status = fulfillment
        self.status = status

        self.save(update_fields=[
            'subtotal', 'tax_total', 'discount_total', 'total', 'invoiced_total',
            'balance_due', 'fulfillment_status', 'fulfilled_at', 'status', 'updated_at',
        ])

    def mark_invoiced(self, amount):
        self.status = self.STATUS_INVOICED
        self.invoiced_total = money(amount)
        self.invoiced_at = self.invoiced_at or timezone.now()
        self.save(update_fields=['status', 'invoiced_total', 'invoiced_at', 'updated_at'])
        self.sync_financials()

    def record_payment(self, amount):
        self.paid_total = money(self.paid_total + Decimal(str(amount)))
        self.save(update_fields=['paid_total', 'updated_at'])
        self.sync_financials()


class OrderLineItem(models.Model):

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='line_items')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'), help_text='Percent')
    fulfilled_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = 'Order line item'
        verbose_name_plural = 'Order line items'
        ordering = ['sort_order', 'pk']

    def __str__(self):
        return f"{self.description} x {self.quantity}"

    @property
    def line_total(self):
        return money(self.quantity * self.unit_price)


class Task(TeamOwnedModel):

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, blank=True, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, blank=True)

    due_date = models.DateTimeField(null=True, blank=True, db_index=True)
    reminder_at = models.DateTimeField(null=True, blank=True, db_index=True, help_text='When to remind the assignees')
    reminded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    creator = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_tasks')
    assignees = models.ManyToManyField(settings.AUTH_USER_MODEL, related_name='crm_tasks', blank=True)
    parent = models.ForeignKey('self', on_delete=models.CASCADE, null=True, blank=True, related_name='subtasks')

    # Related records
    company = models.ForeignKey(Company, on_delete=models.SET_NULL, null=True, blank=True, related_name='tasks')
    contact = models.ForeignKey(People, on_delete=models.SET_NULL, null=True, blank=True, related_name='tasks')
    opportunity = models.ForeignKey(Opportunity, on_delete=models.SET_NULL, null=True, blank=True, related_name='tasks')
    lead = models.ForeignKey('leads.Lead', on_delete=models.SET_NULL, null=True, blank=True, related_name='tasks')

    notes = GenericRelation('crm.Note', related_query_name='task')

    class Meta:
        verbose_name = 'Task'
        verbose_name_plural = 'Tasks'
        ordering = ['due_date', '-created_at']
        indexes = [
            models.Index(fields=['team', 'status']),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        defaults = CrmConfig.task_defaults()
        if not self.status:
            self.status = defaults['status']
        if not self.priority:
            self.priority = defaults['priority']
        if self.due_date and self.reminder_at is None and defaults['reminder_hours'] > 0:
            self.reminder_at = self.due_date - timedelta(hours=defaults['reminder_hours'])
        super().save(*args, **kwargs)

    def is_completed(self):
        return self.status == 'completed'

    def is_overdue(self):
        if not self.due_date or self.status in ('completed', 'cancelled'):
            return False
        return self.due_date < timezone.now()

    def mark_completed(self):
        self.status = 'completed'
        self.completed_at = timezone.now()
        self.save(update_fields=['status', 'completed_at', 'updated_at'])

    def percent_complete(self):
        """Share of completed subtasks; leaf tasks are 0 or 100"""
        subtasks = list(Task.all_objects.filter(parent=self))
        if not subtasks:
            return 100.0 if self.is_completed() else 0.0
        done = sum(1 for task in subtasks if task.is_completed())
        return round(done / len(subtasks) * 100, 2)


class NoteQuerySet(TeamScopedQuerySet):

    def visible_to(self, user):
        """Private notes are only visible to their creator"""
        return self.filter(~Q(visibility=Note.VISIBILITY_PRIVATE) | Q(creator=user))

    def for_record(self, record):
        content_type = ContentType.objects.get_for_model(record)
        return self.filter(content_type=content_type, object_id=record.pk)


class NoteManager(TeamScopedManager.from_queryset(NoteQuerySet)):
    pass


class Note(TeamOwnedModel):

    VISIBILITY_INTERNAL = 'internal'
    VISIBILITY_PRIVATE = 'private'
    VISIBILITY_EXTERNAL = 'external'

    VISIBILITY_CHOICES = [
        (VISIBILITY_INTERNAL, 'Internal'),
        (VISIBILITY_PRIVATE, 'Private'),
        (VISIBILITY_EXTERNAL, 'External'),
    ]

    CATEGORY_CHOICES = [
        ('general', 'General'),
        ('call', 'Call'),
        ('meeting', 'Meeting'),
        ('email', 'Email'),
        ('follow_up', 'Follow-up'),
    ]

    title = models.CharField(max_length=255, blank=True)
    body = models.TextField()
    visibility = models.CharField(max_length=20, choices=VISIBILITY_CHOICES, default=VISIBILITY_INTERNAL)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='general')
    creator = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='crm_notes')

    # Noteable record: company, person, opportunity, lead, order or task
    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE, null=True, blank=True)
    object_id = models.PositiveBigIntegerField(null=True, blank=True)
    target = GenericForeignKey('content_type', 'object_id')

    objects = NoteManager()
    all_objects = models.Manager()

    class Meta:
        verbose_name = 'Note'
        verbose_name_plural = 'Notes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
        ]

    def __str__(self):
        preview = self.body[:50] + '...' if len(self.body) > 50 else self.body
        return self.title or preview

    def is_private(self):
        return self.visibility == self.VISIBILITY_PRIVATE

    def is_external(self):
        return self.visibility == self.VISIBILITY_EXTERNAL

    def category_label(self):
        return self.get_category_display() if self.category else 'General'
