from django.conf import settings
from django.db import models
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _


class Team(models.Model):
    """
    Tenant boundary of the CRM

    Every scoped record (company, lead, order...) belongs to exactly one team
    and is only visible inside that team's query scope.
    """

    name = models.CharField(max_length=200, help_text="Team name")
    slug = models.SlugField(max_length=200, unique=True, help_text="URL-friendly name (auto-generated)")
    personal_team = models.BooleanField(default=False, help_text="Private team created for a single user")
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name='owned_teams', help_text="User who created the team")
    members = models.ManyToManyField(settings.AUTH_USER_MODEL, through='TeamMembership', related_name='teams', blank=True)

    is_active = models.BooleanField(default=True, help_text="Is team active?")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("team")
        verbose_name_plural = _("teams")
        ordering = ['name']
        indexes = [
            models.Index(fields=['slug']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._unique_slug()
        super().save(*args, **kwargs)

    def _unique_slug(self):
        base = slugify(self.name) or 'team'
        slug, counter = base, 2
        while Team.objects.filter(slug=slug).exclude(pk=self.pk).exists():
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    def has_member(self, user):
        return self.memberships.filter(user=user).exists()

    def add_member(self, user, role='member'):
        """Add (or update) a member; role sync happens in the membership signal."""
        membership, created = TeamMembership.objects.get_or_create(
            team=self, user=user, defaults={'role': role}
        )
        if not created and membership.role != role:
            membership.role = role
            membership.save(update_fields=['role', 'updated_at'])
        return membership

    def remove_member(self, user):
        # Delete one by one so post_delete fires for each membership
        for membership in self.memberships.filter(user=user):
            membership.delete()

    def get_active_members_count(self):
        return self.members.filter(is_active=True).count()


class TeamMembership(models.Model):

    ROLE_OWNER = 'owner'
    ROLE_ADMIN = 'admin'
    ROLE_EDITOR = 'editor'
    ROLE_MEMBER = 'member'

    ROLE_CHOICES = [
        (ROLE_OWNER, _('Owner')),
        (ROLE_ADMIN, _('Administrator')),
        (ROLE_EDITOR, _('Editor')),
        (ROLE_MEMBER, _('Member')),
    ]

    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name='memberships')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='team_memberships')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_MEMBER,
                            help_text="Team role, mapped onto a permission role")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("team membership")
        verbose_name_plural = _("team memberships")
        unique_together = ['team', 'user']
        ordering = ['team', 'created_at']

    def __str__(self):
        return f"{self.user} @ {self.team} ({self.role})"


class FeatureFlag(models.Model):
    """
    Boolean toggle for optional behaviour

    team=None is a global override; a team row overrides the global one.
    """

    key = models.SlugField(max_length=100, help_text="Feature key (e.g. web_leads)")
    team = models.ForeignKey(Team, on_delete=models.CASCADE, null=True, blank=True, related_name='feature_flags')
    is_enabled = models.BooleanField(default=False)
    description = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("feature flag")
        verbose_name_plural = _("feature flags")
        ordering = ['key']
        constraints = [
            models.UniqueConstraint(fields=['key', 'team'], name='unique_feature_flag_per_team'),
            models.UniqueConstraint(fields=['key'], condition=models.Q(team__isnull=True),
                                    name='unique_global_feature_flag'),
        ]

    def __str__(self):
        scope = self.team.name if self.team_id else 'global'
        state = 'on' if self.is_enabled else 'off'
        return f"{self.key} [{scope}] {state}"


class Setting(models.Model):

    TYPE_CHOICES = [
        ('string', 'String'),
        ('integer', 'Integer'),
        ('float', 'Float'),
        ('boolean', 'Boolean'),
        ('array', 'Array'),
    ]

    key = models.CharField(max_length=150)
    team = models.ForeignKey(Team, on_delete=models.CASCADE, null=True, blank=True, related_name='settings')
    group = models.CharField(max_length=50, default='general', db_index=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='string')
    value = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("setting")
        verbose_name_plural = _("settings")
        ordering = ['group', 'key']
        constraints = [
            models.UniqueConstraint(fields=['key', 'team'], name='unique_setting_per_team'),
            models.UniqueConstraint(fields=['key'], condition=models.Q(team__isnull=True),
                                    name='unique_global_setting'),
        ]

    def __str__(self):
        return self.key

    def get_value(self):
        value = self.value
        if value is None:
            return None
        if self.type == 'integer':
            return int(value)
        if self.type == 'float':
            return float(value)
        if self.type == 'boolean':
            return bool(value)
        return value
