# Models:
# 1. User - Custom user model (replaces Django's default)
# 2. UserProfile - Extended user information
# 3. Permission / Role / RoleAssignment - team-scoped permission roles


from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin, BaseUserManager
from django.db import models
from django.utils import timezone
from django.core.validators import RegexValidator
from django.utils.translation import gettext_lazy as _



# USER MANAGER (handles user creation)
class UserManager(BaseUserManager):
    """
    Custom user manager for User model

    Provides methods to:
    - Create regular users
    - Create superusers (admins)
    - Handle email-based authentication
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a regular user

        Args:
            email (str): User's email address (required)
            password (str): User's password (required)
            **extra_fields: Additional fields (first_name, last_name, etc.)

        Returns:
            User: The created user object

        Raises:
            ValueError: If email is not provided

        Example:
            user = User.objects.create_user(
                email='rep@acme.test',
                password='securepass123',
                first_name='Sara',
                last_name='Khan',
            )
        """
        if not email:
            raise ValueError(_('Users must have an email address'))

        # Normalize email (convert domain to lowercase)
        email = self.normalize_email(email)

        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)

        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)

        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create and save a superuser (admin)

        Superusers pass every permission check, in every team
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_('Superuser must have is_staff=True'))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_('Superuser must have is_superuser=True'))

        return self.create_user(email, password, **extra_fields)



# USER MODEL
class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model for TeamCRM

    Features:
    - Email-based authentication (no username)
    - Belongs to any number of teams (TeamMembership)
    - Remembers the team last worked in (current_team)
    """

    # Email as primary identifier (instead of username)
    email = models.EmailField(_('email address'),unique=True,max_length=255,db_index=True,help_text=_('Required. Used for login.'))
    first_name = models.CharField(_('first name'),max_length=50,blank=True,help_text=_('User\'s first name'))
    last_name = models.CharField(_('last name'),max_length=50,blank=True,help_text=_('User\'s last name'))

    # Phone validator (accepts: +201234567890, 01234567890, etc.)
    phone_validator = RegexValidator(regex=r'^\+?1?\d{9,15}$',message=_('Phone number must be entered in the format: +999999999. Up to 15 digits allowed.'))
    phone = models.CharField(_('phone number'),validators=[phone_validator],max_length=17,blank=True,null=True,help_text=_('Contact phone number (e.g., +201234567890)'))

    # TEAMS (Multi-tenancy)
    current_team = models.ForeignKey('core.Team',on_delete=models.SET_NULL,related_name='current_users',
                   null=True,blank=True,verbose_name=_('current team'),help_text=_('Team the user last switched to'))

    avatar = models.ImageField(_('profile picture'),upload_to='avatars/%Y/%m/', blank=True,null=True,help_text=_('Profile picture (recommended: 300x300px, max 2MB)'))
    job_title = models.CharField(_('job title'),max_length=100,blank=True,help_text=_('e.g., Sales Manager, Account Executive'))

    is_active = models.BooleanField(_('active'), default=True, help_text=_('Designates whether this user should be treated as active. Unselect this instead of deleting accounts.'))
    is_staff = models.BooleanField(_('staff status'), default=False,help_text=_('Designates whether the user can log into admin site.'))
    date_joined = models.DateTimeField(_('date joined'), default=timezone.now,help_text=_('Date when user account was created'))
    updated_at = models.DateTimeField(_('updated at'), auto_now=True, help_text=_('Last time user profile was updated'))

    # MANAGER & SETTINGS
    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-date_joined']  # Newest first
        indexes = [
            models.Index(fields=['email']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name} ({self.email})"
        return self.email

    # HELPER METHODS
    def get_full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        elif self.first_name:
            return self.first_name
        return self.email

    def get_short_name(self):

        return self.first_name if self.first_name else self.email

    def get_initials(self):
        """
        Get user's initials
        Returns:
            str: First letter of first name + first letter of last name
        """
        if self.first_name and self.last_name:
            return f"{self.first_name[0]}{self.last_name[0]}".upper()
        elif self.first_name:
            return self.first_name[0].upper()
        return self.email[0].upper()

    # TEAM HELPERS
    def belongs_to_team(self, team):
        if team is None:
            return False
        return self.team_memberships.filter(team=team).exists()

    def team_role(self, team):
        """Membership role in team ('owner', 'admin', ...) or None"""
        membership = self.team_memberships.filter(team=team).first()
        return membership.role if membership else None

    def switch_team(self, team):
        """
        Make team the current team

        Returns:
            bool: False if the user is not a member of team
        """
        if not self.belongs_to_team(team):
            return False
        if self.current_team_id != team.pk:
            self.current_team = team
            self.save(update_fields=['current_team', 'updated_at'])
        return True



# USER PROFILE MODEL (Extended Information)

class UserProfile(models.Model):
    """
    Extended user profile information

    Automatically created when User is created (via signals)
    """

    THEME_CHOICES = [('light', _('Light')), ('dark', _('Dark')), ('system', _('System'))]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile', verbose_name=_('user'),help_text=_('The user this profile belongs to'))
    bio = models.TextField(_('biography'), max_length=500, blank=True, help_text=_('Short bio or description (max 500 characters)'))
    email_notifications = models.BooleanField(_('email notifications'), default=True, help_text=_('Receive notifications via email'))
    theme = models.CharField(_('theme'), max_length=20, choices=THEME_CHOICES, default='light', help_text=_('UI theme preference'))
    language = models.CharField(_('language'), max_length=10, choices=settings.LANGUAGES,
                                default='en', help_text=_('Preferred language'))
    timezone = models.CharField(_('timezone'), max_length=64, blank=True, help_text=_('e.g., Europe/Berlin; empty uses the site default'))
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)


    class Meta:
        verbose_name = _('user profile')
        verbose_name_plural = _('user profiles')

    def __str__(self):
        return f"Profile for: {self.user.get_full_name()}"

    def is_complete(self):
        return all([
            self.bio,
            self.user.phone,
            self.user.job_title,
        ])



# PERMISSIONS (team scoped roles)

class Permission(models.Model):
    """A single ability, named `resource.action` (e.g. companies.update)"""

    name = models.CharField(_('name'), max_length=150)
    guard = models.CharField(_('guard'), max_length=50, default='web')
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('permission')
        verbose_name_plural = _('permissions')
        ordering = ['name']
        unique_together = ['name', 'guard']

    def __str__(self):
        return self.name


class Role(models.Model):
    """Named bundle of permissions, defined per team"""

    team = models.ForeignKey('core.Team', on_delete=models.CASCADE, related_name='roles')
    name = models.CharField(_('name'), max_length=100)
    guard = models.CharField(_('guard'), max_length=50, default='web')
    label = models.CharField(_('label'), max_length=150, blank=True)
    description = models.CharField(_('description'), max_length=255, blank=True)
    permissions = models.ManyToManyField(Permission, related_name='roles', blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('role')
        verbose_name_plural = _('roles')
        ordering = ['team', 'name']
        unique_together = ['team', 'name', 'guard']

    def __str__(self):
        return f"{self.label or self.name} ({self.team})"


class RoleAssignment(models.Model):

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='role_assignments')
    team = models.ForeignKey('core.Team', on_delete=models.CASCADE, related_name='role_assignments')
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='assignments')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('role assignment')
        verbose_name_plural = _('role assignments')
        unique_together = ['user', 'role', 'team']

    def __str__(self):
        return f"{self.user} is {self.role.name} in {self.team}"
