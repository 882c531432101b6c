import logging

from django.contrib.auth import get_user_model
from django.db.models.signals import post_delete, post_save, pre_delete
from django.dispatch import receiver

from apps.core.models import TeamMembership
from .models import UserProfile
from .permissions import PermissionService


User = get_user_model()
logger = logging.getLogger(__name__)


# SIGNAL 1: AUTO-CREATE USER PROFILE
@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    if created:
        UserProfile.objects.get_or_create(user=instance)
        logger.debug(f"Profile created for user: {instance.email}")


# SIGNAL 2: CLEANUP ON USER DELETION
@receiver(pre_delete, sender=User)
def delete_user_cleanup(sender, instance, **kwargs):
    # Delete avatar file from storage (if exists)
    if instance.avatar:
        try:
            instance.avatar.delete(save=False)
        except OSError as e:
            logger.warning(f"Error deleting avatar of {instance.email}: {e}")

    logger.info(f"User deleted: {instance.email} ({instance.get_full_name()})")


# SIGNAL 3: KEEP PERMISSION ROLES IN SYNC WITH MEMBERSHIPS
@receiver(post_save, sender=TeamMembership)
def sync_membership_roles(sender, instance, **kwargs):
    PermissionService().sync_membership(instance.user, instance.team, instance.role)


@receiver(post_delete, sender=TeamMembership)
def remove_membership_roles(sender, instance, **kwargs):
    PermissionService().remove_membership(instance.user, instance.team)

    # A user removed from their current team falls back to another one
    user = instance.user
    if user.current_team_id == instance.team_id:
        user.current_team = None
        user.save(update_fields=['current_team', 'updated_at'])
