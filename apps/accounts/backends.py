"""
Authorization backend for team roles

    user.has_perm('companies.update')              # dotted permission, current team
    user.has_perm('update', company)               # ability + instance -> companies.update
    user.has_perm('view', Opportunity)             # ability + model class -> opportunities.view

The team is the record's team for instances, otherwise the active team
context, otherwise user.current_team. Members holding a super-admin role
(PERMISSION_DEFAULTS['super_admin_roles']) are granted everything in that team.
"""
import inspect

from django.contrib.auth.backends import BaseBackend
from django.db import models
from django.utils import translation
from django.utils.text import slugify

from apps.core.tenancy import get_current_team

from .permissions import PermissionService

ABILITY_MAP = {
    'view': 'view',
    'view_any': 'view',
    'viewAny': 'view',
    'add': 'create',
    'create': 'create',
    'change': 'update',
    'update': 'update',
    'delete': 'delete',
    'delete_any': 'delete',
    'deleteAny': 'delete',
    'restore': 'restore',
    'restore_any': 'restore',
    'restoreAny': 'restore',
    'force_delete': 'force-delete',
    'forceDelete': 'force-delete',
    'force_delete_any': 'force-delete',
    'forceDeleteAny': 'force-delete',
}


def resource_name(model):
    """Permission resource for a model class or instance: companies, people, ..."""
    if not inspect.isclass(model):
        model = type(model)
    explicit = getattr(model, 'permission_resource', None)
    if explicit:
        return explicit
    with translation.override('en'):
        return slugify(str(model._meta.verbose_name_plural))


def ability_to_permission(ability, obj):
    """Map a Django style ability plus a model to `resource.action`, or None"""
    action = ABILITY_MAP.get(ability)
    if action is None or obj is None:
        return None
    model = obj if inspect.isclass(obj) else type(obj)
    if not issubclass(model, models.Model):
        return None
    return f"{resource_name(model)}.{action}"


class TeamPermissionBackend(BaseBackend):

    def __init__(self):
        self.service = PermissionService()

    def _team_for(self, user_obj, obj):
        if obj is not None and not inspect.isclass(obj) and getattr(obj, 'team_id', None):
            return obj.team
        return get_current_team() or user_obj.current_team

    def _team_permissions(self, user_obj, team):
        """(permission names, is_super_admin) cached on the user object per team"""
        cache = getattr(user_obj, '_team_perm_cache', None)
        if cache is None:
            cache = user_obj._team_perm_cache = {}
        if team.pk not in cache:
            roles = self.service.role_names_for(user_obj, team)
            is_super = bool(roles & set(self.service.super_admin_roles))
            cache[team.pk] = (self.service.permissions_for(user_obj, team), is_super)
        return cache[team.pk]

    def get_all_permissions(self, user_obj, obj=None):
        if not user_obj.is_active or user_obj.is_anonymous:
            return set()
        team = self._team_for(user_obj, obj)
        if team is None:
            return set()
        return set(self._team_permissions(user_obj, team)[0])

    def has_perm(self, user_obj, perm, obj=None):
        if not user_obj.is_active or user_obj.is_anonymous:
            return False

        if '.' in perm:
            name = perm
        else:
            name = ability_to_permission(perm, obj)
            if name is None:
                return False

        team = self._team_for(user_obj, obj)
        if team is None:
            return False

        names, is_super = self._team_permissions(user_obj, team)
        return is_super or name in names
