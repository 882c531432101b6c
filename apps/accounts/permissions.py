"""
Team permission sync

Roles and permissions are declared once in settings.PERMISSION_DEFAULTS and
materialized per team:

    resources           {resource: [action, ...]} -> permission `resource.action`
    custom_permissions  extra permission names
    permission_sets     {name: [permission or token, ...]}
    roles               {name: {permissions, permission_sets, inherits, label, description}}
    team_role_map       {membership role: permission role}

Tokens: `resource.*` is every action of that resource, `*` is everything.
Names that are not defined permissions are dropped.
"""
import logging

from django.conf import settings
from django.db import transaction

from .models import Permission, Role, RoleAssignment

logger = logging.getLogger(__name__)


class PermissionService:

    def __init__(self, definitions=None):
        self.definitions = definitions if definitions is not None else getattr(settings, 'PERMISSION_DEFAULTS', {})

    @property
    def guard(self):
        return self.definitions.get('guard', 'web')

    @property
    def super_admin_roles(self):
        return list(self.definitions.get('super_admin_roles', ['admin']))

    # SYNC
    @transaction.atomic
    def sync_team_definitions(self, team):
        """Create/refresh every configured permission and role for team"""
        names = self.build_permission_names()

        existing = set(Permission.objects.filter(guard=self.guard, name__in=names).values_list('name', flat=True))
        Permission.objects.bulk_create([
            Permission(name=name, guard=self.guard) for name in names if name not in existing
        ])
        by_name = {p.name: p for p in Permission.objects.filter(guard=self.guard, name__in=names)}

        for role_name, role_config in self.definitions.get('roles', {}).items():
            role, _ = Role.objects.update_or_create(
                team=team, name=role_name, guard=self.guard,
                defaults={
                    'label': role_config.get('label', ''),
                    'description': role_config.get('description', ''),
                },
            )
            granted = self.resolve_role_permissions(role_name)
            role.permissions.set([by_name[name] for name in granted])

        logger.info(f"Permission definitions synced for team {team.pk}")

    @transaction.atomic
    def sync_membership(self, user, team, team_role):
        """Give user exactly the permission role mapped from team_role in team"""
        self.sync_team_definitions(team)

        role_name = self.map_team_role(team_role)
        role = Role.objects.filter(team=team, name=role_name, guard=self.guard).first()

        RoleAssignment.objects.filter(user=user, team=team).exclude(role=role).delete()
        if role is None:
            logger.warning(f"Team role '{team_role}' maps to undefined role '{role_name}'")
            return None

        RoleAssignment.objects.get_or_create(user=user, team=team, role=role)
        _forget_cached_permissions(user)
        logger.info(f"User {user.pk} synced as '{role_name}' in team {team.pk}")
        return role

    def remove_membership(self, user, team):
        deleted, _ = RoleAssignment.objects.filter(user=user, team=team).delete()
        _forget_cached_permissions(user)
        if deleted:
            logger.info(f"Removed roles of user {user.pk} in team {team.pk}")

    # QUERIES
    def role_names_for(self, user, team):
        if team is None:
            return set()
        return set(
            RoleAssignment.objects.filter(user=user, team=team).values_list('role__name', flat=True)
        )

    def permissions_for(self, user, team):
        """Permission names the user holds in team"""
        if team is None or not user.is_active:
            return set()
        if self.role_names_for(user, team) & set(self.super_admin_roles):
            return set(self.build_permission_names())
        return set(
            Permission.objects.filter(
                roles__assignments__user=user,
                roles__assignments__team=team,
            ).values_list('name', flat=True)
        )

    # DEFINITIONS
    def build_permission_names(self):
        names = []
        for resource, actions in self.definitions.get('resources', {}).items():
            names.extend(f"{resource}.{action}" for action in actions)
        names.extend(self.definitions.get('custom_permissions', []))
        return _unique(names)

    def resolve_role_permissions(self, role_name, _resolving=None):
        """
        Permissions of a role: own permissions + permission sets + inherited roles

        A role already being resolved further up the chain contributes nothing,
        so inheritance cycles terminate.
        """
        resolving = set(_resolving or ())
        if role_name in resolving:
            return []
        resolving.add(role_name)

        config = self.definitions.get('roles', {}).get(role_name, {})
        available = self.build_permission_names()

        tokens = list(config.get('permissions', []))
        tokens.extend(self._expand_permission_sets(config.get('permission_sets', [])))
        for parent in config.get('inherits', []):
            tokens.extend(self.resolve_role_permissions(parent, resolving))

        expanded = []
        for token in tokens:
            expanded.extend(self._expand_token(token, available))

        if '*' in expanded:
            return available

        allowed = set(available)
        return _unique(name for name in expanded if name in allowed)

    def map_team_role(self, team_role):
        return self.definitions.get('team_role_map', {}).get(team_role, team_role)

    def _expand_permission_sets(self, set_names):
        permission_sets = self.definitions.get('permission_sets', {})
        tokens = []
        for set_name in set_names:
            tokens.extend(permission_sets.get(set_name, []))
        return tokens

    def _expand_token(self, token, available):
        if token == '*':
            return ['*']
        if token.endswith('.*'):
            resource = token[:-2]
            actions = self.definitions.get('resources', {}).get(resource, [])
            return [f"{resource}.{action}" for action in actions if f"{resource}.{action}" in available]
        return [token]


def _unique(names):
    seen = set()
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


def _forget_cached_permissions(user):
    if hasattr(user, '_team_perm_cache'):
        del user._team_perm_cache
