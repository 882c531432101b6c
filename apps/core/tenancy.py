"""
Team scoping for tenant-owned models

The current team lives in a context variable, set per request by
CurrentTeamMiddleware and per job by team_context(). TeamScopedManager applies
it as a global query scope: while a team is active every query is filtered to
that team, and with no team active the default queryset is empty.
The acting user is kept beside it (acting_user()) so new records can default
their owner.

Usage:
    class Company(TeamOwnedModel):
        name = models.CharField(max_length=200)

    with team_context(team):
        Company.objects.all()          # only this team's companies
        Company.objects.create(name=)  # team filled in automatically

    with without_team_scope():
        Company.objects.all()          # every team
"""
import contextvars
from contextlib import contextmanager

from django.db import models


_current_team = contextvars.ContextVar('current_team', default=None)
_scope_disabled = contextvars.ContextVar('team_scope_disabled', default=False)
_current_user = contextvars.ContextVar('current_user', default=None)


class NoCurrentTeam(Exception):
    """A tenant-owned record was saved with no team given and none active."""


def get_current_team():
    return _current_team.get()


def set_current_team(team):
    """Activate team; returns a token for reset_current_team()."""
    return _current_team.set(team)


def reset_current_team(token):
    _current_team.reset(token)


def team_scope_enabled():
    return not _scope_disabled.get()


def get_current_user():
    """User acting in this request or job, if any"""
    return _current_user.get()


def set_current_user(user):
    return _current_user.set(user)


def reset_current_user(token):
    _current_user.reset(token)


@contextmanager
def team_context(team):
    token = set_current_team(team)
    try:
        yield team
    finally:
        reset_current_team(token)


@contextmanager
def acting_user(user):
    token = set_current_user(user)
    try:
        yield user
    finally:
        reset_current_user(token)


@contextmanager
def without_team_scope():
    token = _scope_disabled.set(True)
    try:
        yield
    finally:
        _scope_disabled.reset(token)


class TeamScopedQuerySet(models.QuerySet):

    def for_team(self, team):
        return self.filter(team=team)


class TeamScopedManager(models.Manager.from_queryset(TeamScopedQuerySet)):

    def get_queryset(self):
        queryset = super().get_queryset()
        if not team_scope_enabled():
            return queryset

        team = get_current_team()
        if team is None:
            return queryset.none()
        return queryset.filter(team=team)


class TeamOwnedModel(models.Model):
    """Abstract base for records that belong to exactly one team."""

    team = models.ForeignKey('core.Team', on_delete=models.CASCADE,
                             related_name='%(app_label)s_%(class)s_set', db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    # First manager is the default one
    objects = TeamScopedManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def ensure_team(self):
        if self.team_id is None:
            team = get_current_team()
            if team is None:
                raise NoCurrentTeam(
                    f"Cannot save {self.__class__.__name__} without a team"
                )
            self.team = team
        return self.team

    def save(self, *args, **kwargs):
        self.ensure_team()
        super().save(*args, **kwargs)
