"""
Helper utilities for current team resolution
"""
import logging

from apps.core.models import Team

logger = logging.getLogger(__name__)

SESSION_KEY = 'current_team_id'


def _session(request):
    return getattr(request, 'session', None)


def resolve_current_team(request):
    """
    Get the current team for the request user:
    - Session selection (any member; superusers may select any team)
    - Otherwise user.current_team, if the user still belongs to it
    - Otherwise the user's first team (personal team first), remembered
      as user.current_team

    Returns:
        Team object or None
    """
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None

    session = _session(request)
    team_id = session.get(SESSION_KEY) if session is not None else None
    if team_id:
        team = Team.objects.filter(pk=team_id, is_active=True).first()
        if team is not None and (user.is_superuser or user.belongs_to_team(team)):
            return team
        # Team deleted, deactivated or membership revoked - clear session
        logger.info(f"Dropping stale team selection {team_id} for user {user.pk}")
        session.pop(SESSION_KEY, None)

    team = user.current_team
    if team is not None and team.is_active and user.belongs_to_team(team):
        return team

    team = user.teams.filter(is_active=True).order_by('-personal_team', 'pk').first()
    if team is not None:
        user.switch_team(team)
    elif user.current_team_id is not None:
        user.current_team = None
        user.save(update_fields=['current_team'])
    return team


def request_team(request):
    """
    Team for a request

    CurrentTeamMiddleware only sees session users; requests authenticated
    later by DRF (basic auth) resolve their team here instead.
    """
    team = getattr(request, 'team', None)
    if team is None:
        team = resolve_current_team(request)
    return team


def switch_team(request, team):
    """
    Make team the current team for this session and the user

    Returns:
        True if successful, False if the user may not use the team
    """
    user = request.user
    if not team.is_active:
        return False
    if not (user.is_superuser or user.belongs_to_team(team)):
        return False

    session = _session(request)
    if session is not None:
        session[SESSION_KEY] = team.pk
    if user.belongs_to_team(team):
        user.switch_team(team)
    return True


def clear_current_team(request):
    """Clear selected team from session"""
    session = _session(request)
    if session is not None:
        session.pop(SESSION_KEY, None)
