import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .models import Team
from .utils import request_team, switch_team

logger = logging.getLogger(__name__)


def _team_payload(team):
    if team is None:
        return None
    return {'id': team.pk, 'name': team.name, 'slug': team.slug, 'personal_team': team.personal_team}


@api_view(['GET'])
@permission_classes([AllowAny])
def health(request):
    """Liveness check."""
    return Response({'status': 'ok'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    """Current user, their teams and their permissions in the current team"""
    from apps.accounts.permissions import PermissionService

    user = request.user
    team = request_team(request)
    permissions = sorted(PermissionService().permissions_for(user, team)) if team else []

    return Response({
        'id': user.pk,
        'email': user.email,
        'name': user.get_full_name(),
        'initials': user.get_initials(),
        'current_team': _team_payload(team),
        'teams': [_team_payload(t) for t in user.teams.filter(is_active=True).order_by('name')],
        'permissions': permissions,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def switch_current_team(request):
    """
    Switch the current team

    Body: {"team": <id or slug>}
    Teams the user does not belong to answer 404.
    """
    identifier = request.data.get('team')
    if identifier in (None, ''):
        return Response({'success': False, 'error': 'team is required'},
                        status=status.HTTP_400_BAD_REQUEST)

    lookup = {'pk': identifier} if str(identifier).isdigit() else {'slug': identifier}
    team = get_object_or_404(Team, is_active=True, **lookup)

    if not switch_team(request, team):
        logger.warning(f"User {request.user.pk} tried to switch to foreign team {team.pk}")
        return Response({'success': False, 'error': 'Team not found'},
                        status=status.HTTP_404_NOT_FOUND)

    logger.info(f"User {request.user.pk} switched to team {team.slug}")
    return Response({'success': True, 'current_team': _team_payload(team)})
