import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from apps.accounts.decorators import same_team_required, team_permission_required, team_required
from apps.core import features
from apps.core.crm_config import CrmConfig
from apps.core.models import Team
from apps.core.tenancy import team_context
from apps.core.utils import request_team
from .models import Lead, LeadAlreadyConverted
from .serializers import LeadConversionSerializer, WebLeadSerializer
from .services import LeadAssignmentService, LeadConversionService

logger = logging.getLogger(__name__)


def _web_lead_team(request, slug):
    """
    Team receiving a web lead:
    - logged in users submit into their current team
    - anonymous submissions name an active team that has web_leads enabled
    """
    if request.user.is_authenticated:
        return request_team(request)
    if not slug:
        return None
    team = Team.objects.filter(slug=slug, is_active=True).first()
    if team is None or not features.is_enabled('web_leads', team):
        return None
    return team


@api_view(['POST'])
@permission_classes([AllowAny])
def web_lead_create(request):
    """
    Web-to-lead intake

    Creates the lead, flags possible duplicates and runs auto-assignment.
    Returns 201 {success, message, lead_id}; invalid input answers 422.
    """
    serializer = WebLeadSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'success': False, 'errors': serializer.errors},
                        status=status.HTTP_422_UNPROCESSABLE_ENTITY)

    team = _web_lead_team(request, serializer.validated_data.get('team'))
    if team is None:
        return Response({'success': False, 'error': 'Team not found'},
                        status=status.HTTP_404_NOT_FOUND)

    with team_context(team):
        serializer.context['team'] = team
        lead = serializer.save()
        lead.flag_duplicates()

        defaults = CrmConfig.lead_defaults()
        if defaults['auto_assign']:
            LeadAssignmentService().assign(lead, defaults['auto_assign_method'])

    logger.info(f"Web lead {lead.pk} received for team {team.slug}")
    return Response({
        'success': True,
        'message': 'Lead created successfully',
        'lead_id': lead.pk,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@team_required
@same_team_required(Lead)
@team_permission_required('leads.update')
def lead_convert(request, pk):
    """Convert a lead of the current team into company / contact / opportunity"""
    lead = get_object_or_404(Lead, pk=pk)

    serializer = LeadConversionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'success': False, 'errors': serializer.errors},
                        status=status.HTTP_422_UNPROCESSABLE_ENTITY)

    try:
        result = LeadConversionService().convert(lead, serializer.validated_data, user=request.user)
    except LeadAlreadyConverted as e:
        return Response({'success': False, 'error': str(e)}, status=status.HTTP_409_CONFLICT)

    return Response({
        'success': True,
        'company_id': result.company.pk if result.company else None,
        'contact_id': result.contact.pk if result.contact else None,
        'opportunity_id': result.opportunity.pk if result.opportunity else None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@team_required
@same_team_required(Lead)
@team_permission_required('leads.update')
def lead_assign(request, pk):
    """
    Assign a lead

    Body: {"strategy": "round_robin" | "weighted" | "territory" | "rule_based"} or {"user": <id>}
    """
    lead = get_object_or_404(Lead, pk=pk)

    user_id = request.data.get('user')
    if user_id:
        user = request.team.members.filter(pk=user_id, is_active=True).first()
        if user is None:
            return Response({'success': False, 'error': 'User is not a member of this team'},
                            status=status.HTTP_400_BAD_REQUEST)
        if not lead.assign_to(user, assigned_by=request.user):
            return Response({'success': False, 'error': 'Lead cannot be assigned'},
                            status=status.HTTP_409_CONFLICT)
    else:
        strategy = request.data.get('strategy') or CrmConfig.lead_defaults()['auto_assign_method']
        user = LeadAssignmentService().assign(lead, strategy)

    return Response({'success': True, 'assigned_to': user.pk if user else None})
