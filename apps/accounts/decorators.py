# Decorators in this file:
# 1. team_required - Request must have a current team
# 2. same_team_required - Object in the URL must belong to the current team
# 3. team_permission_required - Permission role check in the current team
# 4. team_role_required - Membership role check in the current team
# 5. ajax_required / post_required - Request type checks
#
# Views in this project answer JSON, so denials are JSON responses
# (401 not logged in, 403 no team / permission, 404 other team's object).
# ==============================================================================

import logging
from functools import wraps

from django.http import Http404, HttpResponseForbidden, JsonResponse
from django.utils.translation import gettext_lazy as _

from apps.core.tenancy import acting_user, team_context
from apps.core.utils import request_team

logger = logging.getLogger(__name__)


def _login_required_response():
    return JsonResponse({'success': False, 'error': str(_('Authentication required'))}, status=401)


def _forbidden(message):
    return JsonResponse({'success': False, 'error': str(message)}, status=403)


def _scoped_call(view_func, request, team, *args, **kwargs):
    request.team = team
    with team_context(team), acting_user(request.user):
        return view_func(request, *args, **kwargs)


# TEAM-BASED DECORATORS
def team_required(view_func):
    """
    Decorator: User must be working inside a team

    Checks:
    1. User is authenticated
    2. A current team resolves for the user (request.team; users
       authenticated by DRF after the middleware resolve it here)

    The view runs with that team as the query scope.

    Usage:
        @team_required
        def company_list(request):
            companies = Company.objects.all()   # already scoped to request.team
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _login_required_response()

        team = request_team(request)
        if team is None:
            return _forbidden(_('You must belong to a team to access this page.'))

        return _scoped_call(view_func, request, team, *args, **kwargs)

    return wrapper


def same_team_required(model_class, pk_param='pk'):
    """
    Decorator: Verify accessed object belongs to the current team

    Args:
        model_class: Team owned model (e.g., Company, Lead)
        pk_param: URL parameter name for primary key (default: 'pk')

    Usage:
        @team_required
        @same_team_required(Lead, pk_param='pk')
        def lead_detail(request, pk):
            ...

    Another team's object answers 404 (not 403), so its existence is not
    revealed.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return _login_required_response()

            team = request_team(request)
            if team is None:
                return _forbidden(_('You must belong to a team to access this page.'))

            pk = kwargs.get(pk_param)
            if not pk:
                # No pk provided, let view handle it
                return _scoped_call(view_func, request, team, *args, **kwargs)

            if not model_class.all_objects.filter(pk=pk, team=team).exists():
                raise Http404(
                    f"{model_class.__name__} not found or you don't have access to it."
                )

            return _scoped_call(view_func, request, team, *args, **kwargs)

        return wrapper

    return decorator


# PERMISSION DECORATORS
def team_permission_required(*permissions):
    """
    Decorator: User needs every permission in the current team

    Usage:
        @team_permission_required('companies.view', 'companies.update')
        def company_edit(request, pk):
            ...

    Permissions are `resource.action` names resolved by TeamPermissionBackend.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return _login_required_response()

            if request.user.is_superuser or all(request.user.has_perm(perm) for perm in permissions):
                return view_func(request, *args, **kwargs)

            logger.warning(f"User {request.user.pk} denied {', '.join(permissions)}")
            return _forbidden(_('You do not have permission to perform this action.'))

        return wrapper

    return decorator


def team_role_required(*allowed_roles):
    """
    Decorator: Only specific membership roles of the current team

    Usage:
        @team_role_required('owner', 'admin')
        def team_settings(request):
            ...
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return _login_required_response()

            team = request_team(request)
            if request.user.is_superuser or (team is not None and request.user.team_role(team) in allowed_roles):
                return _scoped_call(view_func, request, team, *args, **kwargs)

            return _forbidden(_('You do not have permission to access this page.'))

        return wrapper

    return decorator


# REQUEST TYPE DECORATORS
def ajax_required(view_func):
    """
    Decorator: Only AJAX requests allowed

    Detects AJAX through the X-Requested-With header.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if request.headers.get('X-Requested-With') == 'XMLHttpRequest':
            return view_func(request, *args, **kwargs)

        return HttpResponseForbidden('AJAX requests only')

    return wrapper


def post_required(view_func):

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if request.method == 'POST':
            return view_func(request, *args, **kwargs)

        return JsonResponse({
            'success': False,
            'error': 'POST requests only'
        }, status=405)

    return wrapper
