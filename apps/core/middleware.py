from .tenancy import reset_current_team, reset_current_user, set_current_team, set_current_user
from .utils import resolve_current_team


class CurrentTeamMiddleware:
    """
    Resolve the request's team and activate it as the query scope

    Sets request.team and the acting user; both are always reset when the
    response is done, so nothing leaks between requests served by the same
    worker.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.team = resolve_current_team(request)
        user = getattr(request, 'user', None)
        team_token = set_current_team(request.team)
        user_token = set_current_user(user if user is not None and user.is_authenticated else None)
        try:
            return self.get_response(request)
        finally:
            reset_current_user(user_token)
            reset_current_team(team_token)
