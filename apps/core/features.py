"""
Feature flags

Resolution order for a key:
    1. Flag row for the team (team defaults to the current team)
    2. Global flag row (team=None)
    3. settings.CRM['features'][key]
    4. False
"""
import logging
from functools import wraps

from django.http import Http404

from .crm_config import CrmConfig
from .models import FeatureFlag
from .tenancy import get_current_team

logger = logging.getLogger(__name__)


def _resolve_team(team):
    return team if team is not None else get_current_team()


def is_enabled(key, team=None):
    team = _resolve_team(team)

    if team is not None:
        flag = FeatureFlag.objects.filter(key=key, team=team).first()
        if flag is not None:
            return flag.is_enabled

    flag = FeatureFlag.objects.filter(key=key, team__isnull=True).first()
    if flag is not None:
        return flag.is_enabled

    return CrmConfig.feature_enabled(key)


def _set(key, enabled, team):
    flag, _ = FeatureFlag.objects.update_or_create(
        key=key, team=team, defaults={'is_enabled': enabled}
    )
    logger.info(f"Feature '{key}' {'enabled' if enabled else 'disabled'} "
                f"for {team.slug if team else 'all teams'}")
    return flag


def enable(key, team=None):
    """Turn a feature on; team=None sets the global override."""
    return _set(key, True, team)


def disable(key, team=None):
    return _set(key, False, team)


def forget(key, team=None):
    """Remove an override so the next level decides."""
    deleted, _ = FeatureFlag.objects.filter(key=key, team=team).delete()
    return bool(deleted)


def all_flags(team=None):
    """Effective value of every known key for a team."""
    team = _resolve_team(team)

    flags = {key: bool(value) for key, value in CrmConfig.get('features', {}).items()}
    for flag in FeatureFlag.objects.filter(team__isnull=True):
        flags[flag.key] = flag.is_enabled
    if team is not None:
        for flag in FeatureFlag.objects.filter(team=team):
            flags[flag.key] = flag.is_enabled
    return flags


def feature_required(key):
    """
    Decorator: view is only reachable while the feature is on for the request team

    Disabled features answer 404 so they look like they do not exist.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not is_enabled(key, getattr(request, 'team', None)):
                raise Http404(f"Feature '{key}' is not enabled")
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator
