from django.apps import AppConfig


class CoreConfig(AppConfig):
    """
    Configuration for Core application

    This app contains:
        - Team / TeamMembership models (multi-tenancy)
        - Team scoping (current team context, scoped managers, middleware)
        - Feature flags and team-aware settings
        - CRM configuration checks (registered with `manage.py check`)
        - Health / current user / team switch API
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        from . import checks  # noqa: F401
