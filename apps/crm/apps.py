from django.apps import AppConfig


class CrmRecordsConfig(AppConfig):

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.crm'
    verbose_name = 'CRM Records'

    def ready(self):
        import apps.crm.signals  # noqa: F401
