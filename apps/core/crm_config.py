"""
Accessors for the CRM settings dict (settings.CRM)
"""
from django.conf import settings


_MISSING = object()


class CrmConfig:

    @staticmethod
    def all():
        return getattr(settings, 'CRM', {})

    @classmethod
    def get(cls, key, default=None):
        """Dotted lookup: CrmConfig.get('leads.default_status', 'new')"""
        value = cls.all()
        for part in key.split('.'):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return value

    @classmethod
    def feature_enabled(cls, feature):
        return bool(cls.get(f'features.{feature}', False))

    @classmethod
    def auto_assign_owner(cls):
        return bool(cls.get('owner.auto_assign_on_create', True))

    @classmethod
    def items_per_page(cls):
        return int(cls.get('ui.items_per_page', 25))

    @classmethod
    def brand_name(cls):
        return cls.get('ui.brand_name', 'TeamCRM')

    @classmethod
    def default_theme_mode(cls):
        return cls.get('ui.default_theme_mode', 'light')

    @classmethod
    def default_currency(cls):
        return cls.get('currency.default', 'USD')

    @classmethod
    def currency_symbol(cls):
        return cls.get('currency.symbol', '$')

    @classmethod
    def cache_enabled(cls):
        return bool(cls.get('cache.enabled', True))

    @classmethod
    def cache_ttl(cls):
        return int(cls.get('cache.ttl', 3600))

    @classmethod
    def favicon_timeout(cls):
        return float(cls.get('favicons.timeout', 5))

    @classmethod
    def lead_defaults(cls):
        return {
            'status': cls.get('leads.default_status', 'new'),
            'source': cls.get('leads.default_source', 'website'),
            'auto_assign': bool(cls.get('leads.auto_assign_enabled', False)),
            'auto_assign_method': cls.get('leads.auto_assign_method', 'round_robin'),
        }

    @classmethod
    def opportunity_defaults(cls):
        return {
            'stage': cls.get('opportunities.default_stage', 'prospecting'),
            'probability': cls.get('opportunities.default_probability', 10),
            'require_close_reason': bool(cls.get('opportunities.require_close_reason', True)),
        }

    @classmethod
    def task_defaults(cls):
        return {
            'priority': cls.get('tasks.default_priority', 'medium'),
            'status': cls.get('tasks.default_status', 'pending'),
            'reminder_hours': int(cls.get('tasks.reminder_before_due', 24)),
        }
