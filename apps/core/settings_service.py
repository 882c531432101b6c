"""
Team-aware key/value settings with caching
"""
from django.conf import settings as django_settings
from django.core.cache import cache

from .crm_config import CrmConfig
from .models import Setting

CACHE_PREFIX = 'settings:'

_MISSING = object()


class SettingsService:

    def __init__(self, cache_ttl=None):
        self.cache_ttl = cache_ttl if cache_ttl is not None else CrmConfig.cache_ttl()
        self.use_cache = CrmConfig.cache_enabled()

    def _cache_key(self, key, team):
        scope = f"team:{team.pk}:" if team is not None else 'global:'
        return f"{CACHE_PREFIX}{scope}{key}"

    def _query(self, team):
        if team is None:
            return Setting.objects.filter(team__isnull=True)
        return Setting.objects.filter(team=team)

    def get(self, key, default=None, team=None):
        cache_key = self._cache_key(key, team)
        if self.use_cache:
            value = cache.get(cache_key, _MISSING)
            if value is not _MISSING:
                return value

        setting = self._query(team).filter(key=key).first()
        if setting is None:
            # Defaults are not cached; callers may pass different ones
            return default

        value = setting.get_value()
        if self.use_cache:
            cache.set(cache_key, value, self.cache_ttl)
        return value

    def set(self, key, value, value_type='string', group='general', team=None):
        setting, _ = Setting.objects.update_or_create(
            key=key, team=team,
            defaults={'type': value_type, 'group': group, 'value': value},
        )
        self.clear_cache(key, team)
        return setting

    def get_group(self, group, team=None):
        return {
            setting.key: setting.get_value()
            for setting in self._query(team).filter(group=group)
        }

    def set_many(self, values, group='general', team=None):
        for key, value in values.items():
            self.set(key, value, self.infer_type(value), group, team)

    def delete(self, key, team=None):
        deleted, _ = self._query(team).filter(key=key).delete()
        if deleted:
            self.clear_cache(key, team)
        return bool(deleted)

    def has(self, key, team=None):
        return self._query(team).filter(key=key).exists()

    def clear_cache(self, key=None, team=None):
        if key is not None:
            cache.delete(self._cache_key(key, team))
        else:
            cache.clear()

    @staticmethod
    def infer_type(value):
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return 'boolean'
        if isinstance(value, int):
            return 'integer'
        if isinstance(value, float):
            return 'float'
        if isinstance(value, (list, dict)):
            return 'array'
        return 'string'

    def get_locale_settings(self, team=None):
        return {
            'locale': self.get('locale.language', django_settings.LANGUAGE_CODE, team),
            'timezone': self.get('locale.timezone', django_settings.TIME_ZONE, team),
            'date_format': self.get('locale.date_format', 'Y-m-d', team),
            'time_format': self.get('locale.time_format', 'H:i:s', team),
            'first_day_of_week': self.get('locale.first_day_of_week', 0, team),
        }

    def get_currency_settings(self, team=None):
        return {
            'default_currency': self.get('currency.default', CrmConfig.default_currency(), team),
            'symbol': self.get('currency.symbol', CrmConfig.currency_symbol(), team),
            'exchange_rates': self.get('currency.exchange_rates', {}, team),
            'auto_update_rates': self.get('currency.auto_update_rates', False, team),
        }

    def get_business_hours(self, team=None):
        weekday = {'start': '09:00', 'end': '17:00'}
        days = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday']
        hours = {day: self.get(f'business_hours.{day}', dict(weekday), team) for day in days}
        hours['saturday'] = self.get('business_hours.saturday', None, team)
        hours['sunday'] = self.get('business_hours.sunday', None, team)
        return hours
