"""
CRM configuration checker

ConfigCheckerService inspects settings.CRM, settings.PERMISSION_DEFAULTS and
settings.TRANSLATIONS and reports problems. The same report is wired into
Django's system check framework, so `manage.py check` (and every runserver /
migrate) shows it as crm.E### errors and crm.W### warnings.
"""
import re
from dataclasses import dataclass

from django.conf import settings
from django.core import checks

ERROR = 'error'
WARNING = 'warning'

KNOWN_FEATURES = {
    'companies', 'people', 'opportunities', 'orders', 'tasks', 'notes',
    'leads', 'web_leads', 'favicon_fetching', 'activity_log',
}
ASSIGNMENT_METHODS = {'round_robin', 'weighted', 'territory', 'rule_based', 'manual'}
THEME_MODES = {'light', 'dark', 'system'}
CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


@dataclass(frozen=True)
class ConfigIssue:
    level: str
    key: str
    message: str
    code: str

    @property
    def is_error(self):
        return self.level == ERROR


class ConfigCheckerService:

    def __init__(self, crm=None, permissions=None, translations=None, languages=None):
        self.crm = crm if crm is not None else getattr(settings, 'CRM', {})
        self.permissions = permissions if permissions is not None else getattr(settings, 'PERMISSION_DEFAULTS', {})
        self.translations = translations if translations is not None else getattr(settings, 'TRANSLATIONS', {})
        self.languages = languages if languages is not None else settings.LANGUAGES
        self.issues = []

    def run(self):
        self.issues = []
        self._check_features()
        self._check_leads()
        self._check_opportunities()
        self._check_ui()
        self._check_cache()
        self._check_currency()
        self._check_permissions()
        self._check_translations()
        return list(self.issues)

    def errors(self):
        return [issue for issue in self.run() if issue.is_error]

    def _add(self, level, code, key, message):
        self.issues.append(ConfigIssue(level=level, key=key, message=message, code=code))

    def _check_features(self):
        features = self.crm.get('features', {})
        if not isinstance(features, dict):
            self._add(ERROR, 'E001', 'CRM.features', 'must be a mapping of feature name to bool')
            return
        for name, value in features.items():
            if name not in KNOWN_FEATURES:
                self._add(WARNING, 'W001', f'CRM.features.{name}', 'unknown feature key')
            if not isinstance(value, bool):
                self._add(ERROR, 'E002', f'CRM.features.{name}', f'must be a bool, got {type(value).__name__}')

    def _check_leads(self):
        method = self.crm.get('leads', {}).get('auto_assign_method')
        if method is not None and method not in ASSIGNMENT_METHODS:
            self._add(ERROR, 'E003', 'CRM.leads.auto_assign_method',
                      f"'{method}' is not one of {sorted(ASSIGNMENT_METHODS)}")

    def _check_opportunities(self):
        probability = self.crm.get('opportunities', {}).get('default_probability')
        if probability is None:
            return
        if not isinstance(probability, (int, float)) or not 0 <= probability <= 100:
            self._add(ERROR, 'E004', 'CRM.opportunities.default_probability', 'must be a number between 0 and 100')

    def _check_ui(self):
        ui = self.crm.get('ui', {})
        per_page = ui.get('items_per_page')
        if per_page is not None and (not isinstance(per_page, int) or per_page <= 0):
            self._add(ERROR, 'E005', 'CRM.ui.items_per_page', 'must be a positive integer')

        theme = ui.get('default_theme_mode')
        if theme is not None and theme not in THEME_MODES:
            self._add(WARNING, 'W002', 'CRM.ui.default_theme_mode',
                      f"'{theme}' is not one of {sorted(THEME_MODES)}")

    def _check_cache(self):
        ttl = self.crm.get('cache', {}).get('ttl')
        if ttl is not None and (not isinstance(ttl, int) or ttl <= 0):
            self._add(ERROR, 'E006', 'CRM.cache.ttl', 'must be a positive number of seconds')

    def _check_currency(self):
        currency = self.crm.get('currency', {}).get('default')
        if currency is not None and not CURRENCY_RE.match(str(currency)):
            self._add(ERROR, 'E007', 'CRM.currency.default', f"'{currency}' is not an ISO 4217 code")

    def _check_permissions(self):
        roles = self.permissions.get('roles', {})
        permission_sets = self.permissions.get('permission_sets', {})

        for team_role, role in self.permissions.get('team_role_map', {}).items():
            if role not in roles:
                self._add(ERROR, 'E008', f'PERMISSION_DEFAULTS.team_role_map.{team_role}',
                          f"maps to undefined role '{role}'")

        for super_role in self.permissions.get('super_admin_roles', []):
            if super_role not in roles:
                self._add(WARNING, 'W003', 'PERMISSION_DEFAULTS.super_admin_roles',
                          f"'{super_role}' is not a defined role")

        for name, config in roles.items():
            for set_name in config.get('permission_sets', []):
                if set_name not in permission_sets:
                    self._add(ERROR, 'E009', f'PERMISSION_DEFAULTS.roles.{name}.permission_sets',
                              f"unknown permission set '{set_name}'")
            for parent in config.get('inherits', []):
                if parent not in roles:
                    self._add(ERROR, 'E010', f'PERMISSION_DEFAULTS.roles.{name}.inherits',
                              f"unknown role '{parent}'")

    def _check_translations(self):
        source = self.translations.get('source_language', 'en')
        codes = {code for code, _name in self.languages}
        if source not in codes:
            self._add(ERROR, 'E011', 'TRANSLATIONS.source_language',
                      f"'{source}' is not listed in LANGUAGES")


@checks.register('crm')
def check_crm_configuration(app_configs=None, **kwargs):
    messages = []
    for issue in ConfigCheckerService().run():
        message_class = checks.Error if issue.is_error else checks.Warning
        messages.append(message_class(
            f"{issue.key}: {issue.message}",
            id=f"crm.{issue.code}",
        ))
    return messages
