"""
Translation completeness checks

Compares every language against the source language
(settings.TRANSLATIONS['source_language']).
"""
import logging

from django.conf import settings
from django.core.cache import cache

from .models import Language, Translation

logger = logging.getLogger(__name__)

LANGUAGES_CACHE_KEY = 'translations.languages'
LANGUAGE_ID_CACHE_KEY = 'translations.language_id.{}'
STATS_CACHE_KEY = 'translations.stats'


def source_language():
    return getattr(settings, 'TRANSLATIONS', {}).get('source_language', 'en')


class TranslationCheckerService:

    def __init__(self, cache_ttl=None):
        if cache_ttl is None:
            cache_ttl = getattr(settings, 'TRANSLATIONS', {}).get('cache_ttl', 3600)
        self.cache_ttl = cache_ttl

    def get_languages(self):
        languages = cache.get(LANGUAGES_CACHE_KEY)
        if languages is None:
            languages = list(Language.objects.order_by('code'))
            cache.set(LANGUAGES_CACHE_KEY, languages, self.cache_ttl)
        return languages

    def get_language_id(self, locale):
        """
        Language id for locale, else the source language's id

        Returns None when neither exists.
        """
        cache_key = LANGUAGE_ID_CACHE_KEY.format(locale)
        language_id = cache.get(cache_key)
        if language_id is None:
            language_id = Language.objects.filter(code=locale).values_list('pk', flat=True).first()
            if language_id is not None:
                cache.set(cache_key, language_id, self.cache_ttl)

        if language_id is None:
            logger.warning(f"Unknown language '{locale}', using '{source_language()}'")
            language_id = Language.objects.filter(code=source_language()).values_list('pk', flat=True).first()

        return language_id

    def get_translation_count(self, locale):
        language_id = self.get_language_id(locale)
        if language_id is None:
            return 0
        return Translation.objects.filter(language_id=language_id).count()

    def get_missing_translations(self, locale):
        """Source language translations whose phrase has no translation in locale"""
        source_id = self.get_language_id(source_language())
        if source_id is None:
            return Translation.objects.none()

        target_id = self.get_language_id(locale)
        translated = Translation.objects.filter(language_id=target_id).values('phrase_id')

        return Translation.objects.filter(language_id=source_id) \
            .exclude(phrase_id__in=translated) \
            .select_related('phrase', 'phrase__translation_file')

    def get_completion_percentage(self, locale):
        base_count = self.get_translation_count(source_language())
        if base_count == 0:
            return 100.0

        target_count = self.get_translation_count(locale)
        return round(target_count / base_count * 100, 2)

    def get_statistics(self):
        """Completion of every language, cached"""
        stats = cache.get(STATS_CACHE_KEY)
        if stats is None:
            stats = {
                language.code: {
                    'name': language.name,
                    'count': self.get_translation_count(language.code),
                    'missing': self.get_missing_translations(language.code).count(),
                    'completion': self.get_completion_percentage(language.code),
                }
                for language in self.get_languages()
            }
            cache.set(STATS_CACHE_KEY, stats, self.cache_ttl)
        return stats

    def clear_cache(self):
        keys = [LANGUAGES_CACHE_KEY, STATS_CACHE_KEY]
        keys.extend(LANGUAGE_ID_CACHE_KEY.format(code) for code in Language.objects.values_list('code', flat=True))
        cache.delete_many(keys)
