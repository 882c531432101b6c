import uuid

from django.db import models


class Language(models.Model):

    code = models.CharField(max_length=10, unique=True, help_text='Locale code (e.g. en, fr, pt_BR)')
    name = models.CharField(max_length=100)
    rtl = models.BooleanField(default=False, help_text='Right-to-left script')

    class Meta:
        verbose_name = 'Language'
        verbose_name_plural = 'Languages'
        ordering = ['code']

    def __str__(self):
        return f"{self.name} ({self.code})"


class TranslationFile(models.Model):
    """Group of phrases, one per translation file (auth, validation, ...)"""

    name = models.CharField(max_length=150, unique=True)
    is_vendor = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Translation file'
        verbose_name_plural = 'Translation files'
        ordering = ['name']

    def __str__(self):
        return self.name


class Phrase(models.Model):

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    translation_file = models.ForeignKey(TranslationFile, on_delete=models.CASCADE, related_name='phrases')
    key = models.CharField(max_length=255, help_text='Dotted key inside the file')
    group = models.CharField(max_length=150, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Phrase'
        verbose_name_plural = 'Phrases'
        ordering = ['translation_file', 'key']
        unique_together = ['translation_file', 'key']

    def __str__(self):
        return f"{self.translation_file.name}.{self.key}"


class Translation(models.Model):

    language = models.ForeignKey(Language, on_delete=models.CASCADE, related_name='translations')
    phrase = models.ForeignKey(Phrase, on_delete=models.CASCADE, related_name='translations')
    value = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Translation'
        verbose_name_plural = 'Translations'
        unique_together = ['language', 'phrase']

    def __str__(self):
        return f"[{self.language.code}] {self.phrase}"
