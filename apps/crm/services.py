"""
Company duplicate detection

Similarity score (0-100) between two companies of the same team:

    0.6 * name similarity      (Levenshtein on lowercase alphanumerics)
    0.3 * website similarity   (same domain 1.0, one contains the other 0.8,
                                same registrable domain 0.6, otherwise 0.2)
    0.1 * same industry
"""
import re
from urllib.parse import urlparse

from rapidfuzz.distance import Levenshtein

from .models import Company

MERGE_ATTRIBUTES = {
    'name': 'Company Name',
    'website': 'Website',
    'industry': 'Industry',
    'address': 'Address',
    'phone': 'Phone',
    'revenue': 'Annual Revenue',
    'employee_count': 'Employee Count',
    'description': 'Description',
}


def normalize_name(value):
    return re.sub(r'[^a-z0-9]+', '', (value or '').lower())


def normalize_domain(url):
    if not url:
        return None
    host = urlparse(url).hostname or url
    host = re.sub(r'^www\.', '', host.lower()).strip()
    return host or None


def registrable_domain(domain):
    segments = [s for s in domain.split('.') if s]
    if len(segments) <= 2:
        return domain
    return '.'.join(segments[-2:])


def normalize_industry(value):
    if not isinstance(value, str) or not value.strip():
        return None
    return re.sub(r'[^a-z0-9]+', '_', value.lower()).strip('_') or None


class CompanyDuplicateDetectionService:

    def find_duplicates(self, company, threshold=60.0, limit=5):
        """
        Other companies of the same team scoring at least threshold

        Returns:
            list of {'company': Company, 'score': float}, best match first
        """
        threshold = max(0.0, min(100.0, float(threshold)))
        candidates = Company.all_objects.filter(team_id=company.team_id).exclude(pk=company.pk)

        matches = []
        for candidate in candidates:
            score = self.calculate_similarity(company, candidate)
            if score >= threshold:
                matches.append({'company': candidate, 'score': score})

        matches.sort(key=lambda match: match['score'], reverse=True)
        return matches[:limit]

    def calculate_similarity(self, primary, duplicate):
        if primary.pk is not None and primary.pk == duplicate.pk:
            return 100.0

        score = 0.0
        score += 0.6 * self._name_similarity(primary.name, duplicate.name)
        score += 0.3 * self._website_similarity(primary.website, duplicate.website)
        score += 0.1 * (1.0 if self._same_industry(primary.industry, duplicate.industry) else 0.0)

        return round(min(1.0, max(0.0, score)) * 100, 2)

    def suggest_merge(self, primary, duplicate):
        """Per attribute: both values and the one to keep (primary unless empty)"""
        suggestions = []
        for attribute, label in MERGE_ATTRIBUTES.items():
            primary_value = getattr(primary, attribute)
            duplicate_value = getattr(duplicate, attribute)
            suggestions.append({
                'attribute': attribute,
                'label': label,
                'primary': primary_value,
                'duplicate': duplicate_value,
                'selected': self._prefer(primary_value, duplicate_value),
            })
        return suggestions

    def _name_similarity(self, primary, duplicate):
        if not primary or not duplicate:
            return 0.0
        a, b = normalize_name(primary), normalize_name(duplicate)
        longest = max(len(a), len(b))
        if longest == 0:
            return 1.0
        return max(0.0, 1 - Levenshtein.distance(a, b) / longest)

    def _website_similarity(self, primary, duplicate):
        a, b = normalize_domain(primary), normalize_domain(duplicate)
        if a is None or b is None:
            return 0.0
        if a == b:
            return 1.0
        if a in b or b in a:
            return 0.8
        if registrable_domain(a) == registrable_domain(b):
            return 0.6
        return 0.2

    def _same_industry(self, primary, duplicate):
        a, b = normalize_industry(primary), normalize_industry(duplicate)
        return a is not None and a == b

    def _prefer(self, primary, duplicate):
        if self._is_meaningful(primary):
            return primary
        if self._is_meaningful(duplicate):
            return duplicate
        return primary

    @staticmethod
    def _is_meaningful(value):
        if value is None:
            return False
        return not (isinstance(value, str) and not value.strip())
