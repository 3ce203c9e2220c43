"""
Regex Pattern Matcher Module.

A fixed catalogue of invoice-domain patterns scored against block text:
    - Invoice numbers (keyword-anchored, prefixed, bare identifiers)
    - Dates (German DD.MM.YYYY, ISO YYYY-MM-DD)
    - Amounts (German 1.234,56 and English 1,234.56 grouping)
    - Currency symbols and codes
    - Email addresses and phone numbers

The matcher is stateless. Overlapping matches from different patterns are
all kept; callers aggregate by category.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple


class PatternCategory(Enum):
    """Category a pattern belongs to."""
    INVOICE_NUMBER = "InvoiceNumber"
    DATE = "Date"
    AMOUNT = "Amount"
    CURRENCY = "Currency"
    EMAIL = "Email"
    PHONE = "Phone"


# Static match confidence per category
CATEGORY_WEIGHTS: Dict[PatternCategory, float] = {
    PatternCategory.INVOICE_NUMBER: 0.80,
    PatternCategory.DATE: 0.90,
    PatternCategory.AMOUNT: 0.85,
    PatternCategory.CURRENCY: 0.95,
    PatternCategory.EMAIL: 0.95,
    PatternCategory.PHONE: 0.70,
}


@dataclass(frozen=True)
class RegexHit:
    """
    One pattern match inside a block's text.

    Attributes:
        pattern: Catalogue name of the pattern
        value: Matched substring
        start: Start offset in the text
        end: End offset in the text (exclusive)
        category: Category of the pattern
        confidence: Static weight of the category
    """
    pattern: str
    value: str
    start: int
    end: int
    category: PatternCategory
    confidence: float

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> Dict[str, object]:
        return {
            'pattern': self.pattern,
            'value': self.value,
            'span': [self.start, self.end],
            'category': self.category.value,
            'confidence': self.confidence,
        }


# Amount boundaries: not glued to other digits and not followed by another group
_AMOUNT_LEFT = r'(?<![\d.,])'
_AMOUNT_RIGHT = r'(?!\d|[.,]\d)'

# (name, category, pattern); an optional ``value`` group narrows the hit
PATTERN_CATALOGUE: List[Tuple[str, PatternCategory, str]] = [
    (
        "invoice_number_keyword",
        PatternCategory.INVOICE_NUMBER,
        r'(?i)\b(?:rechnungs?[\s-]*(?:nr|nummer)|invoice\s*(?:no|number|#)|beleg[\s-]*nr)'
        r'\.?\s*[:#]?\s*(?P<value>[A-Za-z0-9][A-Za-z0-9\-/.]*\d[A-Za-z0-9\-/]*)',
    ),
    (
        "invoice_number_prefixed",
        PatternCategory.INVOICE_NUMBER,
        r'(?i)\b(?:RE|INV|RG|RNR)-[A-Za-z0-9\-/]*\d[A-Za-z0-9\-/]*',
    ),
    (
        "invoice_number_identifier",
        PatternCategory.INVOICE_NUMBER,
        r'\b(?=[A-Za-z0-9\-/]*\d)(?=[A-Za-z0-9\-/]*[A-Za-z])[A-Za-z0-9]+(?:[\-/][A-Za-z0-9]+)+\b',
    ),
    (
        "date_german",
        PatternCategory.DATE,
        r'\b(?:0?[1-9]|[12][0-9]|3[01])\.(?:0?[1-9]|1[0-2])\.(?:19|20)\d\d\b',
    ),
    (
        "date_iso",
        PatternCategory.DATE,
        r'\b(?:19|20)\d\d-(?:0[1-9]|1[0-2])-(?:0[1-9]|[12][0-9]|3[01])\b',
    ),
    (
        "amount_german",
        PatternCategory.AMOUNT,
        _AMOUNT_LEFT + r'[-+]?(?:\d{1,3}(?:\.\d{3})+|\d+),\d{2}' + _AMOUNT_RIGHT,
    ),
    (
        "amount_english",
        PatternCategory.AMOUNT,
        _AMOUNT_LEFT + r'[-+]?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}' + _AMOUNT_RIGHT,
    ),
    (
        "currency",
        PatternCategory.CURRENCY,
        r'€|\$|\bEUR\b|\bUSD\b',
    ),
    (
        "email",
        PatternCategory.EMAIL,
        r'[\w.+-]+@[\w-]+(?:\.[\w-]+)+',
    ),
    (
        "phone",
        PatternCategory.PHONE,
        r'(?<![\w+])(?:\+\d{1,3}|\(?0\d{1,5}\)?)[\s\-/]?\d[\d\s\-/]{4,}\d(?!\w)',
    ),
]


class RegexPatternMatcher:
    """
    Matches block text against the fixed pattern catalogue.

    Example:
        >>> matcher = RegexPatternMatcher()
        >>> hits = matcher.match("Gesamtbetrag: 1.190,00 EUR")
        >>> [h.category.value for h in hits]
        ['Amount', 'Currency']
    """

    _compiled: List[Tuple[str, PatternCategory, Pattern]] = [
        (name, category, re.compile(pattern))
        for name, category, pattern in PATTERN_CATALOGUE
    ]

    def match(self, text: Optional[str]) -> List[RegexHit]:
        """
        Return every catalogue match in ``text``.

        Hits are ordered by start offset, then by catalogue order. Empty or
        None text returns an empty list.
        """
        if not text:
            return []

        hits = []
        for order, (name, category, regex) in enumerate(self._compiled):
            weight = CATEGORY_WEIGHTS[category]
            for m in regex.finditer(text):
                if 'value' in regex.groupindex and m.group('value') is not None:
                    start, end = m.span('value')
                else:
                    start, end = m.span()
                if end <= start:
                    continue
                hits.append((start, order, RegexHit(
                    pattern=name,
                    value=text[start:end],
                    start=start,
                    end=end,
                    category=category,
                    confidence=weight,
                )))

        hits.sort(key=lambda item: (item[0], item[1]))
        return [hit for _, _, hit in hits]

    def matches_category(self, text: Optional[str], category: PatternCategory) -> bool:
        return any(hit.category == category for hit in self.match(text))

    @staticmethod
    def count_by_category(hits: List[RegexHit]) -> Dict[PatternCategory, int]:
        """Count hits per category; every category is present in the result."""
        counts = {category: 0 for category in RegexPatternMatcher.categories()}
        for hit in hits:
            counts[hit.category] += 1
        return counts

    @staticmethod
    def best_hit(hits: List[RegexHit], category: PatternCategory) -> Optional[RegexHit]:
        """Longest hit of ``category``, earliest on ties."""
        candidates = [hit for hit in hits if hit.category == category]
        if not candidates:
            return None
        return max(candidates, key=lambda hit: (hit.end - hit.start, -hit.start))

    @staticmethod
    def categories() -> List[PatternCategory]:
        return list(PatternCategory)
