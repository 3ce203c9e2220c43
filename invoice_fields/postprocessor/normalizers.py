"""
Data Normalizers Module.

This module provides normalization functions for:
    - Date formats (German and ISO first, dateutil as fallback)
    - Amount values (German and English grouping, to Decimal)

Author: ML Engineering Team
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from dateutil import parser as date_parser

from config import get_config
from invoice_fields.features.patterns import PatternCategory, RegexPatternMatcher
from invoice_fields.utils.helpers import to_decimal
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class DateNormalizer:
    """
    Parses date strings into ``datetime.date``.

    Explicit formats are tried first, then dateutil's fuzzy parser with
    day-first ordering (German invoices write 15.01.2025).

    Attributes:
        input_formats: strptime formats tried in order
        dayfirst: Day-first ordering for the dateutil fallback

    Example:
        >>> normalizer = DateNormalizer()
        >>> normalizer.normalize("15.01.2025")
        datetime.date(2025, 1, 15)
        >>> normalizer.normalize("Rechnungsdatum: 2025-01-15")
        datetime.date(2025, 1, 15)
    """

    DEFAULT_FORMATS = [
        "%d.%m.%Y",
        "%d.%m.%y",
        "%Y-%m-%d",
        "%d/%m/%Y",
        "%d-%m-%Y",
        "%d %B %Y",
        "%B %d, %Y",
        "%b %d, %Y",
    ]

    # Label prefixes removed before parsing
    PREFIXES = [
        'rechnungsdatum:', 'datum:', 'invoice date:', 'date:', 'dated:', 'vom',
    ]

    def __init__(self, input_formats: Optional[List[str]] = None, dayfirst: Optional[bool] = None) -> None:
        self.input_formats = input_formats or get_config(
            "postprocessing.date.input_formats", self.DEFAULT_FORMATS)
        self.dayfirst = dayfirst if dayfirst is not None else get_config(
            "postprocessing.date.dayfirst", True)
        self._matcher = RegexPatternMatcher()

    def normalize(self, date_str: Optional[str]) -> Optional[date]:
        """
        Parse a date string.

        Args:
            date_str: Input date string in any recognized format.

        Returns:
            Parsed date, or None if parsing fails.
        """
        if not date_str or not date_str.strip():
            return None

        date_str = self._clean_date_string(date_str)

        parsed = self._try_explicit_formats(date_str)
        if parsed is None:
            parsed = self._try_dateutil_parser(date_str)

        if parsed is None:
            logger.debug(f"Could not parse date: {date_str}")
            return None
        return parsed.date()

    def _clean_date_string(self, date_str: str) -> str:
        date_str = ' '.join(date_str.split())
        lowered = date_str.lower()
        for prefix in self.PREFIXES:
            if lowered.startswith(prefix):
                date_str = date_str[len(prefix):].strip()
                break
        # Ordinal suffixes (1st, 2nd, 3rd, 4th)
        date_str = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', date_str, flags=re.IGNORECASE)
        return date_str.strip()

    def _try_explicit_formats(self, date_str: str) -> Optional[datetime]:
        for fmt in self.input_formats:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue
        return None

    def _try_dateutil_parser(self, date_str: str) -> Optional[datetime]:
        # Require at least one digit; the fuzzy parser otherwise returns today for plain words
        if not re.search(r'\d', date_str):
            return None
        try:
            return date_parser.parse(date_str, dayfirst=self.dayfirst, fuzzy=True)
        except (ValueError, OverflowError):
            return None

    def extract_date(self, text: Optional[str]) -> Optional[date]:
        """
        Find and parse the first date in free text.

        The best catalogue date match is tried first, then the whole text.
        """
        hit = self._matcher.best_hit(self._matcher.match(text), PatternCategory.DATE)
        if hit is not None:
            parsed = self.normalize(hit.value)
            if parsed:
                return parsed
        return self.normalize(text)


class AmountNormalizer:
    """
    Parses amount strings into ``Decimal``.

    Handles currency symbols and codes, German (1.234,56) and English
    (1,234.56) grouping, and a trailing or leading sign.

    Example:
        >>> normalizer = AmountNormalizer()
        >>> normalizer.normalize("1.190,00 EUR")
        Decimal('1190.00')
        >>> normalizer.normalize("$1,234.56")
        Decimal('1234.56')
    """

    CURRENCY_SYMBOLS = ['€', '$', '£']
    CURRENCY_CODES = ['EUR', 'USD', 'GBP', 'CHF']

    def __init__(self) -> None:
        self.currency_codes = get_config("postprocessing.amount.currency_codes", self.CURRENCY_CODES)
        self._matcher = RegexPatternMatcher()

    def normalize(self, amount_str: Optional[str]) -> Optional[Decimal]:
        """
        Parse an amount string.

        Returns:
            Decimal amount, or None if the string holds no number.
        """
        if not amount_str:
            return None

        cleaned = self._clean_amount_string(amount_str)
        if not cleaned or not re.search(r'\d', cleaned):
            return None

        cleaned = self._handle_european_format(cleaned)
        cleaned = cleaned.replace(',', '')

        value = to_decimal(cleaned)
        if value is None:
            logger.debug(f"Could not parse amount: {amount_str}")
        return value

    def _clean_amount_string(self, amount_str: str) -> str:
        amount_str = ' '.join(amount_str.split())

        for symbol in self.CURRENCY_SYMBOLS:
            amount_str = amount_str.replace(symbol, '')
        for code in self.currency_codes:
            amount_str = re.sub(rf'\b{code}\b', '', amount_str, flags=re.IGNORECASE)

        # Keep only digits, separators and sign
        amount_str = re.sub(r'[^\d,.\-]', '', amount_str)
        # Trailing minus (100,00-) as used on credit notes
        if amount_str.endswith('-') and not amount_str.startswith('-'):
            amount_str = '-' + amount_str[:-1]
        return amount_str.strip('.,')

    def _handle_european_format(self, amount_str: str) -> str:
        """Convert comma-decimal grouping to dot-decimal."""
        comma_pos = amount_str.rfind(',')
        dot_pos = amount_str.rfind('.')

        if comma_pos > dot_pos:
            after_comma = amount_str[comma_pos + 1:]
            if len(after_comma) <= 2 and after_comma.isdigit():
                return amount_str.replace('.', '').replace(',', '.')
            if amount_str.count(',') > 1 or len(after_comma) == 3:
                # Grouping only, no decimals
                return amount_str.replace(',', '')
        elif dot_pos > comma_pos and amount_str.count('.') > 1:
            # 1.234.567 is German grouping without decimals
            return amount_str.replace('.', '')
        return amount_str

    def extract_amount(self, text: Optional[str]) -> Optional[Decimal]:
        """
        Find and parse the last amount in free text.

        Total lines put the figure at the end ("Gesamt: 1.190,00 EUR"), so
        the last catalogue amount match wins; the whole text is the fallback.
        """
        amounts = [hit for hit in self._matcher.match(text) if hit.category == PatternCategory.AMOUNT]
        for hit in reversed(amounts):
            parsed = self.normalize(hit.value)
            if parsed is not None:
                return parsed
        return self.normalize(text)
