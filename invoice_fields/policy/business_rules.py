"""
Invoice Business Rules.

Stateless checks over candidate invoices. None of them raise on missing
data: an absent value simply fails the check that needs it.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from config import get_config
from invoice_fields.domain.invoice import DEFAULT_VAT_TOLERANCE, CandidateInvoice
from invoice_fields.utils.helpers import to_decimal


DUPLICATE_WINDOW_DAYS = 7
MAX_GROSS = Decimal("1000000")
MIN_GROSS = Decimal("0.01")
MIN_VAT_RATE = Decimal("0")
MAX_VAT_RATE = Decimal("50")
STANDARD_VAT_RATES: Tuple[Decimal, ...] = (Decimal("0"), Decimal("7"), Decimal("19"), Decimal("21"))
VAT_RATE_TOLERANCE = Decimal("0.1")


@dataclass(frozen=True)
class RuleSettings:
    """Numeric bounds used by the rules."""
    duplicate_window_days: int = DUPLICATE_WINDOW_DAYS
    max_gross: Decimal = MAX_GROSS
    min_gross: Decimal = MIN_GROSS
    min_vat_rate: Decimal = MIN_VAT_RATE
    max_vat_rate: Decimal = MAX_VAT_RATE
    vat_tolerance: Decimal = DEFAULT_VAT_TOLERANCE
    standard_vat_rates: Tuple[Decimal, ...] = field(default=STANDARD_VAT_RATES)
    vat_rate_tolerance: Decimal = VAT_RATE_TOLERANCE

    @classmethod
    def from_config(cls) -> 'RuleSettings':
        rates = get_config("policy.vat.standard_rates", None)
        return cls(
            duplicate_window_days=int(get_config("policy.duplicate.window_days", DUPLICATE_WINDOW_DAYS)),
            max_gross=to_decimal(get_config("policy.amounts.max_gross", MAX_GROSS)),
            min_gross=to_decimal(get_config("policy.amounts.min_gross", MIN_GROSS)),
            min_vat_rate=to_decimal(get_config("policy.amounts.min_vat_rate", MIN_VAT_RATE)),
            max_vat_rate=to_decimal(get_config("policy.amounts.max_vat_rate", MAX_VAT_RATE)),
            vat_tolerance=to_decimal(get_config("policy.amounts.vat_tolerance", DEFAULT_VAT_TOLERANCE)),
            standard_vat_rates=tuple(to_decimal(r) for r in rates) if rates else STANDARD_VAT_RATES,
            vat_rate_tolerance=to_decimal(get_config("policy.vat.rate_tolerance", VAT_RATE_TOLERANCE)),
        )


DEFAULT_SETTINGS = RuleSettings()


def find_duplicates(
    candidate: CandidateInvoice,
    existing: Iterable[CandidateInvoice],
    window_days: int = DUPLICATE_WINDOW_DAYS
) -> List[CandidateInvoice]:
    """
    Existing invoices that duplicate ``candidate``.

    A duplicate has the same normalized invoice number, the same gross
    total and an invoice date at most ``window_days`` apart.
    """
    number = candidate.normalized_number
    if not number or candidate.gross_total is None or candidate.invoice_date is None:
        return []

    matches = []
    for other in existing:
        if other is candidate or other.invoice_date is None or other.gross_total is None:
            continue
        if (
            other.normalized_number == number
            and other.gross_total == candidate.gross_total
            and abs((other.invoice_date - candidate.invoice_date).days) <= window_days
        ):
            matches.append(other)
    return matches


def is_duplicate(
    candidate: CandidateInvoice,
    existing: Iterable[CandidateInvoice],
    window_days: int = DUPLICATE_WINDOW_DAYS
) -> bool:
    """
    Example:
        >>> first = CandidateInvoice("RE-2025-001", date(2025, 1, 15), gross_total=Decimal("1190.00"))
        >>> second = CandidateInvoice("RE-2025-001", date(2025, 1, 18), gross_total=Decimal("1190.00"))
        >>> is_duplicate(second, [first])
        True
    """
    return bool(find_duplicates(candidate, existing, window_days))


def is_suspicious_amount(candidate: CandidateInvoice, settings: RuleSettings = DEFAULT_SETTINGS) -> bool:
    """Gross outside [min_gross, max_gross] or VAT rate outside the allowed range."""
    gross = candidate.gross_total
    if gross is not None and (gross > settings.max_gross or gross < settings.min_gross):
        return True
    rate = candidate.vat_rate
    return rate < settings.min_vat_rate or rate > settings.max_vat_rate


def is_valid_vat(candidate: CandidateInvoice, tolerance: Decimal = DEFAULT_VAT_TOLERANCE) -> bool:
    """|net + VAT - gross| within tolerance; False when an amount is missing."""
    return candidate.is_valid(tolerance)


def is_standard_vat_rate(candidate: CandidateInvoice, settings: RuleSettings = DEFAULT_SETTINGS) -> bool:
    if not candidate.net_total or candidate.net_total <= 0 or candidate.vat_total is None:
        return False
    rate = candidate.vat_rate
    return any(abs(rate - standard) < settings.vat_rate_tolerance for standard in settings.standard_vat_rates)


def is_complete_address(candidate: CandidateInvoice) -> bool:
    return candidate.issuer.is_complete


def is_complete_financials(candidate: CandidateInvoice) -> bool:
    """All three amounts present and non-negative, gross positive."""
    amounts = (candidate.net_total, candidate.vat_total, candidate.gross_total)
    if any(a is None for a in amounts):
        return False
    return all(a >= 0 for a in amounts) and candidate.gross_total > 0


def missing_required_fields(candidate: CandidateInvoice) -> List[str]:
    """Invoice number and date; without them an invoice cannot be booked."""
    missing = []
    if not candidate.invoice_number or not candidate.invoice_number.strip():
        missing.append('invoice_number')
    if candidate.invoice_date is None:
        missing.append('invoice_date')
    return missing
