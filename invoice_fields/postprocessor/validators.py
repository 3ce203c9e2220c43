"""
Invoice Validators Module.

Field-level validation of assembled candidate invoices:
    - Invoice number length and character set
    - Invoice date plausibility window
    - Issuer address field lengths
    - Non-negative amounts and gross vs. net + VAT consistency
    - Warnings for very large totals and unusual VAT rates

Errors make a result invalid; warnings are informational.

Author: ML Engineering Team
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from config import get_config
from invoice_fields.domain.invoice import DEFAULT_VAT_TOLERANCE, CandidateInvoice
from invoice_fields.utils.helpers import to_decimal
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


INVOICE_NUMBER_PATTERN = re.compile(r'^[A-Za-z0-9\-/.]+$')


class ValidationResult:
    """
    Contains the result of validation checks.

    Attributes:
        is_valid: Overall validation result
        errors: List of error messages
        warnings: List of warning messages
        field_errors: Error messages per field
    """

    def __init__(self):
        self.is_valid = True
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.field_errors: Dict[str, List[str]] = {}

    def add_error(self, field: str, message: str) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(f"{field}: {message}")
        self.field_errors.setdefault(field, []).append(message)
        self.is_valid = False

    def add_warning(self, field: str, message: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(f"{field}: {message}")

    def has_error(self, field: str) -> bool:
        return field in self.field_errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'field_errors': self.field_errors,
        }

    def __repr__(self) -> str:
        return f"ValidationResult(valid={self.is_valid}, errors={len(self.errors)}, warnings={len(self.warnings)})"


class InvoiceValidator:
    """
    Validates candidate invoices.

    Example:
        >>> validator = InvoiceValidator()
        >>> result = validator.validate(invoice)
        >>> print(result.is_valid, result.errors)
    """

    def __init__(
        self,
        max_future_days: Optional[int] = None,
        max_past_years: Optional[int] = None,
        vat_tolerance: Optional[Decimal] = None,
        max_gross: Optional[Decimal] = None,
        today: Optional[date] = None
    ) -> None:
        """
        Initialize the validator.

        Args:
            max_future_days: Latest allowed invoice date, in days from today.
            max_past_years: Earliest allowed invoice date, in years before today.
            vat_tolerance: Allowed |net + VAT - gross|.
            max_gross: Gross totals above this raise a warning.
            today: Reference date; defaults to the current date.
        """
        self.max_future_days = int(max_future_days if max_future_days is not None
                                   else get_config("postprocessing.validation.max_future_days", 7))
        self.max_past_years = int(max_past_years if max_past_years is not None
                                  else get_config("postprocessing.validation.max_past_years", 10))
        self.vat_tolerance = to_decimal(vat_tolerance if vat_tolerance is not None
                                        else get_config("policy.amounts.vat_tolerance", DEFAULT_VAT_TOLERANCE))
        self.max_gross = to_decimal(max_gross if max_gross is not None
                                    else get_config("policy.amounts.max_gross", 1000000))
        self.today = today

    def validate(self, invoice: CandidateInvoice) -> ValidationResult:
        """Run every check and collect errors and warnings."""
        result = ValidationResult()
        self._validate_invoice_number(invoice, result)
        self._validate_invoice_date(invoice, result)
        self._validate_issuer(invoice, result)
        self._validate_financials(invoice, result)
        self._validate_extraction_info(invoice, result)

        if not result.is_valid:
            logger.debug(f"Invoice {invoice.invoice_number!r} failed validation: {result.errors}")
        return result

    def _validate_invoice_number(self, invoice: CandidateInvoice, result: ValidationResult) -> None:
        number = invoice.invoice_number
        if not number or not number.strip():
            result.add_error('invoice_number', "Invoice number is required")
            return
        if len(number) < 3:
            result.add_error('invoice_number', "Invoice number must be at least 3 characters long")
        if len(number) > 100:
            result.add_error('invoice_number', "Invoice number cannot exceed 100 characters")
        if not INVOICE_NUMBER_PATTERN.match(number):
            result.add_error('invoice_number', "Invoice number contains invalid characters")

    def _validate_invoice_date(self, invoice: CandidateInvoice, result: ValidationResult) -> None:
        if invoice.invoice_date is None:
            result.add_error('invoice_date', "Invoice date is required")
            return
        today = self.today or date.today()
        if invoice.invoice_date > today + relativedelta(days=self.max_future_days):
            result.add_error(
                'invoice_date', f"Invoice date cannot be more than {self.max_future_days} days in the future")
        if invoice.invoice_date < today - relativedelta(years=self.max_past_years):
            result.add_error(
                'invoice_date', f"Invoice date cannot be more than {self.max_past_years} years in the past")

    def _validate_issuer(self, invoice: CandidateInvoice, result: ValidationResult) -> None:
        issuer = invoice.issuer
        if not issuer.name or not issuer.name.strip():
            result.add_error('issuer_name', "Issuer name is required")
        elif len(issuer.name) > 200:
            result.add_error('issuer_name', "Issuer name cannot exceed 200 characters")

        limits = (('issuer_street', issuer.street, 200), ('issuer_postal_code', issuer.postal_code, 20),
                  ('issuer_city', issuer.city, 100), ('issuer_country', issuer.country, 100))
        for field, value, limit in limits:
            if value and len(value) > limit:
                result.add_error(field, f"Value cannot exceed {limit} characters")

    def _validate_financials(self, invoice: CandidateInvoice, result: ValidationResult) -> None:
        for field in ('net_total', 'vat_total', 'gross_total'):
            value = getattr(invoice, field)
            if value is not None and value < 0:
                result.add_error(field, "Amount cannot be negative")

        difference = invoice.total_difference()
        if difference is not None and difference > self.vat_tolerance:
            result.add_error(
                'gross_total',
                f"Gross total ({invoice.gross_total:.2f}) does not match net + VAT "
                f"({invoice.net_total + invoice.vat_total:.2f})"
            )

        if invoice.gross_total is not None and invoice.gross_total > self.max_gross:
            result.add_warning('gross_total', f"Gross total exceeds {self.max_gross:,.0f}, please verify")

        if invoice.net_total and invoice.vat_total and invoice.net_total > 0 and invoice.vat_total > 0:
            rate = invoice.vat_rate
            if rate < 0 or rate > 50:
                result.add_warning('vat_total', f"VAT rate of {rate:.1f}% seems unusual")

    def _validate_extraction_info(self, invoice: CandidateInvoice, result: ValidationResult) -> None:
        if not 0.0 <= invoice.extraction_confidence <= 1.0:
            result.add_error('extraction_confidence', "Extraction confidence must be between 0.0 and 1.0")
        if not invoice.model_version:
            result.add_warning('model_version', "Model version is not specified")
