"""
Candidate Invoice Data Class.

The invoice record assembled from per-block predictions, before any
decision about it has been made.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from invoice_fields.utils.helpers import to_decimal


# Gross must equal net + VAT within this tolerance
DEFAULT_VAT_TOLERANCE = Decimal("0.02")

# Prefixes removed by normalize_invoice_number, longest first
INVOICE_NUMBER_PREFIXES = [
    "rechnungsnummer:",
    "rechnungs-nr.:",
    "rechnungs-nr:",
    "rechnung nr.:",
    "rechnung nr.",
    "invoice no.:",
    "invoice no:",
    "invoice #",
    "rnr-",
    "inv-",
    "re-",
    "rg-",
]


def normalize_invoice_number(value: Optional[str]) -> Optional[str]:
    """
    Normalize an invoice number for comparison.

    Strips common label prefixes, surrounding punctuation and
    whitespace and upper-cases the remainder.

    Example:
        >>> normalize_invoice_number("Rechnungs-Nr.: re-2025-001")
        "2025-001"
        >>> normalize_invoice_number("RE-2025-001")
        "2025-001"
    """
    if value is None:
        return None
    result = " ".join(value.split())
    changed = True
    while changed and result:
        changed = False
        lowered = result.lower()
        for prefix in INVOICE_NUMBER_PREFIXES:
            if lowered.startswith(prefix) and len(result) > len(prefix):
                result = result[len(prefix):].strip()
                changed = True
                break
    result = re.sub(r"\s+", "", result).strip(".:#")
    return result.upper() or None


@dataclass(frozen=True)
class Address:
    """Issuer address parts."""
    name: Optional[str] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return all(
            part is not None and part.strip()
            for part in (self.name, self.street, self.postal_code, self.city)
        )

    def format(self) -> str:
        city_line = " ".join(p for p in (self.postal_code, self.city) if p)
        return ", ".join(p for p in (self.name, self.street, city_line, self.country) if p)


@dataclass
class CandidateInvoice:
    """
    Invoice record aggregated from block predictions.

    Attributes:
        invoice_number: Invoice identifier as extracted
        invoice_date: Date of issue
        issuer: Issuer address parts
        net_total: Net amount
        vat_total: VAT amount
        gross_total: Gross amount
        extraction_confidence: Invoice-level confidence (0-1)
        model_version: Version of the model that produced the predictions
        field_confidences: Confidence of the block chosen for each field
        document_id: Source document identifier

    Example:
        >>> invoice = CandidateInvoice(
        ...     invoice_number="RE-2025-001",
        ...     net_total=Decimal("1000.00"),
        ...     vat_total=Decimal("190.00"),
        ...     gross_total=Decimal("1190.00"),
        ... )
        >>> invoice.vat_rate
        Decimal('19')
    """
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    issuer: Address = field(default_factory=Address)
    net_total: Optional[Decimal] = None
    vat_total: Optional[Decimal] = None
    gross_total: Optional[Decimal] = None
    extraction_confidence: float = 0.0
    model_version: Optional[str] = None
    field_confidences: Dict[str, float] = field(default_factory=dict)
    document_id: Optional[str] = None

    def __post_init__(self):
        self.net_total = to_decimal(self.net_total)
        self.vat_total = to_decimal(self.vat_total)
        self.gross_total = to_decimal(self.gross_total)

    @property
    def normalized_number(self) -> Optional[str]:
        return normalize_invoice_number(self.invoice_number)

    @property
    def vat_rate(self) -> Decimal:
        """VAT as a percentage of net; 0 unless net is positive and VAT present."""
        if self.net_total is None or self.net_total <= 0 or self.vat_total is None:
            return Decimal("0")
        return (self.vat_total / self.net_total * 100).normalize()

    def total_difference(self) -> Optional[Decimal]:
        """Absolute difference between net + VAT and gross."""
        if None in (self.net_total, self.vat_total, self.gross_total):
            return None
        return abs(self.net_total + self.vat_total - self.gross_total)

    def is_valid(self, tolerance: Decimal = DEFAULT_VAT_TOLERANCE) -> bool:
        """True when gross equals net + VAT within ``tolerance``."""
        difference = self.total_difference()
        return difference is not None and difference <= to_decimal(tolerance)

    @property
    def missing_fields(self) -> List[str]:
        missing = []
        if not self.invoice_number:
            missing.append('invoice_number')
        if self.invoice_date is None:
            missing.append('invoice_date')
        if not self.issuer.name:
            missing.append('issuer_name')
        for name in ('net_total', 'vat_total', 'gross_total'):
            if getattr(self, name) is None:
                missing.append(name)
        return missing

    def to_dict(self) -> Dict[str, Any]:
        def _amount(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else f"{value:.2f}"

        return {
            'invoice_number': self.invoice_number,
            'invoice_date': self.invoice_date.isoformat() if self.invoice_date else None,
            'issuer_name': self.issuer.name,
            'issuer_street': self.issuer.street,
            'issuer_postal_code': self.issuer.postal_code,
            'issuer_city': self.issuer.city,
            'issuer_country': self.issuer.country,
            'net_total': _amount(self.net_total),
            'vat_total': _amount(self.vat_total),
            'gross_total': _amount(self.gross_total),
            'vat_rate': f"{self.vat_rate:.2f}",
            'extraction_confidence': round(self.extraction_confidence, 4),
            'model_version': self.model_version,
            'field_confidences': dict(self.field_confidences),
            'document_id': self.document_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CandidateInvoice':
        """Build from a to_dict()-style mapping (e.g. stored invoices)."""
        invoice_date = data.get('invoice_date')
        if isinstance(invoice_date, str) and invoice_date:
            invoice_date = date.fromisoformat(invoice_date[:10])
        return cls(
            invoice_number=data.get('invoice_number'),
            invoice_date=invoice_date or None,
            issuer=Address(
                name=data.get('issuer_name'),
                street=data.get('issuer_street'),
                postal_code=data.get('issuer_postal_code'),
                city=data.get('issuer_city'),
                country=data.get('issuer_country'),
            ),
            net_total=data.get('net_total'),
            vat_total=data.get('vat_total'),
            gross_total=data.get('gross_total'),
            extraction_confidence=float(data.get('extraction_confidence', 0.0) or 0.0),
            model_version=data.get('model_version'),
            field_confidences=dict(data.get('field_confidences') or {}),
            document_id=data.get('document_id'),
        )

    def __repr__(self) -> str:
        return (
            f"CandidateInvoice(number={self.invoice_number!r}, date={self.invoice_date}, "
            f"gross={self.gross_total}, confidence={self.extraction_confidence:.2f})"
        )
