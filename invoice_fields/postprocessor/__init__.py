"""
Post-Processing Module.

Turns block predictions into a validated candidate invoice:
    - Date normalization (German, ISO, dateutil fallback)
    - Amount normalization to Decimal
    - Field aggregation and invoice-level confidence
    - Invoice validation

Author: ML Engineering Team
"""

from .normalizers import DateNormalizer, AmountNormalizer
from .validators import InvoiceValidator, ValidationResult
from .aggregator import InvoiceAssembler, parse_address

__all__ = [
    'DateNormalizer',
    'AmountNormalizer',
    'InvoiceValidator',
    'ValidationResult',
    'InvoiceAssembler',
    'parse_address',
]
