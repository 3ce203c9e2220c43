"""
Domain Module.

Plain data records shared by every stage of the pipeline:
    - FieldType: closed label space
    - TextBlock: positioned text from the document parser
    - LabeledBlock: block with actual and predicted labels
    - CandidateInvoice: aggregated invoice record
    - filters: composable in-memory predicates
"""

from .field_type import FieldType, ALL_FIELD_TYPES
from .text_block import TextBlock
from .labeled_block import LabeledBlock
from .invoice import Address, CandidateInvoice, normalize_invoice_number

__all__ = [
    'FieldType',
    'ALL_FIELD_TYPES',
    'TextBlock',
    'LabeledBlock',
    'Address',
    'CandidateInvoice',
    'normalize_invoice_number',
]
