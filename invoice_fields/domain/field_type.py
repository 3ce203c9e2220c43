"""
Field Type Enumeration.

The closed label space of the classifier. Declaration order defines the
class index used in probability vectors, so new members may only be
appended together with a feature schema / model version bump.

Author: ML Engineering Team
"""

from enum import Enum
from typing import List, Union


class FieldType(Enum):
    """Semantic category of a text block."""

    NONE = "None"
    INVOICE_NUMBER = "InvoiceNumber"
    INVOICE_DATE = "InvoiceDate"
    ISSUER_ADDRESS = "IssuerAddress"
    NET_TOTAL = "NetTotal"
    VAT_TOTAL = "VatTotal"
    GROSS_TOTAL = "GrossTotal"

    @property
    def class_index(self) -> int:
        return _INDEX[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_amount(self) -> bool:
        return self in (FieldType.NET_TOTAL, FieldType.VAT_TOTAL, FieldType.GROSS_TOTAL)

    @classmethod
    def from_index(cls, index: int) -> 'FieldType':
        return ALL_FIELD_TYPES[index]

    @classmethod
    def parse(cls, label: Union[str, 'FieldType', None]) -> 'FieldType':
        """
        Parse a label from storage or user input.

        Accepts enum members, member names (``INVOICE_NUMBER``), stored
        values (``InvoiceNumber``) and case/underscore variants of either.
        Blank input maps to NONE.

        Raises:
            ValueError: If the label names no field type.

        Example:
            >>> FieldType.parse("gross_total")
            <FieldType.GROSS_TOTAL: 'GrossTotal'>
        """
        if isinstance(label, FieldType):
            return label
        if label is None or not str(label).strip():
            return cls.NONE

        key = str(label).strip().replace("_", "").replace("-", "").replace(" ", "").lower()
        for member in cls:
            if key in (member.name.replace("_", "").lower(), member.value.lower()):
                return member
        raise ValueError(f"Unknown field type: {label!r}")


ALL_FIELD_TYPES: List[FieldType] = list(FieldType)

_INDEX = {member: i for i, member in enumerate(ALL_FIELD_TYPES)}

_DISPLAY_NAMES = {
    FieldType.NONE: "None",
    FieldType.INVOICE_NUMBER: "Invoice Number",
    FieldType.INVOICE_DATE: "Invoice Date",
    FieldType.ISSUER_ADDRESS: "Issuer Address",
    FieldType.NET_TOTAL: "Net Total",
    FieldType.VAT_TOTAL: "VAT Total",
    FieldType.GROSS_TOTAL: "Gross Total",
}
