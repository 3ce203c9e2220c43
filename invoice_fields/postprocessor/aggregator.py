"""
Invoice Assembler Module.

Turns per-block predictions into one candidate invoice:
    - per field type the most confident block wins, earliest in reading
      order on ties
    - values are parsed from the winning block's text
    - issuer address is assembled from all address blocks on the page
    - invoice-level confidence aggregates the required fields

Author: ML Engineering Team
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import get_config
from invoice_fields.domain.field_type import FieldType
from invoice_fields.domain.invoice import Address, CandidateInvoice, normalize_invoice_number
from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.patterns import PatternCategory, RegexPatternMatcher
from invoice_fields.model_inference.prediction import Prediction
from invoice_fields.postprocessor.normalizers import AmountNormalizer, DateNormalizer
from invoice_fields.utils.exceptions import ConfigurationError
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


CONFIDENCE_MODES = ('min', 'mean')

DEFAULT_REQUIRED_FIELDS = [
    FieldType.INVOICE_NUMBER,
    FieldType.INVOICE_DATE,
    FieldType.ISSUER_ADDRESS,
    FieldType.NET_TOTAL,
    FieldType.VAT_TOTAL,
    FieldType.GROSS_TOTAL,
]

POSTAL_CITY_PATTERN = re.compile(r'(\d{5})\s*(.+)')

# Preferred invoice-number patterns, most specific first
NUMBER_PATTERN_ORDER = ['invoice_number_keyword', 'invoice_number_prefixed', 'invoice_number_identifier']

# Address lines carrying these are contact details, not address parts
CONTACT_CATEGORIES = (PatternCategory.PHONE, PatternCategory.EMAIL)

PredictedBlock = Tuple[TextBlock, Prediction]


class InvoiceAssembler:
    """
    Assembles CandidateInvoices from (TextBlock, Prediction) pairs.

    Attributes:
        confidence_mode: 'min' or 'mean' over the required fields
        required_fields: Fields that make up the invoice-level confidence

    Example:
        >>> assembler = InvoiceAssembler()
        >>> invoice = assembler.assemble(zip(blocks, predictions))
        >>> invoice.extraction_confidence
        0.82
    """

    def __init__(
        self,
        confidence_mode: Optional[str] = None,
        required_fields: Optional[Sequence[FieldType]] = None
    ) -> None:
        self.confidence_mode = (confidence_mode or get_config("aggregation.confidence_mode", "min")).lower()
        if self.confidence_mode not in CONFIDENCE_MODES:
            raise ConfigurationError(
                f"Unknown confidence mode: {self.confidence_mode}",
                {"allowed": list(CONFIDENCE_MODES)}
            )

        if required_fields is None:
            configured = get_config("aggregation.required_fields", None)
            required_fields = [FieldType.parse(name) for name in configured] if configured else DEFAULT_REQUIRED_FIELDS
        self.required_fields = [f for f in required_fields if f != FieldType.NONE]

        self.date_normalizer = DateNormalizer()
        self.amount_normalizer = AmountNormalizer()
        self._matcher = RegexPatternMatcher()

    def assemble(self, predictions: Iterable[PredictedBlock]) -> CandidateInvoice:
        """
        Build a candidate invoice.

        Args:
            predictions: (block, prediction) pairs for one document.

        Returns:
            CandidateInvoice; fields without a block, or whose text cannot
            be parsed, stay None and contribute 0 confidence.
        """
        pairs = sorted(predictions, key=lambda pair: pair[0].sort_key)
        winners = self._select_winners(pairs)

        values: Dict[FieldType, object] = {}
        confidences: Dict[FieldType, float] = {}

        for field, (block, prediction) in winners.items():
            if field == FieldType.ISSUER_ADDRESS:
                value = self._parse_address(pairs, block)
            else:
                value = self._parse_value(field, block.text)

            if value is None:
                logger.debug(f"Could not parse {field.value} from {block.text!r}")
                continue
            values[field] = value
            confidences[field] = prediction.confidence

        invoice = CandidateInvoice(
            invoice_number=values.get(FieldType.INVOICE_NUMBER),
            invoice_date=values.get(FieldType.INVOICE_DATE),
            issuer=values.get(FieldType.ISSUER_ADDRESS) or Address(),
            net_total=values.get(FieldType.NET_TOTAL),
            vat_total=values.get(FieldType.VAT_TOTAL),
            gross_total=values.get(FieldType.GROSS_TOTAL),
            extraction_confidence=self.aggregate_confidence(confidences),
            model_version=next((p.model_version for _, p in pairs if p.model_version), None),
            field_confidences={field.value: c for field, c in confidences.items()},
            document_id=next((b.document_id for b, _ in pairs if b.document_id), None),
        )

        logger.debug(f"Assembled {invoice!r} from {len(pairs)} blocks")
        return invoice

    def aggregate_confidence(self, confidences: Dict[FieldType, float]) -> float:
        """Combine per-field confidences; a missing required field counts as 0."""
        if not self.required_fields:
            return 0.0
        scores = [confidences.get(field, 0.0) for field in self.required_fields]
        if self.confidence_mode == 'mean':
            return float(sum(scores) / len(scores))
        return float(min(scores))

    @staticmethod
    def _select_winners(pairs: List[PredictedBlock]) -> Dict[FieldType, PredictedBlock]:
        winners: Dict[FieldType, PredictedBlock] = {}
        # pairs are in reading order, so strict > keeps the earliest block on ties
        for block, prediction in pairs:
            field = prediction.label
            if field == FieldType.NONE:
                continue
            current = winners.get(field)
            if current is None or prediction.confidence > current[1].confidence:
                winners[field] = (block, prediction)
        return winners

    def _parse_value(self, field: FieldType, text: str):
        if field == FieldType.INVOICE_NUMBER:
            return self._parse_invoice_number(text)
        if field == FieldType.INVOICE_DATE:
            return self.date_normalizer.extract_date(text)
        if field.is_amount:
            return self.amount_normalizer.extract_amount(text)
        return None

    def _parse_invoice_number(self, text: str) -> Optional[str]:
        hits = [h for h in self._matcher.match(text) if h.category == PatternCategory.INVOICE_NUMBER]
        for name in NUMBER_PATTERN_ORDER:
            for hit in hits:
                if hit.pattern == name:
                    return normalize_invoice_number(hit.value)
        # No catalogue match: take what follows a label colon, else the whole text
        candidate = text.split(':', 1)[1] if ':' in text else text
        return normalize_invoice_number(candidate)

    def _parse_address(self, pairs: List[PredictedBlock], anchor: TextBlock) -> Optional[Address]:
        lines = [
            block.text.strip() for block, prediction in pairs
            if prediction.label == FieldType.ISSUER_ADDRESS
            and block.page_number == anchor.page_number
            and block.text and block.text.strip()
            and not self._is_contact_line(block.text)
        ]
        return parse_address(lines)

    def _is_contact_line(self, text: str) -> bool:
        """Phone or e-mail lines inside an address block."""
        return any(self._matcher.matches_category(text, category) for category in CONTACT_CATEGORIES)


def parse_address(lines: List[str]) -> Optional[Address]:
    """
    Split address lines into parts.

    The first line is the name, a line matching ``12345 City`` gives postal
    code and city, and the first other line is the street. A single line is
    split on commas first.

    Example:
        >>> parse_address(["Muster GmbH, Hauptstr. 1, 10115 Berlin"])
        Address(name='Muster GmbH', street='Hauptstr. 1', postal_code='10115', city='Berlin', country=None)
    """
    if len(lines) == 1:
        lines = [part.strip() for part in lines[0].split(',') if part.strip()]
    if not lines:
        return None

    name, rest = lines[0], lines[1:]
    street = postal_code = city = country = None
    for line in rest:
        match = POSTAL_CITY_PATTERN.match(line)
        if match and postal_code is None:
            postal_code, city = match.group(1), match.group(2).strip()
        elif street is None and postal_code is None:
            street = line
        elif postal_code is not None and country is None:
            country = line
        elif street is None:
            street = line

    return Address(name=name, street=street, postal_code=postal_code, city=city, country=country)
