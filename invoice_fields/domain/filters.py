"""
Filter Objects Module.

Composable predicates for selecting labeled blocks and candidate invoices
in memory. Filters combine with ``&``, ``|`` and ``~``:

    >>> needs_review = ByPage(1) & (LowConfidence(0.5) | Misclassified())
    >>> needs_review.apply(blocks)

Author: ML Engineering Team
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional

from invoice_fields.domain.field_type import FieldType
from invoice_fields.domain.invoice import CandidateInvoice, normalize_invoice_number
from invoice_fields.domain.labeled_block import LabeledBlock


class Filter:
    """Base predicate. Subclasses implement matches()."""

    def matches(self, item: Any) -> bool:
        raise NotImplementedError

    def __call__(self, item: Any) -> bool:
        return self.matches(item)

    def apply(self, items: Iterable[Any]) -> List[Any]:
        return [item for item in items if self.matches(item)]

    def __and__(self, other: 'Filter') -> 'Filter':
        return AllOf((self, other))

    def __or__(self, other: 'Filter') -> 'Filter':
        return AnyOf((self, other))

    def __invert__(self) -> 'Filter':
        return Not(self)


@dataclass(frozen=True)
class AllOf(Filter):
    filters: tuple

    def matches(self, item: Any) -> bool:
        return all(f.matches(item) for f in self.filters)


@dataclass(frozen=True)
class AnyOf(Filter):
    filters: tuple

    def matches(self, item: Any) -> bool:
        return any(f.matches(item) for f in self.filters)


@dataclass(frozen=True)
class Not(Filter):
    inner: Filter

    def matches(self, item: Any) -> bool:
        return not self.inner.matches(item)


@dataclass(frozen=True)
class Where(Filter):
    """Ad-hoc filter from a plain callable."""
    predicate: Callable[[Any], bool]

    def matches(self, item: Any) -> bool:
        return bool(self.predicate(item))


# =============================================================================
# BLOCK FILTERS
# =============================================================================

@dataclass(frozen=True)
class ByPage(Filter):
    page_number: int

    def matches(self, item: LabeledBlock) -> bool:
        return item.block.page_number == self.page_number


@dataclass(frozen=True)
class ByPredictedLabel(Filter):
    label: FieldType

    def matches(self, item: LabeledBlock) -> bool:
        return item.predicted_label == self.label


@dataclass(frozen=True)
class ByActualLabel(Filter):
    label: FieldType

    def matches(self, item: LabeledBlock) -> bool:
        return item.actual_label == self.label


@dataclass(frozen=True)
class ByConfidenceRange(Filter):
    """Prediction confidence within [minimum, maximum]."""
    minimum: float = 0.0
    maximum: float = 1.0

    def matches(self, item: LabeledBlock) -> bool:
        confidence = item.prediction_confidence
        return confidence is not None and self.minimum <= confidence <= self.maximum


@dataclass(frozen=True)
class HighConfidence(Filter):
    threshold: float = 0.8

    def matches(self, item: LabeledBlock) -> bool:
        return item.is_high_confidence(self.threshold)


@dataclass(frozen=True)
class LowConfidence(Filter):
    threshold: float = 0.5

    def matches(self, item: LabeledBlock) -> bool:
        return item.is_low_confidence(self.threshold)


@dataclass(frozen=True)
class CorrectlyPredicted(Filter):

    def matches(self, item: LabeledBlock) -> bool:
        return item.is_correctly_predicted


@dataclass(frozen=True)
class Misclassified(Filter):

    def matches(self, item: LabeledBlock) -> bool:
        return item.is_labeled and item.is_predicted and item.actual_label != item.predicted_label


@dataclass(frozen=True)
class Unlabeled(Filter):

    def matches(self, item: LabeledBlock) -> bool:
        return not item.is_labeled


@dataclass(frozen=True)
class ByTextContains(Filter):
    needle: str
    case_sensitive: bool = False

    def matches(self, item: LabeledBlock) -> bool:
        text = item.block.text or ""
        if self.case_sensitive:
            return self.needle in text
        return self.needle.lower() in text.lower()


@dataclass(frozen=True)
class ByPosition(Filter):
    """Block top-left corner inside the given rectangle."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def matches(self, item: LabeledBlock) -> bool:
        block = item.block
        return self.min_x <= block.x <= self.max_x and self.min_y <= block.y <= self.max_y


# =============================================================================
# INVOICE FILTERS
# =============================================================================

@dataclass(frozen=True)
class ByInvoiceNumber(Filter):
    """Matches on the normalized invoice number."""
    invoice_number: str

    def matches(self, item: CandidateInvoice) -> bool:
        wanted = normalize_invoice_number(self.invoice_number)
        return wanted is not None and item.normalized_number == wanted


@dataclass(frozen=True)
class ByIssuerName(Filter):
    name: str

    def matches(self, item: CandidateInvoice) -> bool:
        return bool(item.issuer.name) and self.name.lower() in item.issuer.name.lower()


@dataclass(frozen=True)
class ByDateRange(Filter):
    start: Optional[date] = None
    end: Optional[date] = None

    def matches(self, item: CandidateInvoice) -> bool:
        if item.invoice_date is None:
            return False
        if self.start is not None and item.invoice_date < self.start:
            return False
        if self.end is not None and item.invoice_date > self.end:
            return False
        return True


@dataclass(frozen=True)
class ByAmountRange(Filter):
    """Gross total within [minimum, maximum]."""
    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None

    def matches(self, item: CandidateInvoice) -> bool:
        gross = item.gross_total
        if gross is None:
            return False
        if self.minimum is not None and gross < Decimal(str(self.minimum)):
            return False
        if self.maximum is not None and gross > Decimal(str(self.maximum)):
            return False
        return True


@dataclass(frozen=True)
class ByConfidenceThreshold(Filter):
    threshold: float

    def matches(self, item: CandidateInvoice) -> bool:
        return item.extraction_confidence >= self.threshold


@dataclass(frozen=True)
class ByModelVersion(Filter):
    model_version: str

    def matches(self, item: Any) -> bool:
        return getattr(item, 'model_version', None) == self.model_version
