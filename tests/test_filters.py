"""
Tests for block and invoice filter objects.
"""

from datetime import date
from decimal import Decimal

import pytest

from invoice_fields.domain.field_type import FieldType
from invoice_fields.domain.filters import (
    ByActualLabel,
    ByAmountRange,
    ByConfidenceRange,
    ByConfidenceThreshold,
    ByDateRange,
    ByInvoiceNumber,
    ByIssuerName,
    ByModelVersion,
    ByPage,
    ByPosition,
    ByPredictedLabel,
    ByTextContains,
    CorrectlyPredicted,
    Filter,
    HighConfidence,
    LowConfidence,
    Misclassified,
    Unlabeled,
    Where,
)
from invoice_fields.domain.invoice import Address, CandidateInvoice
from invoice_fields.domain.labeled_block import LabeledBlock
from invoice_fields.domain.text_block import TextBlock


def _labeled(text, page_number=1, actual=None, predicted=None, confidence=0.9, x=50, y=100) -> LabeledBlock:
    labeled = LabeledBlock(TextBlock(text, page_number=page_number, x=x, y=y, width=100, height=12),
                           actual_label=actual)
    if predicted is not None:
        labeled.set_prediction(predicted, confidence, "v1.0")
    return labeled


def _invoice(**overrides) -> CandidateInvoice:
    defaults = {
        'invoice_number': "RE-2025-001",
        'invoice_date': date(2025, 1, 15),
        'issuer': Address("Muster GmbH", "Hauptstraße 12", "10115", "Berlin"),
        'net_total': Decimal("1000.00"),
        'vat_total': Decimal("190.00"),
        'gross_total': Decimal("1190.00"),
        'extraction_confidence': 0.9,
        'model_version': "v1.0",
    }
    defaults.update(overrides)
    return CandidateInvoice(**defaults)


@pytest.fixture
def blocks():
    return [
        _labeled("Muster GmbH", actual=FieldType.ISSUER_ADDRESS, predicted=FieldType.ISSUER_ADDRESS,
                 confidence=0.95, y=40),
        _labeled("Gesamtbetrag: 1.190,00 EUR", actual=FieldType.GROSS_TOTAL, predicted=FieldType.NET_TOTAL,
                 confidence=0.55, x=380, y=632),
        _labeled("Vielen Dank", page_number=2, predicted=FieldType.NONE, confidence=0.4, y=780),
        _labeled("Seite 2 von 2", page_number=2),
    ]


# =============================================================================
# BLOCK FILTERS
# =============================================================================

class TestBlockFilters:
    def test_by_page(self, blocks):
        assert [b.block.text for b in ByPage(2).apply(blocks)] == ["Vielen Dank", "Seite 2 von 2"]

    def test_by_labels(self, blocks):
        assert len(ByPredictedLabel(FieldType.NET_TOTAL).apply(blocks)) == 1
        assert len(ByActualLabel(FieldType.GROSS_TOTAL).apply(blocks)) == 1

    def test_confidence_filters(self, blocks):
        assert len(HighConfidence().apply(blocks)) == 1
        assert len(LowConfidence().apply(blocks)) == 1
        assert len(ByConfidenceRange(0.5, 0.96).apply(blocks)) == 2

    def test_unpredicted_block_has_no_confidence(self, blocks):
        assert not ByConfidenceRange().matches(blocks[3])

    def test_prediction_correctness(self, blocks):
        assert CorrectlyPredicted().apply(blocks) == [blocks[0]]
        assert Misclassified().apply(blocks) == [blocks[1]]
        assert Unlabeled().apply(blocks) == blocks[2:]

    def test_text_contains(self, blocks):
        assert ByTextContains("gesamt").apply(blocks) == [blocks[1]]
        assert ByTextContains("gesamt", case_sensitive=True).apply(blocks) == []

    def test_position(self, blocks):
        assert ByPosition(300, 600, 595, 700).apply(blocks) == [blocks[1]]

    def test_model_version(self, blocks):
        assert len(ByModelVersion("v1.0").apply(blocks)) == 3


class TestCombinators:
    def test_and_or_not(self, blocks):
        needs_review = ByPage(1) & (LowConfidence(0.6) | Misclassified())
        assert needs_review.apply(blocks) == [blocks[1]]
        assert (~ByPage(1)).apply(blocks) == blocks[2:]

    def test_where(self, blocks):
        short = Where(lambda b: len(b.block.text) < 12)
        assert short.apply(blocks) == [blocks[0], blocks[2]]

    def test_filters_are_callable(self, blocks):
        assert ByPage(1)(blocks[0])

    def test_base_filter_is_abstract(self):
        with pytest.raises(NotImplementedError):
            Filter().matches(None)


# =============================================================================
# INVOICE FILTERS
# =============================================================================

class TestInvoiceFilters:
    def test_invoice_number_is_normalized(self):
        assert ByInvoiceNumber("re-2025-001").matches(_invoice())
        assert not ByInvoiceNumber("RE-2025-002").matches(_invoice())
        assert not ByInvoiceNumber("").matches(_invoice())

    def test_issuer_name(self):
        assert ByIssuerName("muster").matches(_invoice())
        assert not ByIssuerName("muster").matches(_invoice(issuer=Address()))

    @pytest.mark.parametrize("start, end, matches", [
        (None, None, True),
        (date(2025, 1, 15), date(2025, 1, 15), True),
        (date(2025, 1, 16), None, False),
        (None, date(2025, 1, 14), False),
    ])
    def test_date_range(self, start, end, matches):
        assert ByDateRange(start, end).matches(_invoice()) is matches

    def test_date_range_without_date(self):
        assert not ByDateRange().matches(_invoice(invoice_date=None))

    def test_amount_range(self):
        assert ByAmountRange(1000, 1190).matches(_invoice())
        assert not ByAmountRange(maximum=Decimal("1189.99")).matches(_invoice())
        assert not ByAmountRange().matches(_invoice(gross_total=None))

    def test_confidence_threshold(self):
        invoices = [_invoice(extraction_confidence=c) for c in (0.2, 0.8, 0.95)]
        assert len(ByConfidenceThreshold(0.8).apply(invoices)) == 2

    def test_combined(self):
        invoices = [
            _invoice(),
            _invoice(invoice_number="RE-2025-002", gross_total=Decimal("50.00")),
            _invoice(invoice_number="RE-2025-003", model_version="v0.9"),
        ]
        selected = (ByModelVersion("v1.0") & ~ByAmountRange(maximum=100)).apply(invoices)
        assert selected == [invoices[0]]
