"""
Tests for the domain records: field types, blocks and candidate invoices.
"""

from datetime import date
from decimal import Decimal

import pytest

from invoice_fields.domain import (
    Address,
    CandidateInvoice,
    FieldType,
    LabeledBlock,
    TextBlock,
    normalize_invoice_number,
)


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
        'document_id': "doc-001",
    }
    defaults.update(overrides)
    return CandidateInvoice(**defaults)


# =============================================================================
# FIELD TYPE
# =============================================================================

class TestFieldType:
    @pytest.mark.parametrize("label", ["gross_total", "GrossTotal", "GROSS_TOTAL", " grosstotal ", "Gross-Total"])
    def test_parse_variants(self, label):
        assert FieldType.parse(label) == FieldType.GROSS_TOTAL

    @pytest.mark.parametrize("label", [None, "", "   "])
    def test_blank_is_none(self, label):
        assert FieldType.parse(label) == FieldType.NONE

    def test_unknown(self):
        with pytest.raises(ValueError):
            FieldType.parse("Discount")

    def test_class_index_round_trip(self):
        for index, field_type in enumerate(FieldType):
            assert field_type.class_index == index
            assert FieldType.from_index(index) == field_type

    def test_amount_types(self):
        assert {f for f in FieldType if f.is_amount} == {
            FieldType.NET_TOTAL, FieldType.VAT_TOTAL, FieldType.GROSS_TOTAL,
        }

    def test_display_name(self):
        assert FieldType.VAT_TOTAL.display_name == "VAT Total"


# =============================================================================
# BLOCKS
# =============================================================================

class TestTextBlock:
    def test_geometry(self):
        block = TextBlock("Muster GmbH", x=50, y=40, width=100, height=12)

        assert block.center_x == 100.0
        assert block.center_y == 46.0
        assert block.is_valid

    @pytest.mark.parametrize("overrides", [
        {'text': "   "},
        {'width': 0},
        {'height': -1},
        {'page_number': 0},
    ])
    def test_invalid_blocks(self, overrides):
        values = {'text': "Muster GmbH", 'width': 100, 'height': 12, 'page_number': 1}
        values.update(overrides)
        assert not TextBlock(**values).is_valid

    def test_sort_key(self):
        blocks = [
            TextBlock("c", page_number=2, line_index=0),
            TextBlock("b", page_number=1, line_index=1),
            TextBlock("a", page_number=1, line_index=0),
        ]
        assert [b.text for b in sorted(blocks, key=lambda b: b.sort_key)] == ["a", "b", "c"]

    def test_dict_round_trip(self):
        block = TextBlock("Summe", page_number=2, line_index=4, x=1.5, y=2.5, width=3, height=4,
                          page_width=595, page_height=842, ordinal=7, document_id="doc-1")
        assert TextBlock.from_dict(block.to_dict()) == block

    def test_from_dict_defaults(self):
        block = TextBlock.from_dict({'text': None})
        assert block.text == ""
        assert block.page_number == 1

    def test_blocks_are_immutable(self):
        block = TextBlock("Summe")
        with pytest.raises(AttributeError):
            block.text = "Total"


class TestLabeledBlock:
    def test_set_prediction(self):
        labeled = LabeledBlock(TextBlock("Summe"), actual_label=FieldType.GROSS_TOTAL)
        labeled.set_prediction(FieldType.GROSS_TOTAL, 0.93, "v1.0")

        assert labeled.is_correctly_predicted
        assert labeled.is_high_confidence()
        assert not labeled.is_low_confidence()
        assert labeled.model_version == "v1.0"
        assert labeled.predicted_at is not None

    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_range(self, confidence):
        with pytest.raises(ValueError):
            LabeledBlock(TextBlock("Summe")).set_prediction(FieldType.NONE, confidence)

    def test_unlabeled_is_not_correct(self):
        labeled = LabeledBlock(TextBlock("Summe"))
        labeled.set_prediction(FieldType.NONE, 0.4)

        assert not labeled.is_correctly_predicted
        assert labeled.is_low_confidence()
        assert labeled.is_low_confidence(threshold=0.3) is False

    def test_to_dict(self):
        labeled = LabeledBlock(TextBlock("Summe"), actual_label=FieldType.NET_TOTAL)
        data = labeled.to_dict()

        assert data['text'] == "Summe"
        assert data['actual_label'] == "NetTotal"
        assert data['predicted_label'] is None


# =============================================================================
# INVOICE
# =============================================================================

class TestInvoiceNumber:
    @pytest.mark.parametrize("raw, normalized", [
        ("RE-2025-001", "2025-001"),
        ("Rechnungs-Nr.: re-2025-001", "2025-001"),
        ("INV-123", "123"),
        ("Invoice No.: A 77", "A77"),
        ("  2025 / 17 ", "2025/17"),
        ("", None),
        (None, None),
    ])
    def test_normalize(self, raw, normalized):
        assert normalize_invoice_number(raw) == normalized

    def test_bare_prefix_is_kept(self):
        assert normalize_invoice_number("RE-") == "RE-"


class TestCandidateInvoice:
    def test_vat_rate(self):
        assert _invoice().vat_rate == Decimal("19")

    @pytest.mark.parametrize("net", [Decimal("0"), None, Decimal("-1000.00")])
    def test_vat_rate_without_positive_net(self, net):
        assert _invoice(net_total=net).vat_rate == Decimal("0")

    def test_vat_rate_without_vat(self):
        assert _invoice(vat_total=None).vat_rate == Decimal("0")

    def test_credit_note_vat_rate(self):
        credit_note = _invoice(net_total=Decimal("-100.00"), vat_total=Decimal("-19.00"),
                               gross_total=Decimal("-119.00"))
        assert credit_note.vat_rate == Decimal("0")
        assert credit_note.is_valid()

    def test_amounts_are_decimals(self):
        invoice = _invoice(net_total="1000.00", vat_total=190.0, gross_total=1190)
        assert invoice.net_total == Decimal("1000.00")
        assert invoice.vat_total == Decimal("190.0")
        assert invoice.gross_total == Decimal("1190")

    def test_totals_within_tolerance(self):
        assert _invoice(gross_total=Decimal("1190.02")).is_valid()
        assert not _invoice(gross_total=Decimal("1190.03")).is_valid()
        assert _invoice(gross_total=Decimal("1190.03")).is_valid(Decimal("0.05"))

    def test_missing_amount_is_invalid(self):
        invoice = _invoice(vat_total=None)
        assert invoice.total_difference() is None
        assert not invoice.is_valid()

    def test_missing_fields(self):
        assert _invoice().missing_fields == []
        invoice = CandidateInvoice()
        assert invoice.missing_fields == [
            'invoice_number', 'invoice_date', 'issuer_name',
            'net_total', 'vat_total', 'gross_total',
        ]

    def test_normalized_number(self):
        assert _invoice().normalized_number == "2025-001"

    def test_dict_round_trip(self):
        invoice = _invoice(field_confidences={'invoice_number': 0.91})
        restored = CandidateInvoice.from_dict(invoice.to_dict())

        assert restored == invoice
        assert invoice.to_dict()['vat_rate'] == "19.00"
        assert invoice.to_dict()['gross_total'] == "1190.00"

    def test_from_dict_with_timestamp_date(self):
        invoice = CandidateInvoice.from_dict({'invoice_date': "2025-01-15T10:00:00", 'gross_total': "10.00"})
        assert invoice.invoice_date == date(2025, 1, 15)
        assert invoice.gross_total == Decimal("10.00")


class TestAddress:
    def test_complete(self):
        assert Address("Muster GmbH", "Hauptstraße 12", "10115", "Berlin").is_complete

    @pytest.mark.parametrize("missing", ['name', 'street', 'postal_code', 'city'])
    def test_incomplete(self, missing):
        parts = {'name': "Muster GmbH", 'street': "Hauptstraße 12", 'postal_code': "10115", 'city': "Berlin"}
        parts[missing] = " "
        assert not Address(**parts).is_complete

    def test_format(self):
        address = Address("Muster GmbH", "Hauptstraße 12", "10115", "Berlin", "Deutschland")
        assert address.format() == "Muster GmbH, Hauptstraße 12, 10115 Berlin, Deutschland"
        assert Address(name="Muster GmbH").format() == "Muster GmbH"
