"""
Tests for feature extraction and the feature vector schema.
"""

import numpy as np
import pytest

from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.extractor import FeatureExtractor, group_by_page
from invoice_fields.features.schema import (
    FEATURE_COUNT,
    FEATURE_NAMES,
    SCHEMA_VERSION,
    apply_overrides,
    feature_index,
    keyword_flags,
    vector_from_values,
)


def _block(text="Rechnungsnummer: RE-2025-001", **overrides) -> TextBlock:
    defaults = {
        'page_number': 1,
        'line_index': 0,
        'x': 50.0,
        'y': 100.0,
        'width': 200.0,
        'height': 12.0,
        'page_width': 600.0,
        'page_height': 1000.0,
    }
    defaults.update(overrides)
    return TextBlock(text, **defaults)


def _single(extractor, block):
    return extractor.extract(block, [block])


# =============================================================================
# VECTOR SHAPE
# =============================================================================

class TestVector:
    def test_vector_matches_schema(self, extractor):
        features = _single(extractor, _block())

        assert len(features.vector) == FEATURE_COUNT
        assert features.vector.names == FEATURE_NAMES
        assert features.vector.schema_version == SCHEMA_VERSION
        assert features.vector.is_valid

    def test_vector_is_read_only(self, extractor):
        features = _single(extractor, _block())
        with pytest.raises(ValueError):
            features.vector.values[0] = 1.0

    def test_extraction_is_idempotent(self, extractor):
        blocks = [_block(line_index=0), _block("Rechnungsdatum: 15.01.2025", line_index=1, y=120)]
        first = extractor.extract(blocks[1], blocks)
        second = extractor.extract(blocks[1], blocks)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_feature_names_are_unique(self):
        assert len(set(FEATURE_NAMES)) == FEATURE_COUNT

    def test_feature_index(self):
        assert FEATURE_NAMES[feature_index("char_count")] == "char_count"
        with pytest.raises(KeyError):
            feature_index("no_such_feature")

    def test_vector_from_values_keeps_schema_version(self):
        vector = vector_from_values(np.zeros(FEATURE_COUNT), schema_version="0.9")
        assert vector.schema_version == "0.9"
        assert vector.is_valid

    def test_short_vector_is_invalid(self):
        assert not vector_from_values([0.0] * 5).is_valid

    def test_apply_overrides(self, extractor):
        vector = _single(extractor, _block()).vector
        changed = apply_overrides(vector, {'char_count': 999, 'unknown_feature': 1.0})

        assert changed.as_dict()['char_count'] == 999.0
        assert vector.as_dict()['char_count'] != 999.0
        assert apply_overrides(vector, {}) is vector


# =============================================================================
# LAYOUT
# =============================================================================

class TestRegion:
    @pytest.mark.parametrize("y, region", [
        (0, "header"),
        (149, "header"),
        (150, "body"),
        (850, "body"),
        (851, "footer"),
    ])
    def test_region_boundaries(self, extractor, y, region):
        features = _single(extractor, _block(y=y))
        assert features.layout.region == region

    def test_missing_page_height_defaults_to_body(self, extractor):
        features = _single(extractor, _block(y=10, page_height=0.0))

        assert features.layout.region == "body"
        assert "missing page dimensions" in features.diagnostics
        assert features.vector.as_dict()['region_body'] == 1.0

    def test_custom_thresholds(self):
        extractor = FeatureExtractor(
            header_threshold=0.3, footer_threshold=0.7,
            alignment_tolerance=2.0, isolation_factor=2.0, max_text_length=4000,
        )
        assert _single(extractor, _block(y=250)).layout.region == "header"
        assert _single(extractor, _block(y=750)).layout.region == "footer"


class TestAlignment:
    @pytest.mark.parametrize("x, alignment", [
        (10, "left"),
        (200, "center"),
        (390, "right"),
    ])
    def test_alignment_by_center_thirds(self, extractor, x, alignment):
        features = _single(extractor, _block(x=x, width=200))
        assert features.layout.alignment == alignment

    def test_aligned_with_previous_within_tolerance(self, extractor):
        first = _block("Muster GmbH", line_index=0, x=50, y=40, width=100)
        second = _block("Hauptstraße 12", line_index=1, x=52, y=54, width=140)
        third = _block("10115 Berlin", line_index=2, x=60, y=68, width=90)
        blocks = [first, second, third]

        assert extractor.extract(second, blocks).layout.aligned_with_previous
        assert extractor.extract(first, blocks).layout.aligned_with_next
        assert not extractor.extract(third, blocks).layout.aligned_with_previous

    def test_first_block_has_no_previous_alignment(self, extractor):
        features = _single(extractor, _block())
        assert not features.layout.aligned_with_previous
        assert not features.layout.aligned_with_next


# =============================================================================
# CONTEXT
# =============================================================================

class TestContext:
    def _page(self):
        return [
            _block("Muster GmbH", line_index=0, y=100),
            _block("Hauptstraße 12", line_index=1, y=114),
            _block("10115 Berlin", line_index=2, y=128),
            _block("Rechnungsnummer: RE-2025-001", line_index=3, y=400),
            _block("Gesamtbetrag: 1.190,00 EUR", line_index=4, y=700),
        ]

    def test_isolated_block(self, extractor):
        page = self._page()
        assert extractor.extract(page[3], page).context.is_isolated
        assert not extractor.extract(page[1], page).context.is_isolated

    def test_lone_block_is_not_isolated(self, extractor):
        assert not _single(extractor, _block()).context.is_isolated

    def test_neighbour_lines_and_distances(self, extractor):
        page = self._page()
        context = extractor.extract(page[1], page).context

        assert context.previous_line == "Muster GmbH"
        assert context.next_line == "10115 Berlin"
        assert context.previous_word == "GmbH"
        assert context.next_word == "10115"
        assert context.distance_to_previous == pytest.approx(2.0)
        assert context.distance_to_next == pytest.approx(2.0)

    def test_first_and_last_line(self, extractor):
        page = self._page()
        first = extractor.extract(page[0], page)
        last = extractor.extract(page[-1], page)

        assert first.context.is_first_line and not first.context.is_last_line
        assert last.context.is_last_line and not last.context.is_first_line
        assert first.vector.as_dict()['has_previous'] == 0.0
        assert first.vector.as_dict()['has_next'] == 1.0

    def test_previous_line_keywords(self, extractor):
        label = _block("Rechnungsnummer:", line_index=0, y=160)
        value = _block("RE-2025-001", line_index=1, y=174)
        vector = extractor.extract(value, [label, value]).vector.as_dict()

        assert vector['previous_keyword_invoice_number'] == 1.0
        assert vector['keyword_invoice_number'] == 0.0

    def test_siblings_on_other_pages_are_ignored(self, extractor):
        block = _block("Seite 2", page_number=2, line_index=0)
        other = _block("Seite 1", page_number=1, line_index=0)
        context = extractor.extract(block, [other, block]).context

        assert context.previous_line == ""
        assert context.is_first_line


# =============================================================================
# TEXT
# =============================================================================

class TestTextFeatures:
    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text_is_neutral(self, extractor, text):
        features = _single(extractor, _block(text))

        assert features.statistical.char_count == 0
        assert features.statistical.digit_ratio == 0.0
        assert features.regex_hits == ()
        assert not features.text.starts_with_letter
        assert features.vector.is_valid

    def test_zero_box(self, extractor):
        features = _single(extractor, _block(width=0, height=0))

        assert not features.bounding_box.is_valid
        assert features.vector.as_dict()['bbox_valid'] == 0.0
        assert features.vector.as_dict()['relative_area'] == 0.0

    def test_regex_counts_and_keywords(self, extractor):
        vector = _single(extractor, _block("Gesamtbetrag: 1.190,00 EUR")).vector.as_dict()

        assert vector['regex_amount_hits'] == 1.0
        assert vector['regex_currency_hits'] == 1.0
        assert vector['regex_date_hits'] == 0.0
        assert vector['keyword_gross'] == 1.0
        assert vector['keyword_vat'] == 0.0
        assert vector['contains_currency'] == 1.0

    def test_statistics(self, extractor):
        stats = _single(extractor, _block("AB12 cd")).statistical

        assert stats.char_count == 7
        assert stats.word_count == 2
        assert stats.digit_count == 2
        assert stats.letter_count == 4
        assert stats.whitespace_count == 1
        assert stats.uppercase_count == 2
        assert stats.lowercase_count == 2
        assert stats.special_char_count == 0
        assert stats.digit_ratio == pytest.approx(2 / 7)
        assert stats.average_word_length == pytest.approx(3.0)

    def test_unicode_letters(self, extractor):
        features = _single(extractor, _block("Größe"))

        assert features.statistical.letter_count == 5
        assert features.statistical.special_char_count == 0
        assert features.text.is_mixed_case

    def test_case_flags(self, extractor):
        assert _single(extractor, _block("RECHNUNG")).text.is_all_uppercase
        assert _single(extractor, _block("rechnung")).text.is_all_lowercase

    def test_ends_with_punctuation(self, extractor):
        assert _single(extractor, _block("Rechnungsnummer:")).text.ends_with_punctuation
        assert not _single(extractor, _block("Summe")).text.ends_with_punctuation

    def test_long_text_is_truncated(self):
        extractor = FeatureExtractor(
            header_threshold=0.15, footer_threshold=0.85,
            alignment_tolerance=2.0, isolation_factor=2.0, max_text_length=10,
        )
        features = _single(extractor, _block("x" * 50))

        assert features.statistical.char_count == 10
        assert "text truncated to 10 characters" in features.diagnostics

    def test_keyword_flags_none(self):
        assert not any(keyword_flags(None).values())


# =============================================================================
# PAGES AND DOCUMENTS
# =============================================================================

class TestDocumentExtraction:
    def _blocks(self, make_document):
        samples = make_document(number=3, seed=3)
        return [sample.to_block(i) for i, sample in enumerate(samples)]

    def test_extract_page_sorts_by_reading_order(self, extractor, make_document):
        blocks = self._blocks(make_document)
        features = extractor.extract_page(list(reversed(blocks)))

        assert [f.block.line_index for f in features] == sorted(b.line_index for b in blocks)

    def test_parallel_extraction_matches_sequential(self, extractor, make_document):
        blocks = self._blocks(make_document)

        sequential = extractor.extract_document(blocks)
        parallel = extractor.extract_document(blocks, max_workers=4)

        assert sequential == parallel

    def test_first_line_per_page(self, extractor):
        blocks = [
            _block("Seite 1 oben", page_number=1, line_index=0, y=50),
            _block("Seite 1 unten", page_number=1, line_index=1, y=70),
            _block("Seite 2 oben", page_number=2, line_index=0, y=50),
            _block("Seite 2 unten", page_number=2, line_index=1, y=70),
        ]
        features = extractor.extract_document(blocks)

        assert [f.block.page_number for f in features] == [1, 1, 2, 2]
        assert [f.context.is_first_line for f in features] == [True, False, True, False]

    def test_group_by_page(self):
        blocks = [
            _block("b", page_number=2, line_index=1),
            _block("a", page_number=2, line_index=0),
            _block("c", page_number=1, line_index=0),
        ]
        pages = group_by_page(blocks)

        assert sorted(pages) == [1, 2]
        assert [b.text for b in pages[2]] == ["a", "b"]
