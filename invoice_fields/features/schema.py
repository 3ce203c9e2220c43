"""
Feature Vector Schema.

Defines the fixed order of the flattened feature vector. Any change to
FEATURE_NAMES or to how a value is computed must bump SCHEMA_VERSION;
models record the version they were trained on and refuse vectors from
another version.

Order:
    position (10), bounding box (3), layout (9), context (7),
    statistics (13), text flags (11), regex hit counts (6),
    keywords on the block (6), keywords on the previous line (6)

Author: ML Engineering Team
"""

from typing import Dict, Mapping, Optional

import numpy as np

from invoice_fields.features.feature_models import (
    BoundingBoxFeatures,
    ContextFeatures,
    LayoutFeatures,
    MLFeatureVector,
    PositionFeatures,
    StatisticalFeatures,
    TextFeatures,
)
from invoice_fields.features.patterns import PatternCategory
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


SCHEMA_VERSION = "1.0"

REGIONS = ("header", "body", "footer")
ALIGNMENTS = ("left", "center", "right")

# Keyword groups; matched case-insensitively as substrings
KEYWORDS: Dict[str, tuple] = {
    "invoice_number": ("rechnungsnummer", "rechnungs-nr", "rechnung nr", "re-nr",
                       "invoice no", "invoice number", "beleg-nr", "belegnummer"),
    "date": ("datum", "date", "rechnungsdatum", "leistungsdatum"),
    "net": ("netto", "net", "zwischensumme", "subtotal", "summe netto"),
    "vat": ("mwst", "ust", "umsatzsteuer", "mehrwertsteuer", "vat", "tax"),
    "gross": ("brutto", "gesamt", "total", "endbetrag", "zu zahlen", "rechnungsbetrag"),
    "address": ("gmbh", " ag", "str.", "straße", "strasse", "weg ", "platz", "e.k.", " kg"),
}

FEATURE_NAMES = (
    # position
    "relative_x", "relative_y", "relative_width", "relative_height",
    "relative_center_x", "relative_center_y", "line_index", "total_lines",
    "line_position", "page_number",
    # bounding box
    "relative_area", "aspect_ratio", "bbox_valid",
    # layout
    "region_header", "region_body", "region_footer",
    "align_left", "align_center", "align_right",
    "indentation", "aligned_with_previous", "aligned_with_next",
    # context
    "distance_to_previous", "distance_to_next", "is_first_line", "is_last_line",
    "is_isolated", "has_previous", "has_next",
    # statistics
    "char_count", "word_count", "digit_count", "letter_count", "special_char_count",
    "uppercase_count", "lowercase_count", "digit_ratio", "letter_ratio",
    "special_char_ratio", "uppercase_ratio", "lowercase_ratio", "average_word_length",
    # text flags
    "contains_number", "contains_currency", "contains_date", "contains_email",
    "contains_phone", "starts_with_digit", "starts_with_letter",
    "ends_with_punctuation", "is_all_uppercase", "is_all_lowercase", "is_mixed_case",
    # regex hit counts
    "regex_invoice_number_hits", "regex_date_hits", "regex_amount_hits",
    "regex_currency_hits", "regex_email_hits", "regex_phone_hits",
) + tuple(f"keyword_{name}" for name in KEYWORDS) + tuple(
    f"previous_keyword_{name}" for name in KEYWORDS
)

FEATURE_COUNT = len(FEATURE_NAMES)

_INDEX = {name: i for i, name in enumerate(FEATURE_NAMES)}

_REGEX_ORDER = (
    PatternCategory.INVOICE_NUMBER,
    PatternCategory.DATE,
    PatternCategory.AMOUNT,
    PatternCategory.CURRENCY,
    PatternCategory.EMAIL,
    PatternCategory.PHONE,
)


def keyword_flags(text: Optional[str]) -> Dict[str, bool]:
    """Which keyword groups occur in ``text``."""
    lowered = f" {text.lower()} " if text else ""
    return {
        name: any(keyword in lowered for keyword in keywords)
        for name, keywords in KEYWORDS.items()
    }


def _flag(value: bool) -> float:
    return 1.0 if value else 0.0


def build_vector(
    position: PositionFeatures,
    bounding_box: BoundingBoxFeatures,
    layout: LayoutFeatures,
    context: ContextFeatures,
    statistical: StatisticalFeatures,
    text: TextFeatures,
    regex_counts: Mapping[PatternCategory, int],
    keywords: Mapping[str, bool],
    previous_keywords: Mapping[str, bool],
    page_height: float = 0.0,
) -> MLFeatureVector:
    """
    Flatten the feature groups in FEATURE_NAMES order.

    Neighbour distances are divided by ``page_height`` and clipped to
    [0, 1] so documents of different page sizes share one scale.
    """
    def _relative_distance(distance: float) -> float:
        if page_height <= 0:
            return 0.0
        return float(min(max(distance / page_height, 0.0), 1.0))

    values = [
        position.relative_x,
        position.relative_y,
        position.relative_width,
        position.relative_height,
        position.relative_center_x,
        position.relative_center_y,
        float(position.line_index),
        float(position.total_lines),
        position.line_position,
        float(position.page_number),
        position.relative_width * position.relative_height,
        bounding_box.aspect_ratio,
        _flag(bounding_box.is_valid),
    ]
    values.extend(_flag(layout.region == region) for region in REGIONS)
    values.extend(_flag(layout.alignment == alignment) for alignment in ALIGNMENTS)
    values.extend([
        layout.indentation,
        _flag(layout.aligned_with_previous),
        _flag(layout.aligned_with_next),
        _relative_distance(context.distance_to_previous),
        _relative_distance(context.distance_to_next),
        _flag(context.is_first_line),
        _flag(context.is_last_line),
        _flag(context.is_isolated),
        _flag(bool(context.previous_line)),
        _flag(bool(context.next_line)),
        float(statistical.char_count),
        float(statistical.word_count),
        float(statistical.digit_count),
        float(statistical.letter_count),
        float(statistical.special_char_count),
        float(statistical.uppercase_count),
        float(statistical.lowercase_count),
        statistical.digit_ratio,
        statistical.letter_ratio,
        statistical.special_char_ratio,
        statistical.uppercase_ratio,
        statistical.lowercase_ratio,
        statistical.average_word_length,
        _flag(text.contains_number),
        _flag(text.contains_currency),
        _flag(text.contains_date),
        _flag(text.contains_email),
        _flag(text.contains_phone),
        _flag(text.starts_with_digit),
        _flag(text.starts_with_letter),
        _flag(text.ends_with_punctuation),
        _flag(text.is_all_uppercase),
        _flag(text.is_all_lowercase),
        _flag(text.is_mixed_case),
    ])
    values.extend(float(regex_counts.get(category, 0)) for category in _REGEX_ORDER)
    values.extend(_flag(keywords.get(name, False)) for name in KEYWORDS)
    values.extend(_flag(previous_keywords.get(name, False)) for name in KEYWORDS)

    array = np.nan_to_num(np.asarray(values, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0)
    array.flags.writeable = False
    return MLFeatureVector(
        values=array,
        names=FEATURE_NAMES,
        schema_version=SCHEMA_VERSION,
        expected_length=FEATURE_COUNT,
    )


def vector_from_values(values, schema_version: str = SCHEMA_VERSION) -> MLFeatureVector:
    """Wrap a raw sequence as an MLFeatureVector of the current schema."""
    array = np.asarray(values, dtype=np.float64).ravel().copy()
    array.flags.writeable = False
    return MLFeatureVector(
        values=array,
        names=FEATURE_NAMES,
        schema_version=schema_version,
        expected_length=FEATURE_COUNT,
    )


def apply_overrides(vector: MLFeatureVector, overrides: Mapping[str, float]) -> MLFeatureVector:
    """
    Return a copy of ``vector`` with named entries replaced.

    Unknown names are skipped with a warning.
    """
    if not overrides:
        return vector

    array = np.array(vector.values, dtype=np.float64)
    for name, value in overrides.items():
        try:
            array[feature_index(name)] = float(value)
        except KeyError:
            logger.warning(f"Ignoring override for unknown feature '{name}'")
    return vector_from_values(array, vector.schema_version)


def feature_index(name: str) -> int:
    """Position of ``name`` in the vector; raises KeyError when unknown."""
    return _INDEX[name]
