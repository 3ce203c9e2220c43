"""
Feature Data Classes.

Independent value records for each feature group of a text block, composed
into one ExtractedFeature container. None of the groups share fields, so
they are plain frozen dataclasses without a common base.

Author: ML Engineering Team
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Tuple

import numpy as np

from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.patterns import RegexHit


@dataclass(frozen=True)
class PositionFeatures:
    """Absolute and page-relative placement of the block."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    relative_x: float = 0.0
    relative_y: float = 0.0
    relative_width: float = 0.0
    relative_height: float = 0.0
    center_x: float = 0.0
    center_y: float = 0.0
    relative_center_x: float = 0.0
    relative_center_y: float = 0.0
    line_index: int = 0
    total_lines: int = 0
    line_position: float = 0.0
    page_number: int = 1


@dataclass(frozen=True)
class BoundingBoxFeatures:
    left: float = 0.0
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    area: float = 0.0
    aspect_ratio: float = 0.0
    is_valid: bool = False


@dataclass(frozen=True)
class LayoutFeatures:
    """
    Attributes:
        region: "header", "body" or "footer"
        alignment: "left", "center" or "right"
        indentation: Relative left offset (0-1)
    """
    region: str = "body"
    alignment: str = "left"
    indentation: float = 0.0
    aligned_with_previous: bool = False
    aligned_with_next: bool = False


@dataclass(frozen=True)
class ContextFeatures:
    previous_line: str = ""
    next_line: str = ""
    previous_word: str = ""
    next_word: str = ""
    distance_to_previous: float = 0.0
    distance_to_next: float = 0.0
    is_first_line: bool = False
    is_last_line: bool = False
    is_isolated: bool = False


@dataclass(frozen=True)
class StatisticalFeatures:
    """Character-class counts and ratios over Unicode code points."""
    char_count: int = 0
    word_count: int = 0
    digit_count: int = 0
    letter_count: int = 0
    special_char_count: int = 0
    whitespace_count: int = 0
    uppercase_count: int = 0
    lowercase_count: int = 0
    digit_ratio: float = 0.0
    letter_ratio: float = 0.0
    special_char_ratio: float = 0.0
    uppercase_ratio: float = 0.0
    lowercase_ratio: float = 0.0
    average_word_length: float = 0.0


@dataclass(frozen=True)
class TextFeatures:
    normalized_text: str = ""
    lowercase_text: str = ""
    uppercase_text: str = ""
    contains_number: bool = False
    contains_currency: bool = False
    contains_date: bool = False
    contains_email: bool = False
    contains_phone: bool = False
    starts_with_digit: bool = False
    starts_with_letter: bool = False
    ends_with_punctuation: bool = False
    is_all_uppercase: bool = False
    is_all_lowercase: bool = False
    is_mixed_case: bool = False


@dataclass(frozen=True, eq=False)
class MLFeatureVector:
    """
    Flattened numeric representation consumed by the classifier.

    Attributes:
        values: float64 vector, read-only
        names: Feature names parallel to ``values``
        schema_version: Version of the schema that produced the vector
        expected_length: Length declared by that schema
    """
    values: np.ndarray
    names: Tuple[str, ...]
    schema_version: str
    expected_length: int

    @property
    def is_valid(self) -> bool:
        return len(self.values) == self.expected_length == len(self.names)

    def __len__(self) -> int:
        return len(self.values)

    def as_dict(self) -> Dict[str, float]:
        return {name: float(value) for name, value in zip(self.names, self.values)}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MLFeatureVector):
            return NotImplemented
        return (
            self.schema_version == other.schema_version
            and self.names == other.names
            and np.array_equal(self.values, other.values)
        )

    def __hash__(self) -> int:
        return hash((self.schema_version, self.names, self.values.tobytes()))


@dataclass(frozen=True)
class ExtractedFeature:
    """
    All feature groups derived from one TextBlock.

    Created once per block by FeatureExtractor and never modified.
    """
    block: TextBlock
    position: PositionFeatures
    bounding_box: BoundingBoxFeatures
    layout: LayoutFeatures
    context: ContextFeatures
    statistical: StatisticalFeatures
    text: TextFeatures
    regex_hits: Tuple[RegexHit, ...]
    vector: MLFeatureVector
    diagnostics: Tuple[str, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'block': self.block.to_dict(),
            'position': asdict(self.position),
            'bounding_box': asdict(self.bounding_box),
            'layout': asdict(self.layout),
            'context': asdict(self.context),
            'statistical': asdict(self.statistical),
            'text': asdict(self.text),
            'regex_hits': [hit.to_dict() for hit in self.regex_hits],
            'vector': self.vector.as_dict(),
            'schema_version': self.vector.schema_version,
            'diagnostics': list(self.diagnostics),
        }

    def hits_for(self, category) -> List[RegexHit]:
        return [hit for hit in self.regex_hits if hit.category == category]
