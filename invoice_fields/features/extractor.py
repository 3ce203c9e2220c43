"""
Feature Extractor Module.

Turns a positioned TextBlock, together with its sibling blocks on the same
page, into an ExtractedFeature: position, bounding box, layout, context,
statistics, text flags, regex hits and the flattened vector.

Features:
    - Configurable header/footer region thresholds
    - Neighbour alignment within a tolerance
    - Isolation relative to the median line height
    - Concurrent extraction for whole documents

Extraction never raises on bad input. Empty text, missing boxes or
missing page sizes produce neutral values.

Author: ML Engineering Team
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from config import get_config
from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.feature_models import (
    BoundingBoxFeatures,
    ContextFeatures,
    ExtractedFeature,
    LayoutFeatures,
    PositionFeatures,
    StatisticalFeatures,
    TextFeatures,
)
from invoice_fields.features.patterns import PatternCategory, RegexPatternMatcher
from invoice_fields.features.schema import build_vector, keyword_flags
from invoice_fields.utils.helpers import median, safe_divide
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


PUNCTUATION_ENDINGS = ".,;:!?"


class FeatureExtractor:
    """
    Extracts features for text blocks.

    Attributes:
        header_threshold: Relative Y below which a block is in the header
        footer_threshold: Relative Y above which a block is in the footer
        alignment_tolerance: Max X difference (page units) for alignment
        isolation_factor: Gap multiple of the median line height that
            counts as isolated
        max_text_length: Text beyond this length is ignored

    Example:
        >>> extractor = FeatureExtractor()
        >>> features = extractor.extract_page(blocks)
        >>> features[0].layout.region
        'header'
    """

    def __init__(
        self,
        header_threshold: Optional[float] = None,
        footer_threshold: Optional[float] = None,
        alignment_tolerance: Optional[float] = None,
        isolation_factor: Optional[float] = None,
        max_text_length: Optional[int] = None,
        matcher: Optional[RegexPatternMatcher] = None
    ) -> None:
        self.header_threshold = _pick(
            header_threshold, "features.layout.header_threshold", 0.15)
        self.footer_threshold = _pick(
            footer_threshold, "features.layout.footer_threshold", 0.85)
        self.alignment_tolerance = _pick(
            alignment_tolerance, "features.layout.alignment_tolerance", 2.0)
        self.isolation_factor = _pick(
            isolation_factor, "features.context.isolation_factor", 2.0)
        self.max_text_length = int(_pick(max_text_length, "features.max_text_length", 4000))
        self.matcher = matcher or RegexPatternMatcher()

        logger.debug(
            f"FeatureExtractor initialized (regions: {self.header_threshold}/"
            f"{self.footer_threshold}, tolerance: {self.alignment_tolerance})"
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def extract(
        self,
        block: TextBlock,
        siblings: Sequence[TextBlock],
        page_width: Optional[float] = None,
        page_height: Optional[float] = None
    ) -> ExtractedFeature:
        """
        Extract features for one block.

        Args:
            block: Block to describe.
            siblings: All blocks of the document or page; only those on the
                block's page are used for context.
            page_width: Page width; defaults to block.page_width.
            page_height: Page height; defaults to block.page_height.

        Returns:
            ExtractedFeature for the block.
        """
        try:
            return self._extract(block, siblings, page_width, page_height)
        except (ValueError, TypeError, ArithmeticError, AttributeError) as e:
            logger.warning(f"Feature extraction fell back to neutral values for {block!r}: {e}")
            return self._neutral(block, f"extraction failed: {e}")

    def extract_page(self, blocks: Sequence[TextBlock]) -> List[ExtractedFeature]:
        """Extract every block of one page in reading order."""
        ordered = sorted(blocks, key=lambda b: b.sort_key)
        return [self.extract(block, ordered) for block in ordered]

    def extract_document(
        self,
        blocks: Sequence[TextBlock],
        max_workers: Optional[int] = None
    ) -> List[ExtractedFeature]:
        """
        Extract every block of a document, optionally in parallel.

        Sibling lists for all pages are built before any worker starts.
        Results come back in (page, line_index) order.
        """
        pages = group_by_page(blocks)
        jobs: List[Tuple[TextBlock, List[TextBlock]]] = [
            (block, page_blocks)
            for _, page_blocks in sorted(pages.items())
            for block in page_blocks
        ]

        if max_workers is None or max_workers <= 1 or len(jobs) < 2:
            return [self.extract(block, page_blocks) for block, page_blocks in jobs]

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(lambda job: self.extract(*job), jobs))

    # -------------------------------------------------------------------------
    # Feature groups
    # -------------------------------------------------------------------------

    def _extract(
        self,
        block: TextBlock,
        siblings: Sequence[TextBlock],
        page_width: Optional[float],
        page_height: Optional[float]
    ) -> ExtractedFeature:
        diagnostics = []
        text = block.text if isinstance(block.text, str) else ""
        if len(text) > self.max_text_length:
            diagnostics.append(f"text truncated to {self.max_text_length} characters")
            text = text[:self.max_text_length]

        page_width = float(page_width or block.page_width or 0.0)
        page_height = float(page_height or block.page_height or 0.0)
        if page_width <= 0 or page_height <= 0:
            diagnostics.append("missing page dimensions")

        page_blocks = sorted(
            (b for b in siblings if b.page_number == block.page_number),
            key=lambda b: b.sort_key
        )
        index = _locate(block, page_blocks)
        if index is None:
            page_blocks = sorted(page_blocks + [block], key=lambda b: b.sort_key)
            index = _locate(block, page_blocks)

        previous_block = page_blocks[index - 1] if index > 0 else None
        next_block = page_blocks[index + 1] if index + 1 < len(page_blocks) else None

        position = self._position(block, index, len(page_blocks), page_width, page_height)
        bounding_box = self._bounding_box(block)
        layout = self._layout(block, position, previous_block, next_block, page_height)
        context = self._context(block, index, page_blocks, previous_block, next_block)
        statistical = self._statistics(text)
        hits = self.matcher.match(text)
        counts = self.matcher.count_by_category(hits)
        text_features = self._text_features(text, statistical, counts)

        vector = build_vector(
            position,
            bounding_box,
            layout,
            context,
            statistical,
            text_features,
            counts,
            keyword_flags(text),
            keyword_flags(context.previous_line),
            page_height=page_height,
        )

        return ExtractedFeature(
            block=block,
            position=position,
            bounding_box=bounding_box,
            layout=layout,
            context=context,
            statistical=statistical,
            text=text_features,
            regex_hits=tuple(hits),
            vector=vector,
            diagnostics=tuple(diagnostics),
        )

    def _position(
        self,
        block: TextBlock,
        index: int,
        total_lines: int,
        page_width: float,
        page_height: float
    ) -> PositionFeatures:
        return PositionFeatures(
            x=block.x,
            y=block.y,
            width=block.width,
            height=block.height,
            relative_x=safe_divide(block.x, page_width),
            relative_y=safe_divide(block.y, page_height),
            relative_width=safe_divide(block.width, page_width),
            relative_height=safe_divide(block.height, page_height),
            center_x=block.center_x,
            center_y=block.center_y,
            relative_center_x=safe_divide(block.center_x, page_width),
            relative_center_y=safe_divide(block.center_y, page_height),
            line_index=block.line_index,
            total_lines=total_lines,
            line_position=safe_divide(index, total_lines - 1) if total_lines > 1 else 0.0,
            page_number=block.page_number,
        )

    @staticmethod
    def _bounding_box(block: TextBlock) -> BoundingBoxFeatures:
        is_valid = block.width > 0 and block.height > 0
        return BoundingBoxFeatures(
            left=block.x,
            top=block.y,
            right=block.x + block.width,
            bottom=block.y + block.height,
            area=block.width * block.height if is_valid else 0.0,
            aspect_ratio=safe_divide(block.width, block.height) if is_valid else 0.0,
            is_valid=is_valid,
        )

    def _layout(
        self,
        block: TextBlock,
        position: PositionFeatures,
        previous_block: Optional[TextBlock],
        next_block: Optional[TextBlock],
        page_height: float
    ) -> LayoutFeatures:
        if page_height <= 0:
            region = "body"
        elif position.relative_y < self.header_threshold:
            region = "header"
        elif position.relative_y > self.footer_threshold:
            region = "footer"
        else:
            region = "body"

        if position.relative_center_x < 1 / 3:
            alignment = "left"
        elif position.relative_center_x > 2 / 3:
            alignment = "right"
        else:
            alignment = "center"

        return LayoutFeatures(
            region=region,
            alignment=alignment,
            indentation=position.relative_x,
            aligned_with_previous=self._is_aligned(block, previous_block),
            aligned_with_next=self._is_aligned(block, next_block),
        )

    def _is_aligned(self, block: TextBlock, other: Optional[TextBlock]) -> bool:
        if other is None:
            return False
        return (
            abs(block.x - other.x) <= self.alignment_tolerance
            or abs(block.center_x - other.center_x) <= self.alignment_tolerance
        )

    def _context(
        self,
        block: TextBlock,
        index: int,
        page_blocks: List[TextBlock],
        previous_block: Optional[TextBlock],
        next_block: Optional[TextBlock]
    ) -> ContextFeatures:
        distance_to_previous = 0.0
        distance_to_next = 0.0
        if previous_block is not None:
            distance_to_previous = max(0.0, block.y - (previous_block.y + previous_block.height))
        if next_block is not None:
            distance_to_next = max(0.0, next_block.y - (block.y + block.height))

        line_height = median(b.height for b in page_blocks if b.height > 0)
        limit = self.isolation_factor * line_height
        is_isolated = False
        if line_height > 0 and (previous_block is not None or next_block is not None):
            gap_before = previous_block is None or distance_to_previous > limit
            gap_after = next_block is None or distance_to_next > limit
            is_isolated = gap_before and gap_after

        previous_line = (previous_block.text or "") if previous_block else ""
        next_line = (next_block.text or "") if next_block else ""
        previous_words = previous_line.split()
        next_words = next_line.split()

        return ContextFeatures(
            previous_line=previous_line,
            next_line=next_line,
            previous_word=previous_words[-1] if previous_words else "",
            next_word=next_words[0] if next_words else "",
            distance_to_previous=distance_to_previous,
            distance_to_next=distance_to_next,
            is_first_line=index == 0,
            is_last_line=index == len(page_blocks) - 1,
            is_isolated=is_isolated,
        )

    @staticmethod
    def _statistics(text: str) -> StatisticalFeatures:
        char_count = len(text)
        words = text.split()
        digit_count = sum(1 for c in text if c.isdigit())
        letter_count = sum(1 for c in text if c.isalpha())
        whitespace_count = sum(1 for c in text if c.isspace())
        uppercase_count = sum(1 for c in text if c.isupper())
        lowercase_count = sum(1 for c in text if c.islower())
        special_count = char_count - digit_count - letter_count - whitespace_count

        return StatisticalFeatures(
            char_count=char_count,
            word_count=len(words),
            digit_count=digit_count,
            letter_count=letter_count,
            special_char_count=special_count,
            whitespace_count=whitespace_count,
            uppercase_count=uppercase_count,
            lowercase_count=lowercase_count,
            digit_ratio=safe_divide(digit_count, char_count),
            letter_ratio=safe_divide(letter_count, char_count),
            special_char_ratio=safe_divide(special_count, char_count),
            uppercase_ratio=safe_divide(uppercase_count, char_count),
            lowercase_ratio=safe_divide(lowercase_count, char_count),
            average_word_length=safe_divide(sum(len(w) for w in words), len(words)),
        )

    @staticmethod
    def _text_features(
        text: str,
        statistical: StatisticalFeatures,
        counts: Dict[PatternCategory, int]
    ) -> TextFeatures:
        normalized = " ".join(text.split())
        upper = statistical.uppercase_count
        lower = statistical.lowercase_count
        return TextFeatures(
            normalized_text=normalized,
            lowercase_text=normalized.lower(),
            uppercase_text=normalized.upper(),
            contains_number=statistical.digit_count > 0,
            contains_currency=counts[PatternCategory.CURRENCY] > 0,
            contains_date=counts[PatternCategory.DATE] > 0,
            contains_email=counts[PatternCategory.EMAIL] > 0,
            contains_phone=counts[PatternCategory.PHONE] > 0,
            starts_with_digit=normalized[:1].isdigit(),
            starts_with_letter=normalized[:1].isalpha(),
            ends_with_punctuation=bool(normalized) and normalized[-1] in PUNCTUATION_ENDINGS,
            is_all_uppercase=upper > 0 and lower == 0,
            is_all_lowercase=lower > 0 and upper == 0,
            is_mixed_case=upper > 0 and lower > 0,
        )

    def _neutral(self, block: TextBlock, reason: str) -> ExtractedFeature:
        position = PositionFeatures()
        bounding_box = BoundingBoxFeatures()
        layout = LayoutFeatures()
        context = ContextFeatures()
        statistical = StatisticalFeatures()
        text_features = TextFeatures()
        counts = self.matcher.count_by_category([])
        vector = build_vector(
            position, bounding_box, layout, context, statistical, text_features,
            counts, keyword_flags(None), keyword_flags(None),
        )
        return ExtractedFeature(
            block=block,
            position=position,
            bounding_box=bounding_box,
            layout=layout,
            context=context,
            statistical=statistical,
            text=text_features,
            regex_hits=(),
            vector=vector,
            diagnostics=(reason,),
        )


def group_by_page(blocks: Sequence[TextBlock]) -> Dict[int, List[TextBlock]]:
    """Group blocks by page number, each page in reading order."""
    pages: Dict[int, List[TextBlock]] = defaultdict(list)
    for block in blocks:
        pages[block.page_number].append(block)
    return {page: sorted(items, key=lambda b: b.sort_key) for page, items in pages.items()}


def _locate(block: TextBlock, page_blocks: List[TextBlock]) -> Optional[int]:
    for i, candidate in enumerate(page_blocks):
        if candidate is block:
            return i
    for i, candidate in enumerate(page_blocks):
        if candidate == block:
            return i
    return None


def _pick(value, key: str, default):
    return value if value is not None else get_config(key, default)
