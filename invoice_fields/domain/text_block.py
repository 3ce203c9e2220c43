"""
Text Block Data Class.

A positioned unit of text produced by the document parser. Blocks are the
atomic unit of classification and are immutable once created.

Author: ML Engineering Team
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class TextBlock:
    """
    One line (or grouped words) of text on a page.

    Attributes:
        text: Raw block text
        page_number: 1-based page number
        line_index: Reading-order index of the line on its page
        x: Left edge in page units
        y: Top edge in page units
        width: Box width
        height: Box height
        page_width: Width of the page the block sits on
        page_height: Height of the page the block sits on
        ordinal: Position among sibling blocks on the page
        document_id: Identifier of the source document

    Example:
        >>> block = TextBlock("Rechnung Nr. RE-2025-001", page_number=1,
        ...                   line_index=3, x=50, y=80, width=200, height=12,
        ...                   page_width=595, page_height=842)
        >>> block.center_x
        150.0
    """
    text: str
    page_number: int = 1
    line_index: int = 0
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    page_width: float = 0.0
    page_height: float = 0.0
    ordinal: int = 0
    document_id: Optional[str] = None

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0

    @property
    def is_valid(self) -> bool:
        """Text present, positive box and a real page number."""
        return (
            bool(self.text and self.text.strip())
            and self.width > 0
            and self.height > 0
            and self.page_number > 0
        )

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return (self.page_number, self.line_index, self.ordinal)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TextBlock':
        return cls(
            text=data.get('text') or "",
            page_number=int(data.get('page_number', 1) or 1),
            line_index=int(data.get('line_index', 0) or 0),
            x=float(data.get('x', 0.0) or 0.0),
            y=float(data.get('y', 0.0) or 0.0),
            width=float(data.get('width', 0.0) or 0.0),
            height=float(data.get('height', 0.0) or 0.0),
            page_width=float(data.get('page_width', 0.0) or 0.0),
            page_height=float(data.get('page_height', 0.0) or 0.0),
            ordinal=int(data.get('ordinal', 0) or 0),
            document_id=data.get('document_id'),
        )

    def __repr__(self) -> str:
        preview = self.text if len(self.text) <= 30 else self.text[:27] + "..."
        return f"TextBlock(page={self.page_number}, line={self.line_index}, text={preview!r})"
