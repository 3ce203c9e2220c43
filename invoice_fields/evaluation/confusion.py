"""
Confusion Matrix Module.

Actual-versus-predicted counts for classification results.

Invariants:
    - sum of all cells == total
    - sum of the diagonal == correct

Author: ML Engineering Team
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
from sklearn.metrics import confusion_matrix

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType


class ConfusionMatrix:
    """
    Mapping actual label -> predicted label -> count.

    Example:
        >>> matrix = ConfusionMatrix()
        >>> matrix.add(FieldType.NET_TOTAL, FieldType.GROSS_TOTAL)
        >>> matrix.count(FieldType.NET_TOTAL, FieldType.GROSS_TOTAL)
        1
        >>> matrix.incorrect
        1
    """

    def __init__(self, classes: Optional[Iterable[FieldType]] = None) -> None:
        self._cells: Dict[FieldType, Dict[FieldType, int]] = defaultdict(lambda: defaultdict(int))
        self._classes = set(classes or [])
        self.total = 0
        self.correct = 0

    @classmethod
    def from_labels(
        cls,
        actual: Iterable[FieldType],
        predicted: Iterable[FieldType],
        classes: Optional[Iterable[FieldType]] = None
    ) -> 'ConfusionMatrix':
        """Count label pairs with ``sklearn.metrics.confusion_matrix``."""
        actual, predicted = list(actual), list(predicted)
        matrix = cls(classes)
        if not actual:
            return matrix

        seen = set(actual) | set(predicted)
        labels = [c for c in ALL_FIELD_TYPES if c in seen]
        counts = confusion_matrix(
            [a.class_index for a in actual],
            [p.class_index for p in predicted],
            labels=[c.class_index for c in labels],
        )
        for i, a in enumerate(labels):
            for j, p in enumerate(labels):
                if counts[i, j]:
                    matrix.add(a, p, int(counts[i, j]))
        return matrix

    def add(self, actual: FieldType, predicted: FieldType, count: int = 1) -> None:
        self._cells[actual][predicted] += count
        self._classes.update((actual, predicted))
        self.total += count
        if actual == predicted:
            self.correct += count

    def merge(self, other: 'ConfusionMatrix') -> 'ConfusionMatrix':
        """New matrix holding the counts of both."""
        merged = ConfusionMatrix(self._classes | other._classes)
        for source in (self, other):
            for actual, row in source._cells.items():
                for predicted, count in row.items():
                    if count:
                        merged.add(actual, predicted, count)
        return merged

    @property
    def incorrect(self) -> int:
        return self.total - self.correct

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    @property
    def classes(self) -> List[FieldType]:
        """Known classes in FieldType order."""
        return [c for c in ALL_FIELD_TYPES if c in self._classes]

    def count(self, actual: FieldType, predicted: FieldType) -> int:
        row = self._cells.get(actual)
        return row.get(predicted, 0) if row else 0

    def row_total(self, actual: FieldType) -> int:
        """Samples whose actual label is ``actual`` (support)."""
        row = self._cells.get(actual)
        return sum(row.values()) if row else 0

    def column_total(self, predicted: FieldType) -> int:
        """Samples predicted as ``predicted``."""
        return sum(row.get(predicted, 0) for row in self._cells.values())

    def cell_sum(self) -> int:
        return sum(sum(row.values()) for row in self._cells.values())

    def diagonal_sum(self) -> int:
        return sum(self.count(c, c) for c in self._classes)

    def to_array(self, classes: Optional[List[FieldType]] = None) -> np.ndarray:
        """Counts as an array, rows actual, columns predicted."""
        classes = classes or self.classes
        return np.array(
            [[self.count(a, p) for p in classes] for a in classes],
            dtype=np.int64
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'classes': [c.value for c in self.classes],
            'total': self.total,
            'correct': self.correct,
            'incorrect': self.incorrect,
            'matrix': {
                a.value: {p.value: self.count(a, p) for p in self.classes}
                for a in self.classes
            },
        }

    def print_report(self) -> str:
        """Render the matrix as a fixed-width table."""
        classes = self.classes
        names = [c.name[:10] for c in classes]
        width = max([len(n) for n in names] + [6]) + 1
        lines = [
            "CONFUSION MATRIX (rows: actual, columns: predicted)",
            " " * width + "".join(n.rjust(width) for n in names),
        ]
        for actual, name in zip(classes, names):
            cells = "".join(str(self.count(actual, p)).rjust(width) for p in classes)
            lines.append(name.ljust(width) + cells)
        lines.append(f"Total: {self.total}  Correct: {self.correct}  Incorrect: {self.incorrect}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ConfusionMatrix(total={self.total}, correct={self.correct})"
