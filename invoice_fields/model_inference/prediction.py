"""
Prediction Data Classes.

Classifier output for one block (Prediction) and for a batch of blocks
(BatchPrediction).

Ranking rules:
    - confidence is the largest class probability
    - ties go to the lowest class index
    - top_k always holds exactly three entries; with fewer than three
      classes the lowest-ranked class is repeated with score 0.0

Author: ML Engineering Team
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.policy.confidence import ConfidenceLevel, get_level
from invoice_fields.utils.exceptions import InferenceError


TOP_K = 3


@dataclass(frozen=True)
class ClassScore:
    label: FieldType
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label.value, 'score': round(self.score, 6)}


@dataclass(frozen=True)
class Prediction:
    """
    Result of classifying one feature vector.

    Attributes:
        label: Predicted field type
        probabilities: Probability per class, parallel to ``classes``
        classes: Label space of the model
        confidence: Largest probability
        top_k: Three best classes with their scores
        level: Confidence band
        model_version: Version of the model that produced it
    """
    label: FieldType
    probabilities: Tuple[float, ...]
    classes: Tuple[FieldType, ...]
    confidence: float
    top_k: Tuple[ClassScore, ...]
    level: ConfidenceLevel
    model_version: Optional[str] = None

    @classmethod
    def from_probabilities(
        cls,
        probabilities: Sequence[float],
        classes: Sequence[FieldType] = ALL_FIELD_TYPES,
        model_version: Optional[str] = None
    ) -> 'Prediction':
        """
        Build a Prediction from a probability vector.

        Raises:
            InferenceError: If the vector is empty or its length differs
                from the number of classes.
        """
        probabilities = tuple(float(p) for p in probabilities)
        classes = tuple(classes)
        if not probabilities or len(probabilities) != len(classes):
            raise InferenceError(
                f"Probability vector of length {len(probabilities)} "
                f"for {len(classes)} classes"
            )

        top = rank(probabilities, classes, TOP_K)
        best = top[0]
        return cls(
            label=best.label,
            probabilities=probabilities,
            classes=classes,
            confidence=best.score,
            top_k=top,
            level=get_level(best.score),
            model_version=model_version,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label.value,
            'confidence': round(self.confidence, 6),
            'level': self.level.value,
            'top_k': [entry.to_dict() for entry in self.top_k],
            'probabilities': {
                label.value: round(p, 6) for label, p in zip(self.classes, self.probabilities)
            },
            'model_version': self.model_version,
        }

    def __repr__(self) -> str:
        return f"Prediction({self.label.name}, confidence={self.confidence:.3f})"


def rank(
    probabilities: Sequence[float],
    classes: Sequence[FieldType],
    k: int = TOP_K
) -> Tuple[ClassScore, ...]:
    """
    Best ``k`` classes by probability, lowest index first on ties.

    When there are fewer than ``k`` classes the lowest-ranked class is
    repeated with score 0.0, so a 2-class model yields
    ``[best, other, other@0.0]`` and a 1-class model ``[only, only@0.0, only@0.0]``.
    """
    order = sorted(range(len(probabilities)), key=lambda i: (-probabilities[i], i))
    top = [ClassScore(classes[i], float(probabilities[i])) for i in order[:k]]
    while len(top) < k:
        top.append(ClassScore(classes[order[-1]], 0.0))
    return tuple(top)


@dataclass
class BatchPrediction:
    """
    Predictions for several vectors plus summary statistics.

    ``predictions`` keeps input order; failed entries are None and have
    a message in ``errors`` keyed by input position.
    """
    predictions: List[Optional[Prediction]] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)
    model_version: Optional[str] = None

    @property
    def successful(self) -> List[Prediction]:
        return [p for p in self.predictions if p is not None]

    @property
    def average_confidence(self) -> float:
        values = [p.confidence for p in self.successful]
        return sum(values) / len(values) if values else 0.0

    @property
    def min_confidence(self) -> float:
        return min((p.confidence for p in self.successful), default=0.0)

    @property
    def max_confidence(self) -> float:
        return max((p.confidence for p in self.successful), default=0.0)

    @property
    def counts_by_class(self) -> Dict[FieldType, int]:
        return dict(Counter(p.label for p in self.successful))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_version': self.model_version,
            'total': len(self.predictions),
            'failed': len(self.errors),
            'average_confidence': round(self.average_confidence, 6),
            'min_confidence': round(self.min_confidence, 6),
            'max_confidence': round(self.max_confidence, 6),
            'counts_by_class': {k.value: v for k, v in self.counts_by_class.items()},
            'errors': {str(k): v for k, v in self.errors.items()},
        }
