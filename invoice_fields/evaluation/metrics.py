"""
Metrics Calculator Module.

Classification metrics for the field classifier.

Metrics Include:
    - Accuracy
    - Per-class precision, recall, F1 and support
    - Micro, macro and weighted F1 over the classes seen in actual or
      predicted labels (sklearn.metrics)
    - Log-loss with probabilities clamped away from 0 and 1
    - Fold averaging for cross-validation

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sklearn.metrics import accuracy_score, f1_score, precision_recall_fscore_support
from sklearn.metrics import log_loss as sk_log_loss

from config import get_config
from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.evaluation.confusion import ConfusionMatrix
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassMetrics:
    """
    Metrics for one class.

    Attributes:
        label: Field type
        precision: TP / (TP + FP)
        recall: TP / (TP + FN)
        f1: Harmonic mean of precision and recall
        support: Samples whose actual label is this class
        predicted_count: Samples predicted as this class
        log_loss: Mean log-loss over this class's samples, None without probabilities
    """
    label: FieldType
    precision: float = 0.0
    recall: float = 0.0
    f1: float = 0.0
    support: int = 0
    predicted_count: int = 0
    log_loss: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'precision': self.precision,
            'recall': self.recall,
            'f1': self.f1,
            'support': self.support,
            'predicted_count': self.predicted_count,
            'log_loss': self.log_loss,
        }


@dataclass
class TrainingMetrics:
    """
    Aggregate classification metrics for one run.

    Treated as a snapshot: produced once by MetricsCalculator and tied to
    ``model_version``.
    """
    accuracy: float = 0.0
    micro_f1: float = 0.0
    macro_f1: float = 0.0
    weighted_f1: float = 0.0
    log_loss: Optional[float] = None
    per_class: Dict[FieldType, ClassMetrics] = field(default_factory=dict)
    confusion_matrix: ConfusionMatrix = field(default_factory=ConfusionMatrix)
    total_samples: int = 0
    model_version: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def meets_targets(self, min_accuracy: float = 0.85, min_macro_f1: float = 0.80) -> bool:
        return self.accuracy >= min_accuracy and self.macro_f1 >= min_macro_f1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_version': self.model_version,
            'timestamp': self.timestamp,
            'total_samples': self.total_samples,
            'accuracy': self.accuracy,
            'micro_f1': self.micro_f1,
            'macro_f1': self.macro_f1,
            'weighted_f1': self.weighted_f1,
            'log_loss': self.log_loss,
            'per_class': {label.value: m.to_dict() for label, m in self.per_class.items()},
            'confusion_matrix': self.confusion_matrix.to_dict(),
        }

    def print_report(self, title: str = "CLASSIFICATION METRICS") -> str:
        """Generate a formatted report string."""
        log_loss = f"{self.log_loss:.4f}" if self.log_loss is not None else "n/a"
        lines = [
            "=" * 60,
            title,
            "=" * 60,
            f"Model Version: {self.model_version or 'n/a'}",
            f"Timestamp: {self.timestamp}",
            f"Total Samples: {self.total_samples}",
            "-" * 60,
            "",
            "OVERALL METRICS:",
            f"  Accuracy:     {self.accuracy * 100:.1f}%",
            f"  Micro F1:     {self.micro_f1:.4f}",
            f"  Macro F1:     {self.macro_f1:.4f}",
            f"  Weighted F1:  {self.weighted_f1:.4f}",
            f"  Log-Loss:     {log_loss}",
            "",
            "-" * 60,
            "PER-CLASS METRICS:",
            "",
        ]

        for label, m in self.per_class.items():
            lines.extend([
                f"  {label.display_name}:",
                f"    Precision: {m.precision:.3f}  Recall: {m.recall:.3f}  "
                f"F1: {m.f1:.3f}  Support: {m.support}",
            ])

        lines.extend(["", self.confusion_matrix.print_report(), "=" * 60])
        return "\n".join(lines)


class MetricsCalculator:
    """
    Computes TrainingMetrics from actual and predicted labels.

    Attributes:
        epsilon: Probability clamp for log-loss

    Example:
        >>> calculator = MetricsCalculator()
        >>> metrics = calculator.compute(actual, predicted, probabilities)
        >>> print(metrics.print_report())
    """

    def __init__(self, epsilon: Optional[float] = None) -> None:
        self.epsilon = float(epsilon if epsilon is not None
                             else get_config("evaluation.log_loss_epsilon", 1e-15))

    def compute(
        self,
        actual: Sequence[FieldType],
        predicted: Sequence[FieldType],
        probabilities: Optional[np.ndarray] = None,
        model_version: Optional[str] = None
    ) -> TrainingMetrics:
        """
        Compute all metrics.

        Per-class and averaged figures come from ``sklearn.metrics`` over the
        classes seen in either label list, with zero where a ratio is undefined.

        Args:
            actual: Ground-truth labels.
            predicted: Predicted labels, parallel to ``actual``.
            probabilities: Optional (n, len(FieldType)) matrix; column i is
                the probability of FieldType.from_index(i).
            model_version: Version to stamp on the result.

        Raises:
            ValueError: If the inputs differ in length.
        """
        if len(actual) != len(predicted):
            raise ValueError(
                f"Label count mismatch: {len(actual)} actual vs {len(predicted)} predicted"
            )

        matrix = ConfusionMatrix.from_labels(actual, predicted)
        total = matrix.total
        if not total:
            return TrainingMetrics(confusion_matrix=matrix, model_version=model_version)

        classes = matrix.classes
        labels = [c.class_index for c in classes]
        y_true = [a.class_index for a in actual]
        y_pred = [p.class_index for p in predicted]

        precision, recall, f1, support = precision_recall_fscore_support(
            y_true, y_pred, labels=labels, zero_division=0
        )

        clipped = None
        if probabilities is not None:
            clipped = self._clip(actual, probabilities)

        per_class: Dict[FieldType, ClassMetrics] = {}
        for i, label in enumerate(classes):
            class_loss = None
            if clipped is not None and support[i]:
                rows = [j for j, a in enumerate(actual) if a == label]
                class_loss = self._sk_log_loss([y_true[j] for j in rows], clipped[rows])

            per_class[label] = ClassMetrics(
                label=label,
                precision=float(precision[i]),
                recall=float(recall[i]),
                f1=float(f1[i]),
                support=int(support[i]),
                predicted_count=matrix.column_total(label),
                log_loss=class_loss,
            )

        def _averaged(average: str) -> float:
            return float(f1_score(y_true, y_pred, labels=labels, average=average, zero_division=0))

        return TrainingMetrics(
            accuracy=float(accuracy_score(y_true, y_pred)),
            micro_f1=_averaged('micro'),
            macro_f1=_averaged('macro'),
            weighted_f1=_averaged('weighted'),
            log_loss=self._sk_log_loss(y_true, clipped) if clipped is not None else None,
            per_class=per_class,
            confusion_matrix=matrix,
            total_samples=total,
            model_version=model_version,
        )

    def log_loss(self, actual: Sequence[FieldType], probabilities: np.ndarray) -> float:
        """Mean negative log-probability of the true class."""
        if not len(actual):
            return 0.0
        clipped = self._clip(actual, probabilities)
        return self._sk_log_loss([a.class_index for a in actual], clipped)

    def _clip(self, actual: Sequence[FieldType], probabilities: np.ndarray) -> np.ndarray:
        """Clamp probabilities to [epsilon, 1 - epsilon] and renormalize rows."""
        matrix = np.asarray(probabilities, dtype=np.float64)
        if matrix.shape[0] != len(actual):
            raise ValueError(
                f"Probability rows ({matrix.shape[0]}) do not match labels ({len(actual)})"
            )
        matrix = np.clip(matrix, self.epsilon, 1.0 - self.epsilon)
        return matrix / matrix.sum(axis=1, keepdims=True)

    @staticmethod
    def _sk_log_loss(y_true: List[int], probabilities: np.ndarray) -> float:
        return float(sk_log_loss(y_true, probabilities, labels=list(range(len(ALL_FIELD_TYPES)))))


def score_model(
    model,
    features: np.ndarray,
    labels: Sequence[FieldType],
    calculator: Optional[MetricsCalculator] = None
):
    """
    Classify a feature matrix with ``model`` and compute metrics.

    Predicted labels take the most probable class, the lowest class index
    on ties.

    Returns:
        (metrics, predicted labels, probability matrix)
    """
    calculator = calculator or MetricsCalculator()
    if len(labels) == 0:
        return TrainingMetrics(model_version=model.model_version), [], np.zeros((0, 0))

    probabilities = model.predict_proba_matrix(features)
    predicted = [FieldType.from_index(int(i)) for i in np.argmax(probabilities, axis=1)]
    metrics = calculator.compute(labels, predicted, probabilities, model.model_version)
    return metrics, predicted, probabilities


def average_metrics(folds: List[TrainingMetrics], model_version: Optional[str] = None) -> TrainingMetrics:
    """
    Average fold metrics for cross-validation.

    Scalars are plain means over folds; per-class values are averaged over
    the folds in which the class occurs; confusion matrices are summed.
    """
    if not folds:
        return TrainingMetrics(model_version=model_version)

    def _mean(values: List[float]) -> float:
        return float(sum(values) / len(values)) if values else 0.0

    losses = [f.log_loss for f in folds if f.log_loss is not None]

    matrix = ConfusionMatrix()
    for fold in folds:
        matrix = matrix.merge(fold.confusion_matrix)

    per_class: Dict[FieldType, ClassMetrics] = {}
    for label in matrix.classes:
        entries = [f.per_class[label] for f in folds if label in f.per_class]
        class_losses = [e.log_loss for e in entries if e.log_loss is not None]
        per_class[label] = ClassMetrics(
            label=label,
            precision=_mean([e.precision for e in entries]),
            recall=_mean([e.recall for e in entries]),
            f1=_mean([e.f1 for e in entries]),
            support=sum(e.support for e in entries),
            predicted_count=sum(e.predicted_count for e in entries),
            log_loss=_mean(class_losses) if class_losses else None,
        )

    return TrainingMetrics(
        accuracy=_mean([f.accuracy for f in folds]),
        micro_f1=_mean([f.micro_f1 for f in folds]),
        macro_f1=_mean([f.macro_f1 for f in folds]),
        weighted_f1=_mean([f.weighted_f1 for f in folds]),
        log_loss=_mean(losses) if losses else None,
        per_class=per_class,
        confusion_matrix=matrix,
        total_samples=matrix.total,
        model_version=model_version,
    )

