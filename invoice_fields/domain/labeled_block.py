"""
Labeled Block Module.

A TextBlock together with its ground-truth label and, once classified,
the predicted label and prediction confidence. Used both to hand
predictions to storage and as training input.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from invoice_fields.domain.field_type import FieldType
from invoice_fields.domain.text_block import TextBlock


@dataclass
class LabeledBlock:
    """
    Block with actual and predicted labels.

    Only set_prediction() and set_actual_label() change the labels.

    Attributes:
        block: The underlying immutable TextBlock
        actual_label: Ground-truth label, None when unlabeled
        predicted_label: Classifier output, None before classification
        prediction_confidence: Confidence of the prediction (0-1)
        model_version: Version of the model that produced the prediction
        predicted_at: ISO timestamp of the last prediction
    """
    block: TextBlock
    actual_label: Optional[FieldType] = None
    predicted_label: Optional[FieldType] = None
    prediction_confidence: Optional[float] = None
    model_version: Optional[str] = None
    predicted_at: Optional[str] = field(default=None, compare=False)

    def set_prediction(
        self,
        label: FieldType,
        confidence: float,
        model_version: Optional[str] = None
    ) -> None:
        """
        Record a classifier prediction.

        Raises:
            ValueError: If confidence is outside [0, 1].
        """
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")
        self.predicted_label = FieldType.parse(label)
        self.prediction_confidence = float(confidence)
        self.model_version = model_version
        self.predicted_at = datetime.now().isoformat()

    def set_actual_label(self, label: FieldType) -> None:
        self.actual_label = FieldType.parse(label)

    @property
    def is_labeled(self) -> bool:
        return self.actual_label is not None

    @property
    def is_predicted(self) -> bool:
        return self.predicted_label is not None

    @property
    def is_correctly_predicted(self) -> bool:
        return self.is_labeled and self.is_predicted and self.actual_label == self.predicted_label

    def is_high_confidence(self, threshold: float = 0.8) -> bool:
        return self.prediction_confidence is not None and self.prediction_confidence >= threshold

    def is_low_confidence(self, threshold: float = 0.5) -> bool:
        return self.prediction_confidence is not None and self.prediction_confidence < threshold

    def to_dict(self) -> Dict[str, Any]:
        data = self.block.to_dict()
        data.update({
            'actual_label': self.actual_label.value if self.actual_label else None,
            'predicted_label': self.predicted_label.value if self.predicted_label else None,
            'prediction_confidence': self.prediction_confidence,
            'model_version': self.model_version,
            'predicted_at': self.predicted_at,
        })
        return data

    def __repr__(self) -> str:
        predicted = self.predicted_label.name if self.predicted_label else None
        actual = self.actual_label.name if self.actual_label else None
        return (
            f"LabeledBlock(page={self.block.page_number}, line={self.block.line_index}, "
            f"actual={actual}, predicted={predicted}, confidence={self.prediction_confidence})"
        )
