"""
Model Inference Module.

Classifies feature vectors into field types.

Components:
    - FieldClassifier: trained scikit-learn model artifact
    - PredictionEngine: lifecycle-managed, thread-safe prediction service
    - ModelRegistry: saved model versions, activation and deletion
    - Prediction / BatchPrediction: classifier output

Author: ML Engineering Team
"""

from .prediction import Prediction, BatchPrediction, ClassScore
from .classifier import FieldClassifier
from .engine import PredictionEngine, ModelState
from .registry import ModelRegistry, ModelEntry

__all__ = [
    'Prediction',
    'BatchPrediction',
    'ClassScore',
    'FieldClassifier',
    'PredictionEngine',
    'ModelState',
    'ModelRegistry',
    'ModelEntry',
]
