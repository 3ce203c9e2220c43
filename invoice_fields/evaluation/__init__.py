"""
Evaluation Module.

Classification quality measurement for the field classifier:
    - Confusion matrix
    - Accuracy, per-class and micro/macro/weighted F1, log-loss
    - Regression evaluation of trained models with misclassification records
    - Excel reports keyed by model version

Author: ML Engineering Team
"""

from .confusion import ConfusionMatrix
from .metrics import ClassMetrics, MetricsCalculator, TrainingMetrics, average_metrics, score_model
from .evaluator import Misclassification, ModelEvaluation, ModelEvaluator
from .report_exporter import EvaluationReportExporter

__all__ = [
    'ConfusionMatrix',
    'ClassMetrics',
    'MetricsCalculator',
    'TrainingMetrics',
    'average_metrics',
    'score_model',
    'Misclassification',
    'ModelEvaluation',
    'ModelEvaluator',
    'EvaluationReportExporter',
]
