"""
Model Evaluator Module.

Re-runs a trained classifier against labeled samples without retraining,
for regression testing a model on new data.

Features:
    - Full TrainingMetrics on the supplied samples
    - A record of every misclassification with its text and document
    - Metric deltas between two evaluations
    - Text, JSON and HTML reports

Author: ML Engineering Team
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.evaluation.metrics import MetricsCalculator, TrainingMetrics, score_model
from invoice_fields.features.extractor import FeatureExtractor
from invoice_fields.training.samples import TrainingSample, featurize
from invoice_fields.utils.helpers import ensure_directory
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class Misclassification:
    """One sample the model got wrong."""
    actual: FieldType
    predicted: FieldType
    confidence: float
    text: str
    line_index: int = 0
    document_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'actual': self.actual.value,
            'predicted': self.predicted.value,
            'confidence': round(self.confidence, 4),
            'text': self.text,
            'line_index': self.line_index,
            'document_id': self.document_id,
        }


@dataclass(frozen=True)
class ModelEvaluation:
    """
    Snapshot of one evaluation run.

    Attributes:
        metrics: Metrics over all evaluated samples
        misclassifications: Every wrong prediction, in sample order
        dataset: Name of the evaluated sample set
    """
    metrics: TrainingMetrics
    misclassifications: List[Misclassification] = field(default_factory=list)
    dataset: str = ""

    @property
    def model_version(self) -> Optional[str]:
        return self.metrics.model_version

    @property
    def accuracy(self) -> float:
        return self.metrics.accuracy

    def misclassified_as(self, label: FieldType) -> List[Misclassification]:
        return [m for m in self.misclassifications if m.predicted == label]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dataset': self.dataset,
            'metrics': self.metrics.to_dict(),
            'misclassifications': [m.to_dict() for m in self.misclassifications],
        }

    def print_report(self, max_errors: int = 20) -> str:
        lines = [self.metrics.print_report(f"MODEL EVALUATION: {self.dataset or 'samples'}")]
        if self.misclassifications:
            lines.append("")
            lines.append(f"MISCLASSIFICATIONS ({len(self.misclassifications)}):")
            for m in self.misclassifications[:max_errors]:
                lines.append(
                    f"  [{m.document_id}:{m.line_index}] {m.actual.value} -> "
                    f"{m.predicted.value} ({m.confidence:.2f}): {m.text[:50]}"
                )
            if len(self.misclassifications) > max_errors:
                lines.append(f"  ... and {len(self.misclassifications) - max_errors} more")
            lines.append("")
            lines.append("WRONG PREDICTIONS BY PREDICTED CLASS:")
            for label in ALL_FIELD_TYPES:
                wrong = self.misclassified_as(label)
                if wrong:
                    lines.append(f"  {label.value}: {len(wrong)}")
        return "\n".join(lines)


class ModelEvaluator:
    """
    Evaluates trained classifiers.

    Example:
        >>> evaluator = ModelEvaluator()
        >>> evaluation = evaluator.evaluate(model, TrainingSet.load("data/new.tsv"))
        >>> print(evaluation.print_report())
    """

    def __init__(
        self,
        extractor: Optional[FeatureExtractor] = None,
        calculator: Optional[MetricsCalculator] = None,
        max_workers: Optional[int] = None
    ) -> None:
        self.extractor = extractor or FeatureExtractor()
        self.calculator = calculator or MetricsCalculator()
        self.max_workers = max_workers

    def evaluate(self, model, samples: Iterable[TrainingSample], dataset: Optional[str] = None) -> ModelEvaluation:
        """
        Classify every sample and compare against its label.

        Args:
            model: A FieldClassifier.
            samples: Labeled samples (a TrainingSet or any iterable).
            dataset: Name recorded on the snapshot; defaults to the set's name.

        Returns:
            ModelEvaluation snapshot.

        Raises:
            ModelSchemaError: If the model was trained on another feature schema.
        """
        dataset = dataset or getattr(samples, 'name', '')
        samples = list(samples)
        if not samples:
            logger.warning("No samples to evaluate")
            return ModelEvaluation(TrainingMetrics(model_version=model.model_version), [], dataset)

        X, labels, _ = featurize(samples, self.extractor, self.max_workers)
        metrics, predicted, probabilities = score_model(model, X, labels, self.calculator)

        confidences = np.max(probabilities, axis=1)
        errors = [
            Misclassification(
                actual=actual,
                predicted=guess,
                confidence=float(confidence),
                text=sample.text,
                line_index=sample.line_index,
                document_id=sample.document_id,
            )
            for sample, actual, guess, confidence in zip(samples, labels, predicted, confidences)
            if actual != guess
        ]

        logger.info(
            f"Evaluation complete: {metrics.accuracy * 100:.1f}% accuracy on "
            f"{metrics.total_samples} samples, {len(errors)} misclassified"
        )
        return ModelEvaluation(metrics, errors, dataset)

    @staticmethod
    def compare(baseline: ModelEvaluation, candidate: ModelEvaluation) -> Dict[str, Any]:
        """
        Metric deltas (candidate minus baseline).

        Returns:
            Dictionary with overall and per-class F1 deltas and a
            ``regressions`` list naming every metric that got worse.
        """
        deltas: Dict[str, Any] = {
            'baseline_version': baseline.model_version,
            'candidate_version': candidate.model_version,
        }
        regressions = []
        for name in ('accuracy', 'micro_f1', 'macro_f1', 'weighted_f1'):
            delta = getattr(candidate.metrics, name) - getattr(baseline.metrics, name)
            deltas[name] = delta
            if delta < 0:
                regressions.append(name)

        base_loss, cand_loss = baseline.metrics.log_loss, candidate.metrics.log_loss
        if base_loss is not None and cand_loss is not None:
            deltas['log_loss'] = cand_loss - base_loss
            if cand_loss > base_loss:
                regressions.append('log_loss')

        per_class = {}
        for label in set(baseline.metrics.per_class) | set(candidate.metrics.per_class):
            base = baseline.metrics.per_class.get(label)
            cand = candidate.metrics.per_class.get(label)
            delta = (cand.f1 if cand else 0.0) - (base.f1 if base else 0.0)
            per_class[label.value] = delta
            if delta < 0:
                regressions.append(f"f1[{label.value}]")
        deltas['per_class_f1'] = dict(sorted(per_class.items()))
        deltas['regressions'] = regressions

        logger.info(
            f"Compared {baseline.model_version} -> {candidate.model_version}: "
            f"accuracy {deltas['accuracy']:+.3f}, {len(regressions)} regressions"
        )
        return deltas

    def generate_report(
        self,
        evaluation: ModelEvaluation,
        output_path: Optional[str] = None,
        format: str = 'txt'
    ) -> str:
        """
        Render an evaluation report.

        Args:
            evaluation: Evaluation to report.
            output_path: File to write. If None, the report string is returned.
            format: 'txt', 'json' or 'html'.

        Returns:
            Report string or path to the saved file.
        """
        if format == 'txt':
            report = evaluation.print_report()
        elif format == 'json':
            report = json.dumps(evaluation.to_dict(), indent=2)
        elif format == 'html':
            report = self._generate_html_report(evaluation)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if output_path:
            ensure_directory(Path(output_path).parent)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(report)
            logger.info(f"Report saved to: {output_path}")
            return output_path

        return report

    def _generate_html_report(self, evaluation: ModelEvaluation) -> str:
        """Generate HTML formatted report."""
        m = evaluation.metrics
        html = f"""<!DOCTYPE html>
<html>
<head>
    <title>Field Classifier Evaluation Report</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 20px; }}
        h1 {{ color: #333; }}
        h2 {{ color: #555; border-bottom: 2px solid #ddd; padding-bottom: 5px; }}
        table {{ border-collapse: collapse; width: 100%; margin: 20px 0; }}
        th, td {{ border: 1px solid #ddd; padding: 10px; text-align: left; }}
        th {{ background-color: #4472C4; color: white; }}
        tr:nth-child(even) {{ background-color: #f2f2f2; }}
        .good {{ color: #28a745; }}
        .medium {{ color: #ffc107; }}
        .poor {{ color: #dc3545; }}
    </style>
</head>
<body>
    <h1>Field Classifier Evaluation Report</h1>
    <p>Model: {m.model_version or 'n/a'} | Generated: {m.timestamp}</p>

    <h2>Overall Metrics</h2>
    <table>
        <tr><th>Accuracy</th><th>Micro F1</th><th>Macro F1</th><th>Weighted F1</th><th>Samples</th></tr>
        <tr><td>{m.accuracy * 100:.1f}%</td><td>{m.micro_f1:.3f}</td><td>{m.macro_f1:.3f}</td>
            <td>{m.weighted_f1:.3f}</td><td>{m.total_samples}</td></tr>
    </table>

    <h2>Per-Class Metrics</h2>
    <table>
        <tr><th>Class</th><th>Precision</th><th>Recall</th><th>F1</th><th>Support</th></tr>
"""
        for label, c in m.per_class.items():
            css = 'good' if c.f1 >= 0.9 else ('medium' if c.f1 >= 0.7 else 'poor')
            html += (
                f"        <tr><td>{label.display_name}</td><td>{c.precision:.3f}</td>"
                f"<td>{c.recall:.3f}</td><td class=\"{css}\">{c.f1:.3f}</td><td>{c.support}</td></tr>\n"
            )

        html += """    </table>
</body>
</html>"""
        return html
