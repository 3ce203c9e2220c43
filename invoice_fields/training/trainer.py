"""
Model Trainer Module.

Fits a FieldClassifier from labeled samples.

Run outline:
    1. Validate options (ConfigurationError on bad splits or folds)
    2. Reject runs below the minimum sample count
    3. Extract feature vectors
    4. Stratified train/validation/test split
    5. Optional k-fold cross-validation on the training partition
    6. Final fit and evaluation on each partition

Cancellation is checked before each fold and before the final fit, never
inside one. Data problems and mid-run failures come back as an
unsuccessful TrainingResult carrying whatever metrics were collected.

Author: ML Engineering Team
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.evaluation.metrics import (
    MetricsCalculator,
    TrainingMetrics,
    average_metrics,
    score_model,
)
from invoice_fields.features.extractor import FeatureExtractor
from invoice_fields.model_inference.classifier import FieldClassifier
from invoice_fields.training.options import TrainingOptions
from invoice_fields.training.samples import TrainingSample, featurize
from invoice_fields.training.splitter import DataSplitter
from invoice_fields.utils.exceptions import (
    InferenceError,
    InsufficientTrainingDataError,
    ModelSchemaError,
    TrainingCancelledError,
    TrainingError,
)
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class TrainingResult:
    """
    Outcome of one training run.

    Attributes:
        success: True when a model was produced
        model: Trained classifier, None on failure
        metrics: Metrics on the test partition (the reported figures)
        validation_metrics: Metrics on the validation partition
        training_metrics: Metrics on the training partition
        fold_metrics: Per-fold cross-validation metrics
        cv_metrics: Fold metrics averaged
        warnings: Non-fatal findings
        errors: Reasons the run failed
        cancelled: True when stopped by the cancel event
        failure: Exception describing the failure, for raise_for_status()
        sample_count: Samples supplied
        partition_sizes: Samples per partition
        duration_seconds: Wall time
    """
    success: bool = False
    model: Optional[FieldClassifier] = None
    metrics: Optional[TrainingMetrics] = None
    validation_metrics: Optional[TrainingMetrics] = None
    training_metrics: Optional[TrainingMetrics] = None
    fold_metrics: List[TrainingMetrics] = field(default_factory=list)
    cv_metrics: Optional[TrainingMetrics] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    failure: Optional[TrainingError] = None
    sample_count: int = 0
    partition_sizes: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0
    options: Optional[TrainingOptions] = None

    @property
    def meets_quality_targets(self) -> bool:
        if self.metrics is None or self.options is None:
            return False
        return self.metrics.meets_targets(self.options.min_accuracy, self.options.min_macro_f1)

    def raise_for_status(self) -> 'TrainingResult':
        """Raise the recorded failure, if any."""
        if not self.success:
            raise self.failure or TrainingError("Training failed", {"errors": self.errors})
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'cancelled': self.cancelled,
            'model_version': self.model.model_version if self.model else None,
            'sample_count': self.sample_count,
            'partition_sizes': dict(self.partition_sizes),
            'duration_seconds': round(self.duration_seconds, 3),
            'metrics': self.metrics.to_dict() if self.metrics else None,
            'validation_metrics': self.validation_metrics.to_dict() if self.validation_metrics else None,
            'cv_metrics': self.cv_metrics.to_dict() if self.cv_metrics else None,
            'fold_accuracies': [m.accuracy for m in self.fold_metrics],
            'warnings': list(self.warnings),
            'errors': list(self.errors),
        }

    def print_report(self) -> str:
        lines = [
            "=" * 60,
            "TRAINING REPORT",
            "=" * 60,
            f"Status: {'SUCCESS' if self.success else ('CANCELLED' if self.cancelled else 'FAILED')}",
            f"Samples: {self.sample_count}  Partitions: {self.partition_sizes}",
            f"Duration: {self.duration_seconds:.2f}s",
        ]
        if self.fold_metrics:
            lines.append("-" * 60)
            lines.append("CROSS-VALIDATION:")
            for i, fold in enumerate(self.fold_metrics, 1):
                lines.append(f"  Fold {i}: accuracy {fold.accuracy:.3f}, macro F1 {fold.macro_f1:.3f}")
            if self.cv_metrics:
                lines.append(
                    f"  Mean:   accuracy {self.cv_metrics.accuracy:.3f}, "
                    f"macro F1 {self.cv_metrics.macro_f1:.3f}"
                )
        for message in self.warnings:
            lines.append(f"WARNING: {message}")
        for message in self.errors:
            lines.append(f"ERROR: {message}")
        if self.metrics:
            lines.append(self.metrics.print_report("TEST PARTITION METRICS"))
        else:
            lines.append("=" * 60)
        return "\n".join(lines)


class ModelTrainer:
    """
    Trains field classifiers.

    Example:
        >>> trainer = ModelTrainer()
        >>> result = trainer.train(TrainingSet.load("data/blocks.tsv"))
        >>> if result.success:
        ...     result.model.save("models/field_classifier.pkl")
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

    def train(
        self,
        samples: Iterable[TrainingSample],
        options: Optional[TrainingOptions] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> TrainingResult:
        """
        Run a full training.

        Args:
            samples: Labeled samples (a TrainingSet or any iterable).
            options: Run options; defaults come from settings.yaml.
            cancel_event: Set to stop before the next fold or the final fit.

        Returns:
            TrainingResult; check ``success``.

        Raises:
            ConfigurationError: If the options are inconsistent.
        """
        options = (options or TrainingOptions.from_config()).validate()
        samples = list(samples)
        started = time.monotonic()
        result = TrainingResult(sample_count=len(samples), options=options)

        if len(samples) < options.min_samples:
            error = InsufficientTrainingDataError(options.min_samples, len(samples))
            logger.error(str(error))
            return self._fail(result, error, started)

        logger.info(f"Training model {options.model_version} on {len(samples)} samples")

        try:
            X, labels, _ = featurize(samples, self.extractor, self.max_workers)

            splitter = DataSplitter(options.random_seed)
            split = splitter.split(
                labels,
                options.train_fraction,
                options.validation_fraction,
                options.test_fraction,
            )
            result.warnings.extend(split.warnings)
            result.partition_sizes = {
                'train': len(split.train),
                'validation': len(split.validation),
                'test': len(split.test),
            }

            train_labels = [labels[i] for i in split.train]
            self._warn_missing_classes(train_labels, result)

            if options.use_cross_validation:
                self._cross_validate(X[split.train], train_labels, options, splitter, result, cancel_event)
                if result.cancelled:
                    return self._fail(result, TrainingCancelledError(len(result.fold_metrics)), started)

            if _is_cancelled(cancel_event):
                result.cancelled = True
                return self._fail(result, TrainingCancelledError(len(result.fold_metrics)), started)

            model = FieldClassifier.fit(
                X[split.train],
                train_labels,
                model_version=options.model_version,
                normalize=options.normalize,
                max_iterations=options.max_iterations,
                l2_regularization=options.l2_regularization,
                random_seed=options.random_seed,
                training_info={
                    'sample_count': len(samples),
                    'partition_sizes': dict(result.partition_sizes),
                    'options': options.to_dict(),
                },
            )

            result.training_metrics, _, _ = score_model(model, X[split.train], train_labels, self.calculator)
            if split.validation:
                result.validation_metrics, _, _ = score_model(
                    model, X[split.validation], [labels[i] for i in split.validation], self.calculator)
            if split.test:
                result.metrics, _, _ = score_model(
                    model, X[split.test], [labels[i] for i in split.test], self.calculator)
            else:
                result.metrics = result.validation_metrics or result.training_metrics
                result.warnings.append("No test partition; reported metrics come from another partition")

        except (ValueError, InferenceError, ModelSchemaError, np.linalg.LinAlgError) as e:
            logger.error(f"Training failed: {e}")
            return self._fail(result, TrainingError("Training failed", {"reason": str(e)}), started)

        result.model = model
        result.success = True
        result.duration_seconds = time.monotonic() - started

        if not result.meets_quality_targets:
            message = (
                f"Model below quality targets (accuracy {result.metrics.accuracy:.3f} / "
                f"{options.min_accuracy}, macro F1 {result.metrics.macro_f1:.3f} / {options.min_macro_f1})"
            )
            logger.warning(message)
            result.warnings.append(message)

        logger.info(
            f"Training finished in {result.duration_seconds:.1f}s: "
            f"accuracy {result.metrics.accuracy:.3f}, macro F1 {result.metrics.macro_f1:.3f}"
        )
        return result

    def _cross_validate(
        self,
        X: np.ndarray,
        labels: List[FieldType],
        options: TrainingOptions,
        splitter: DataSplitter,
        result: TrainingResult,
        cancel_event: Optional[threading.Event]
    ) -> None:
        try:
            folds, warnings = splitter.k_fold(labels, options.folds)
        except ValueError as e:
            message = f"Cross-validation skipped: {e}"
            logger.warning(message)
            result.warnings.append(message)
            return
        result.warnings.extend(warnings)

        for number, (train_idx, eval_idx) in enumerate(folds, 1):
            if _is_cancelled(cancel_event):
                logger.warning(f"Training cancelled before fold {number}")
                result.cancelled = True
                break

            fold_model = FieldClassifier.fit(
                X[train_idx],
                [labels[i] for i in train_idx],
                model_version=f"{options.model_version}-fold{number}",
                normalize=options.normalize,
                max_iterations=options.max_iterations,
                l2_regularization=options.l2_regularization,
                random_seed=options.random_seed,
            )
            metrics, _, _ = score_model(
                fold_model, X[eval_idx], [labels[i] for i in eval_idx], self.calculator)
            result.fold_metrics.append(metrics)
            logger.info(f"Fold {number}/{len(folds)}: accuracy {metrics.accuracy:.3f}")

        if result.fold_metrics:
            result.cv_metrics = average_metrics(result.fold_metrics, options.model_version)

    @staticmethod
    def _warn_missing_classes(train_labels: List[FieldType], result: TrainingResult) -> None:
        present = set(train_labels)
        for label in ALL_FIELD_TYPES:
            if label not in present:
                message = f"No training samples for class {label.value}"
                logger.warning(message)
                result.warnings.append(message)

    @staticmethod
    def _fail(result: TrainingResult, error: TrainingError, started: float) -> TrainingResult:
        result.success = False
        result.model = None
        result.failure = error
        result.errors.append(str(error))
        if isinstance(error, TrainingCancelledError):
            result.cancelled = True
        result.duration_seconds = time.monotonic() - started
        return result


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
