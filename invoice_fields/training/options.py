"""
Training Options.

Author: ML Engineering Team
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict

from config import get_config
from invoice_fields.utils.exceptions import ConfigurationError


SPLIT_TOLERANCE = 1e-6


@dataclass
class TrainingOptions:
    """
    Parameters of one training run.

    Attributes:
        train_fraction: Share of samples used for fitting
        validation_fraction: Share held out for validation metrics
        test_fraction: Share held out for the reported metrics
        use_cross_validation: Run k-fold CV on the training partition
        folds: Number of CV folds
        min_samples: Runs with fewer samples are rejected
        random_seed: Seed for splitting and the solver
        normalize: Standardize features
        max_iterations: Solver iteration limit
        l2_regularization: L2 strength
        model_version: Version stamped on the produced model
        min_accuracy: Quality target, reported only
        min_macro_f1: Quality target, reported only
    """
    train_fraction: float = 0.8
    validation_fraction: float = 0.1
    test_fraction: float = 0.1
    use_cross_validation: bool = True
    folds: int = 5
    min_samples: int = 100
    random_seed: int = 42
    normalize: bool = True
    max_iterations: int = 100
    l2_regularization: float = 0.01
    model_version: str = "v1.0"
    min_accuracy: float = 0.85
    min_macro_f1: float = 0.80

    @classmethod
    def from_config(cls, **overrides: Any) -> 'TrainingOptions':
        """Options from settings.yaml, with keyword overrides on top."""
        values = dict(
            train_fraction=get_config("training.split.train", 0.8),
            validation_fraction=get_config("training.split.validation", 0.1),
            test_fraction=get_config("training.split.test", 0.1),
            use_cross_validation=get_config("training.cross_validation.enabled", True),
            folds=get_config("training.cross_validation.folds", 5),
            min_samples=get_config("training.min_samples", 100),
            random_seed=get_config("training.random_seed", 42),
            normalize=get_config("training.normalize", True),
            max_iterations=get_config("training.max_iterations", 100),
            l2_regularization=get_config("training.l2_regularization", 0.01),
            model_version=get_config("model.version", "v1.0"),
            min_accuracy=get_config("training.quality_targets.min_accuracy", 0.85),
            min_macro_f1=get_config("training.quality_targets.min_macro_f1", 0.80),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> 'TrainingOptions':
        """
        Check the options before any work starts.

        Raises:
            ConfigurationError: If fractions are negative or do not sum
                to 1.0, or folds / iterations / minimum are not positive.
        """
        fractions = {
            'train': self.train_fraction,
            'validation': self.validation_fraction,
            'test': self.test_fraction,
        }
        if any(value < 0 for value in fractions.values()):
            raise ConfigurationError("Split fractions must not be negative", fractions)
        if self.train_fraction <= 0:
            raise ConfigurationError("Train fraction must be positive", fractions)
        total = sum(fractions.values())
        if not math.isclose(total, 1.0, abs_tol=SPLIT_TOLERANCE):
            raise ConfigurationError(
                "Split fractions must sum to 1.0",
                dict(fractions, sum=total)
            )
        if self.folds <= 0:
            raise ConfigurationError("Cross-validation folds must be positive", {"folds": self.folds})
        if self.use_cross_validation and self.folds < 2:
            raise ConfigurationError(
                "Cross-validation needs at least 2 folds", {"folds": self.folds})
        if self.max_iterations <= 0:
            raise ConfigurationError(
                "Max iterations must be positive", {"max_iterations": self.max_iterations})
        if self.min_samples < 1:
            raise ConfigurationError("Minimum sample count must be positive", {"min_samples": self.min_samples})
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
