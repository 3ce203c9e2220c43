"""
Data Splitter Module.

Train/validation/test partitioning and k-fold generation, stratified by
label whenever the class counts allow it.

Author: ML Engineering Team
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
from sklearn.model_selection import KFold, StratifiedKFold, train_test_split

from invoice_fields.domain.field_type import FieldType
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class SplitResult:
    """Index lists into the original sample order."""
    train: List[int] = field(default_factory=list)
    validation: List[int] = field(default_factory=list)
    test: List[int] = field(default_factory=list)
    stratified: bool = True
    warnings: List[str] = field(default_factory=list)


class DataSplitter:
    """
    Splits label sequences into partitions and folds.

    Example:
        >>> splitter = DataSplitter(random_seed=42)
        >>> split = splitter.split(labels, 0.8, 0.1, 0.1)
        >>> len(split.train), len(split.validation), len(split.test)
        (800, 100, 100)
    """

    def __init__(self, random_seed: int = 42) -> None:
        self.random_seed = random_seed

    def split(
        self,
        labels: Sequence[FieldType],
        train_fraction: float = 0.8,
        validation_fraction: float = 0.1,
        test_fraction: float = 0.1
    ) -> SplitResult:
        """
        Partition sample indices.

        Uses a stratified split when every class can be represented in each
        held-out partition, otherwise a random split with a warning.
        """
        indices = np.arange(len(labels))
        y = np.array([label.class_index for label in labels], dtype=int)
        result = SplitResult()

        held_out = validation_fraction + test_fraction
        if held_out <= 0 or len(indices) < 2:
            result.train = indices.tolist()
            return result

        train_idx, rest_idx, stratified = self._split_once(
            indices, y, held_out, result.warnings, "train/held-out"
        )
        result.stratified = stratified

        if validation_fraction <= 0:
            result.test = rest_idx.tolist()
        elif test_fraction <= 0:
            result.validation = rest_idx.tolist()
        elif len(rest_idx) < 2:
            result.test = rest_idx.tolist()
        else:
            test_share = test_fraction / held_out
            val_idx, test_idx, stratified = self._split_once(
                rest_idx, y[rest_idx], test_share, result.warnings, "validation/test"
            )
            result.stratified = result.stratified and stratified
            result.validation = val_idx.tolist()
            result.test = test_idx.tolist()

        result.train = train_idx.tolist()
        logger.debug(
            f"Split {len(indices)} samples: train={len(result.train)}, "
            f"validation={len(result.validation)}, test={len(result.test)} "
            f"(stratified: {result.stratified})"
        )
        return result

    def _split_once(
        self,
        indices: np.ndarray,
        y: np.ndarray,
        second_share: float,
        warnings: List[str],
        stage: str
    ) -> Tuple[np.ndarray, np.ndarray, bool]:
        try:
            first, second = train_test_split(
                indices,
                test_size=second_share,
                random_state=self.random_seed,
                stratify=y,
            )
            return np.sort(first), np.sort(second), True
        except ValueError as e:
            message = f"Stratified {stage} split not possible ({e}); using random split"
            logger.warning(message)
            warnings.append(message)

        first, second = train_test_split(
            indices,
            test_size=second_share,
            random_state=self.random_seed,
        )
        return np.sort(first), np.sort(second), False

    def k_fold(self, labels: Sequence[FieldType], folds: int) -> Tuple[List[Tuple[List[int], List[int]]], List[str]]:
        """
        Disjoint folds as (train indices, evaluation indices) pairs.

        StratifiedKFold is used when the smallest class has at least
        ``folds`` samples, plain KFold otherwise.

        Returns:
            (folds, warnings)
        """
        warnings: List[str] = []
        n = len(labels)
        if folds < 2 or n < folds:
            raise ValueError(f"Cannot build {folds} folds from {n} samples")

        y = np.array([label.class_index for label in labels], dtype=int)
        smallest = min(Counter(y.tolist()).values())
        X = np.zeros((n, 1))

        if smallest >= folds:
            splitter = StratifiedKFold(n_splits=folds, shuffle=True, random_state=self.random_seed)
            splits = splitter.split(X, y)
        else:
            message = (
                f"Smallest class has {smallest} samples, fewer than {folds} folds; "
                "using unstratified folds"
            )
            logger.warning(message)
            warnings.append(message)
            splitter = KFold(n_splits=folds, shuffle=True, random_state=self.random_seed)
            splits = splitter.split(X)

        return [(train.tolist(), test.tolist()) for train, test in splits], warnings
