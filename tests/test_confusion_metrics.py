"""
Tests for the confusion matrix and classification metrics.
"""

import math
import random

import numpy as np
import pytest

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.evaluation.confusion import ConfusionMatrix
from invoice_fields.evaluation.metrics import (
    MetricsCalculator,
    TrainingMetrics,
    average_metrics,
    score_model,
)


NONE = FieldType.NONE
NUMBER = FieldType.INVOICE_NUMBER
DATE = FieldType.INVOICE_DATE
NET = FieldType.NET_TOTAL
GROSS = FieldType.GROSS_TOTAL


@pytest.fixture
def calculator():
    return MetricsCalculator(epsilon=1e-15)


def _random_labels(seed, n=200):
    rng = random.Random(seed)
    actual = [rng.choice(ALL_FIELD_TYPES) for _ in range(n)]
    predicted = [a if rng.random() < 0.7 else rng.choice(ALL_FIELD_TYPES) for a in actual]
    return actual, predicted


class _TiedModel:
    """Stand-in model whose first two classes always tie."""
    model_version = "tied"

    def predict_proba_matrix(self, matrix):
        rows = np.zeros((len(matrix), len(ALL_FIELD_TYPES)))
        rows[:, 0] = 0.5
        rows[:, 1] = 0.5
        return rows


# =============================================================================
# CONFUSION MATRIX
# =============================================================================

class TestConfusionMatrix:
    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_cells_sum_to_total(self, seed):
        matrix = ConfusionMatrix.from_labels(*_random_labels(seed))

        assert matrix.cell_sum() == matrix.total == 200
        assert matrix.diagonal_sum() == matrix.correct
        assert matrix.correct + matrix.incorrect == matrix.total

    def test_counts(self):
        matrix = ConfusionMatrix.from_labels([NET, NET, GROSS], [GROSS, NET, GROSS])

        assert matrix.count(NET, GROSS) == 1
        assert matrix.count(GROSS, NET) == 0
        assert matrix.row_total(NET) == 2
        assert matrix.column_total(GROSS) == 2
        assert matrix.accuracy == pytest.approx(2 / 3)
        assert matrix.classes == [NET, GROSS]

    def test_add_with_count(self):
        matrix = ConfusionMatrix()
        matrix.add(DATE, DATE, count=5)
        matrix.add(DATE, NONE, count=2)

        assert matrix.total == 7
        assert matrix.correct == 5

    def test_declared_classes_are_kept(self):
        matrix = ConfusionMatrix(classes=[NONE, GROSS])
        assert matrix.classes == [NONE, GROSS]
        assert matrix.accuracy == 0.0

    def test_merge(self):
        left = ConfusionMatrix.from_labels([NET, GROSS], [NET, NET])
        right = ConfusionMatrix.from_labels([GROSS, DATE], [GROSS, DATE])
        merged = left.merge(right)

        assert merged.total == 4
        assert merged.correct == 3
        assert merged.count(GROSS, NET) == 1
        assert left.total == 2

    def test_to_array(self):
        matrix = ConfusionMatrix.from_labels([NET, NET, GROSS], [GROSS, NET, GROSS])
        np.testing.assert_array_equal(matrix.to_array(), [[1, 1], [0, 1]])

    def test_to_dict_and_report(self):
        matrix = ConfusionMatrix.from_labels([NET], [GROSS])
        data = matrix.to_dict()

        assert data['matrix']['NetTotal']['GrossTotal'] == 1
        assert data['incorrect'] == 1
        assert "CONFUSION MATRIX" in matrix.print_report()


# =============================================================================
# METRICS
# =============================================================================

class TestMetricsCalculator:
    def test_perfect_predictions(self, calculator):
        labels = [NONE, NUMBER, DATE, GROSS]
        metrics = calculator.compute(labels, labels, model_version="v1")

        assert metrics.accuracy == 1.0
        assert metrics.macro_f1 == 1.0
        assert metrics.micro_f1 == 1.0
        assert metrics.log_loss is None
        assert metrics.model_version == "v1"

    @pytest.mark.parametrize("seed", [3, 4])
    def test_micro_f1_equals_accuracy(self, calculator, seed):
        metrics = calculator.compute(*_random_labels(seed))
        assert metrics.micro_f1 == pytest.approx(metrics.accuracy)

    def test_symmetric_errors_give_equal_micro_and_macro(self, calculator):
        classes = [NONE, NUMBER, DATE]
        actual, predicted = [], []
        for i, label in enumerate(classes):
            actual.extend([label] * 4)
            predicted.extend([label] * 3 + [classes[(i + 1) % 3]])

        metrics = calculator.compute(actual, predicted)

        assert metrics.macro_f1 == pytest.approx(0.75)
        assert metrics.micro_f1 == pytest.approx(metrics.macro_f1)
        for label in classes:
            assert metrics.per_class[label].precision == pytest.approx(0.75)
            assert metrics.per_class[label].recall == pytest.approx(0.75)

    def test_macro_f1_only_over_present_classes(self, calculator):
        metrics = calculator.compute([NET, NET], [NET, GROSS])

        assert set(metrics.per_class) == {NET, GROSS}
        assert metrics.per_class[NET].f1 == pytest.approx(2 / 3)
        assert metrics.per_class[GROSS].f1 == 0.0
        assert metrics.macro_f1 == pytest.approx(1 / 3)

    def test_weighted_f1(self, calculator):
        metrics = calculator.compute([NET, NET, NET, GROSS], [NET, NET, NET, NET])
        net_f1 = metrics.per_class[NET].f1

        assert metrics.weighted_f1 == pytest.approx(net_f1 * 3 / 4)

    def test_log_loss_is_clamped(self, calculator):
        probabilities = np.zeros((1, len(ALL_FIELD_TYPES)))
        probabilities[0, GROSS.class_index] = 1.0
        metrics = calculator.compute([NONE], [GROSS], probabilities)

        assert metrics.log_loss == pytest.approx(-math.log(1e-15))
        assert math.isfinite(metrics.log_loss)

    def test_log_loss_of_confident_correct_prediction(self, calculator):
        probabilities = np.full((2, len(ALL_FIELD_TYPES)), 0.05)
        probabilities[0, NET.class_index] = 0.7
        probabilities[1, NET.class_index] = 0.7

        assert calculator.log_loss([NET, NET], probabilities) == pytest.approx(-math.log(0.7))
        assert calculator.log_loss([], np.zeros((0, 7))) == 0.0

    def test_per_class_log_loss(self, calculator):
        probabilities = np.full((2, len(ALL_FIELD_TYPES)), 0.05)
        probabilities[0, NET.class_index] = 0.7
        probabilities[1, :] = 0.1
        probabilities[1, GROSS.class_index] = 0.4

        metrics = calculator.compute([NET, GROSS], [NET, GROSS], probabilities)

        assert metrics.per_class[NET].log_loss == pytest.approx(-math.log(0.7))
        assert metrics.per_class[GROSS].log_loss == pytest.approx(-math.log(0.4))
        assert metrics.log_loss == pytest.approx((-math.log(0.7) - math.log(0.4)) / 2)

    def test_predicted_only_class_scores_zero(self, calculator):
        metrics = calculator.compute([NET, NET, DATE], [NET, GROSS, DATE])

        assert metrics.per_class[GROSS].support == 0
        assert metrics.per_class[GROSS].predicted_count == 1
        assert metrics.per_class[GROSS].precision == 0.0
        assert metrics.per_class[GROSS].recall == 0.0
        assert metrics.per_class[NET].recall == pytest.approx(0.5)
        assert metrics.macro_f1 == pytest.approx((2 / 3 + 0.0 + 1.0) / 3)

    def test_length_mismatch(self, calculator):
        with pytest.raises(ValueError):
            calculator.compute([NET, GROSS], [NET])

    def test_empty_input(self, calculator):
        metrics = calculator.compute([], [])

        assert metrics.total_samples == 0
        assert metrics.accuracy == 0.0
        assert metrics.macro_f1 == 0.0
        assert metrics.per_class == {}

    def test_meets_targets(self):
        assert TrainingMetrics(accuracy=0.9, macro_f1=0.85).meets_targets()
        assert not TrainingMetrics(accuracy=0.9, macro_f1=0.7).meets_targets()
        assert TrainingMetrics(accuracy=0.6, macro_f1=0.6).meets_targets(0.5, 0.5)

    def test_report(self, calculator):
        report = calculator.compute([NET, GROSS], [NET, GROSS], model_version="v9").print_report()
        assert "Model Version: v9" in report
        assert "Net Total" in report


class TestScoring:
    def test_ties_go_to_lowest_class_index(self, calculator):
        metrics, predicted, probabilities = score_model(
            _TiedModel(), np.zeros((2, 3)), [NUMBER, NONE], calculator)

        assert predicted == [NONE, NONE]
        assert metrics.accuracy == 0.5
        assert probabilities.shape == (2, len(ALL_FIELD_TYPES))

    def test_empty_labels(self, calculator):
        metrics, predicted, _ = score_model(_TiedModel(), np.zeros((0, 3)), [], calculator)
        assert predicted == []
        assert metrics.total_samples == 0
        assert metrics.model_version == "tied"

    def test_average_metrics(self, calculator):
        first = calculator.compute([NET, GROSS], [NET, GROSS])
        second = calculator.compute([NET, GROSS], [NET, NET])
        averaged = average_metrics([first, second], model_version="cv")

        assert averaged.accuracy == pytest.approx(0.75)
        assert averaged.macro_f1 == pytest.approx((first.macro_f1 + second.macro_f1) / 2)
        assert averaged.confusion_matrix.total == 4
        assert averaged.total_samples == 4
        assert averaged.per_class[NET].support == 2
        assert averaged.model_version == "cv"

    def test_average_of_no_folds(self):
        assert average_metrics([]).total_samples == 0
