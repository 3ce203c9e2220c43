"""
Tests for model evaluation, comparison and report export.
"""

import json
from dataclasses import replace
from pathlib import Path

import numpy as np
import openpyxl
import pytest

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.evaluation import (
    EvaluationReportExporter,
    Misclassification,
    ModelEvaluation,
    ModelEvaluator,
)
from invoice_fields.evaluation.metrics import MetricsCalculator
from invoice_fields.training.samples import TrainingSet
from invoice_fields.utils.exceptions import ReportExportError


NET = FieldType.NET_TOTAL
GROSS = FieldType.GROSS_TOTAL


@pytest.fixture
def evaluator(extractor):
    return ModelEvaluator(extractor=extractor, calculator=MetricsCalculator(epsilon=1e-15))


@pytest.fixture
def holdout_evaluation(evaluator, trained_model, holdout_set):
    return evaluator.evaluate(trained_model, holdout_set)


def _evaluation(actual, predicted, version, probabilities=None, errors=None):
    metrics = MetricsCalculator(epsilon=1e-15).compute(actual, predicted, probabilities, version)
    return ModelEvaluation(metrics, errors or [], dataset="fixed")


def _probabilities(labels, p_true):
    matrix = np.full((len(labels), len(ALL_FIELD_TYPES)), (1 - p_true) / (len(ALL_FIELD_TYPES) - 1))
    for row, label in enumerate(labels):
        matrix[row, label.class_index] = p_true
    return matrix


# =============================================================================
# EVALUATION
# =============================================================================

class TestModelEvaluator:
    def test_holdout_accuracy(self, holdout_evaluation):
        assert holdout_evaluation.dataset == "holdout"
        assert holdout_evaluation.model_version == "test-1.0"
        assert holdout_evaluation.metrics.total_samples == 100
        assert holdout_evaluation.accuracy >= 0.9
        assert len(holdout_evaluation.misclassifications) == holdout_evaluation.metrics.confusion_matrix.incorrect

    def test_training_data_scores_at_least_holdout(self, evaluator, trained_model, training_set,
                                                    holdout_evaluation):
        training_evaluation = evaluator.evaluate(trained_model, training_set)

        assert training_evaluation.metrics.total_samples == 300
        assert training_evaluation.accuracy >= holdout_evaluation.accuracy

    def test_wrong_label_is_reported(self, evaluator, trained_model, holdout_set):
        samples = list(holdout_set)
        index = next(i for i, s in enumerate(samples) if s.label == GROSS)
        samples[index] = replace(samples[index], label=NET)

        evaluation = evaluator.evaluate(trained_model, TrainingSet(samples, name="relabeled"))
        errors = [m for m in evaluation.misclassifications if m.text == samples[index].text]

        assert len(errors) == 1
        assert errors[0].actual == NET
        assert errors[0].predicted == GROSS
        assert errors[0].document_id == samples[index].document_id
        assert errors[0] in evaluation.misclassified_as(GROSS)

    def test_no_samples(self, evaluator, trained_model):
        evaluation = evaluator.evaluate(trained_model, [], dataset="empty")

        assert evaluation.metrics.total_samples == 0
        assert evaluation.misclassifications == []
        assert evaluation.model_version == "test-1.0"

    def test_dataset_name_override(self, evaluator, trained_model, make_document):
        evaluation = evaluator.evaluate(trained_model, make_document(), dataset="single")
        assert evaluation.dataset == "single"


class TestCompare:
    def test_regressions(self):
        labels = [NET, NET, GROSS, GROSS]
        baseline = _evaluation(labels, labels, "v1", _probabilities(labels, 0.9))
        candidate = _evaluation(labels, [NET, GROSS, GROSS, GROSS], "v2", _probabilities(labels, 0.6))

        deltas = ModelEvaluator.compare(baseline, candidate)

        assert deltas['baseline_version'] == "v1"
        assert deltas['candidate_version'] == "v2"
        assert deltas['accuracy'] == pytest.approx(-0.25)
        assert deltas['log_loss'] > 0
        assert {'accuracy', 'macro_f1', 'log_loss', 'f1[NetTotal]'} <= set(deltas['regressions'])
        assert set(deltas['per_class_f1']) == {"NetTotal", "GrossTotal"}

    def test_improvement_has_no_regressions(self):
        labels = [NET, GROSS]
        baseline = _evaluation(labels, [NET, NET], "v1")
        candidate = _evaluation(labels, labels, "v2")

        deltas = ModelEvaluator.compare(baseline, candidate)

        assert deltas['regressions'] == []
        assert 'log_loss' not in deltas


# =============================================================================
# REPORTS
# =============================================================================

class TestReports:
    def test_text_report(self, evaluator):
        errors = [Misclassification(NET, GROSS, 0.61, "Nettobetrag: 1.000,00 EUR", 6, "doc-9")]
        evaluation = _evaluation([NET, GROSS], [GROSS, GROSS], "v1", errors=errors)
        report = evaluator.generate_report(evaluation)

        assert "MODEL EVALUATION: fixed" in report
        assert "[doc-9:6] NetTotal -> GrossTotal" in report
        assert "WRONG PREDICTIONS BY PREDICTED CLASS:\n  GrossTotal: 1" in report

    def test_json_report(self, evaluator, holdout_evaluation):
        data = json.loads(evaluator.generate_report(holdout_evaluation, format='json'))
        assert data['dataset'] == "holdout"
        assert data['metrics']['model_version'] == "test-1.0"

    def test_html_report(self, evaluator, holdout_evaluation):
        report = evaluator.generate_report(holdout_evaluation, format='html')
        assert report.startswith("<!DOCTYPE html>")
        assert "Gross Total" in report

    def test_unsupported_format(self, evaluator, holdout_evaluation):
        with pytest.raises(ValueError):
            evaluator.generate_report(holdout_evaluation, format='pdf')

    def test_report_file(self, evaluator, holdout_evaluation, tmp_path):
        output = str(tmp_path / "reports" / "evaluation.txt")
        assert evaluator.generate_report(holdout_evaluation, output) == output
        assert "MODEL EVALUATION: holdout" in Path(output).read_text(encoding='utf-8')


class TestEvaluationReportExporter:
    def _exporter(self, tmp_path, **overrides):
        defaults = {
            'output_dir': str(tmp_path),
            'include_misclassifications': True,
            'max_misclassifications': 10,
        }
        defaults.update(overrides)
        return EvaluationReportExporter(**defaults)

    def test_export_versions(self, tmp_path):
        errors = [Misclassification(NET, GROSS, 0.55, "Nettobetrag: 10,00 EUR", 6, "doc-1")]
        first = _evaluation([NET, GROSS], [GROSS, GROSS], "v1", errors=errors)
        second = _evaluation([NET, GROSS], [NET, GROSS], "v2")

        path = self._exporter(tmp_path).export([first, second], "report.xlsx")

        assert Path(path) == tmp_path / "report.xlsx"
        workbook = openpyxl.load_workbook(path)
        assert workbook.sheetnames == ["Summary", "Per-Class", "Confusion", "Misclassifications"]
        summary = workbook["Summary"]
        assert summary["A2"].value == "v1"
        assert summary["A3"].value == "v2"
        assert summary["E3"].value == 1.0
        assert workbook["Misclassifications"]["G2"].value == "Nettobetrag: 10,00 EUR"

    def test_export_without_errors_sheet(self, tmp_path):
        evaluation = _evaluation([NET], [NET], "v1")
        path = self._exporter(tmp_path, include_misclassifications=False).export(
            {"baseline": evaluation}, str(tmp_path / "nested" / "only.xlsx"))

        workbook = openpyxl.load_workbook(path)
        assert "Misclassifications" not in workbook.sheetnames
        assert workbook["Summary"]["A2"].value == "baseline"

    def test_generated_filename(self, tmp_path):
        path = self._exporter(tmp_path).export(_evaluation([NET], [NET], "v1"))
        assert Path(path).parent == tmp_path
        assert Path(path).name.startswith("evaluation_report_")

    def test_nothing_to_export(self, tmp_path):
        with pytest.raises(ReportExportError):
            self._exporter(tmp_path).export([], "empty.xlsx")
