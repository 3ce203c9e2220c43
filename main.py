#!/usr/bin/env python3
"""
Invoice Field Classifier - Main Entry Point.

Command-line access to training, evaluation and classification.

Usage:
    Command Line:
        python main.py train --data data/samples.tsv --output models/field_classifier.pkl
        python main.py evaluate --model models/field_classifier.pkl --data data/new.tsv --report outputs/eval.xlsx
        python main.py classify --model models/field_classifier.pkl --blocks doc.jsonl --existing invoices.jsonl
        python main.py models list
        python main.py models activate v1.1

    Python:
        from main import run_classification
        result = run_classification("models/field_classifier.pkl", "doc.jsonl")

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager
from invoice_fields.utils.exceptions import InvoiceFieldsError
from invoice_fields.utils.helpers import ensure_directory, safe_filename
from invoice_fields.utils.logger import APP_LOGGER_NAME, get_logger, log_banner, setup_logger_from_config


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Invoice Field Classifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Train a model:
        python main.py train --data data/samples.tsv --output models/field_classifier.pkl

    Regression-test a model on new labeled data:
        python main.py evaluate --model models/field_classifier.pkl --data data/new.tsv

    Classify a document:
        python main.py classify --model models/field_classifier.pkl --blocks doc.jsonl

    Manage saved versions:
        python main.py models list
        python main.py models activate v1.1
        python main.py models delete v1.0
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    train = subparsers.add_parser("train", help="Train a field classifier")
    train.add_argument("--data", "-d", required=True, help="Labeled samples (.tsv, .csv, .jsonl, .xlsx)")
    train.add_argument("--output", "-o", default=None, help="Model output path")
    train.add_argument("--version", default=None, help="Model version string")
    train.add_argument("--no-cv", action="store_true", help="Skip cross-validation")
    train.add_argument("--folds", type=int, default=None, help="Cross-validation folds")
    train.add_argument("--min-samples", type=int, default=None, help="Minimum sample count")

    evaluate = subparsers.add_parser("evaluate", help="Evaluate a trained model on labeled samples")
    evaluate.add_argument("--model", "-m", required=True, help="Model artifact path")
    evaluate.add_argument("--data", "-d", required=True, help="Labeled samples")
    evaluate.add_argument("--report", "-r", default=None, help="Excel report path (.xlsx)")
    evaluate.add_argument("--baseline", default=None, help="Baseline model to compare against")

    classify = subparsers.add_parser("classify", help="Classify a document's text blocks")
    classify.add_argument("--model", "-m", default=None, help="Model artifact path (default: active version)")
    classify.add_argument("--blocks", "-b", required=True, help="Text blocks, one JSON object per line")
    classify.add_argument("--existing", "-e", default=None, help="Stored invoices for the duplicate check (JSON Lines)")
    classify.add_argument("--output", "-o", default=None, help="Write the result as JSON to this file")

    models = subparsers.add_parser("models", help="List, activate or delete saved model versions")
    models.add_argument("--model-dir", default=None, help="Model directory (default: paths.model_dir)")
    models_commands = models.add_subparsers(dest="models_command", required=True)
    models_commands.add_parser("list", help="List saved versions")
    activate = models_commands.add_parser("activate", help="Set the active version")
    activate.add_argument("version", help="Model version or artifact name")
    delete = models_commands.add_parser("delete", help="Delete a saved version")
    delete.add_argument("version", help="Model version or artifact name")

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize configuration and logging.

    Returns:
        Initialized configuration manager.
    """
    config = ConfigurationManager(args.config)
    logger = setup_logger_from_config()

    if args.debug:
        logging.getLogger(APP_LOGGER_NAME).setLevel(logging.DEBUG)

    log_banner(logger, "INVOICE FIELD CLASSIFIER")
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Command: {args.command}")
    logger.debug(f"Configuration sections: {', '.join(sorted(config.get_all()))}")
    return config


def _read_jsonl(path: str) -> List[Dict[str, Any]]:
    records = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_number}: invalid JSON ({e.msg})") from e
    return records


def run_training(
    data_path: str,
    output_path: Optional[str] = None,
    model_version: Optional[str] = None,
    use_cross_validation: Optional[bool] = None,
    folds: Optional[int] = None,
    min_samples: Optional[int] = None
) -> Dict[str, Any]:
    """
    Train and save a model.

    Returns:
        TrainingResult.to_dict() plus the saved ``model_path``.

    Raises:
        TrainingError: If training fails or is cancelled.
    """
    logger = get_logger(__name__)

    from invoice_fields.training import ModelTrainer, TrainingOptions, TrainingSet

    samples = TrainingSet.load(data_path)
    options = TrainingOptions.from_config(
        model_version=model_version,
        use_cross_validation=use_cross_validation,
        folds=folds,
        min_samples=min_samples,
    )

    result = ModelTrainer().train(samples, options)
    print(result.print_report())
    result.raise_for_status()

    if output_path is None:
        model_dir = Path(ConfigurationManager().get("paths.model_dir", "models"))
        output_path = str(model_dir / f"field_classifier_{safe_filename(options.model_version)}.pkl")

    saved = result.model.save(output_path)
    logger.info(f"Model saved: {saved}")

    summary = result.to_dict()
    summary['model_path'] = saved
    return summary


def run_evaluation(
    model_path: str,
    data_path: str,
    report_path: Optional[str] = None,
    baseline_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Evaluate a model on labeled samples without retraining.

    Returns:
        ModelEvaluation.to_dict(), with ``comparison`` when a baseline is given.
    """
    logger = get_logger(__name__)

    from invoice_fields.evaluation import EvaluationReportExporter, ModelEvaluator
    from invoice_fields.model_inference import FieldClassifier
    from invoice_fields.training import TrainingSet

    samples = TrainingSet.load(data_path)
    evaluator = ModelEvaluator()

    evaluation = evaluator.evaluate(FieldClassifier.load(model_path), samples)
    print(evaluation.print_report())
    evaluations = [evaluation]
    summary = evaluation.to_dict()

    if baseline_path:
        baseline = evaluator.evaluate(FieldClassifier.load(baseline_path), samples)
        summary['comparison'] = evaluator.compare(baseline, evaluation)
        evaluations.insert(0, baseline)
        if summary['comparison']['regressions']:
            logger.warning(f"Regressions against baseline: {summary['comparison']['regressions']}")

    if report_path:
        summary['report_path'] = EvaluationReportExporter().export(evaluations, report_path)

    return summary


def run_models(
    command: str,
    version: Optional[str] = None,
    model_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    List, activate or delete saved model versions.

    Activation loads the artifact into a PredictionEngine first, so an
    unreadable or incompatible model never becomes active.

    Returns:
        ``models`` for list, otherwise the affected ``model``.

    Raises:
        ModelRegistryError: If the version is unknown, or active on delete.
    """
    from invoice_fields.model_inference import ModelRegistry, PredictionEngine

    if command == "list":
        entries = ModelRegistry(model_dir).list_models()
        if not entries:
            print("No saved models")
        for entry in entries:
            marker = "*" if entry.is_active else " "
            note = "" if entry.is_compatible else "  (incompatible schema)"
            print(f"{marker} {entry.model_version:<16} {entry.name:<36} {entry.trained_at or 'n/a'}{note}")
        return {'models': [entry.to_dict() for entry in entries]}

    if command == "activate":
        registry = ModelRegistry(model_dir, engine=PredictionEngine())
        entry = registry.activate(version)
        print(f"Active model: {entry.model_version} ({entry.path})")
        return {'model': entry.to_dict()}

    if command == "delete":
        entry = ModelRegistry(model_dir).delete(version)
        print(f"Deleted model: {entry.model_version} ({entry.path})")
        return {'model': entry.to_dict()}

    raise ValueError(f"Unknown models command: {command}")


def run_classification(
    model_path: Optional[str],
    blocks_path: str,
    existing_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Classify one document's blocks and decide on the resulting invoice.

    Without ``model_path`` the registry's active version is used.

    Returns:
        DocumentResult.to_dict().

    Raises:
        ModelRegistryError: If no model path is given and none is active.
    """
    from invoice_fields.domain import CandidateInvoice, TextBlock
    from invoice_fields.model_inference import ModelRegistry, PredictionEngine
    from invoice_fields.pipeline import DocumentPipeline
    from invoice_fields.utils.exceptions import ModelRegistryError

    if model_path is None:
        active = ModelRegistry().active()
        if active is None:
            raise ModelRegistryError("No model given and no active model; run 'models activate' first")
        model_path = str(active.path)

    blocks = [TextBlock.from_dict(record) for record in _read_jsonl(blocks_path)]
    existing = []
    if existing_path:
        existing = [CandidateInvoice.from_dict(record) for record in _read_jsonl(existing_path)]

    engine = PredictionEngine(model_path)
    engine.load()

    result = DocumentPipeline(engine).process(blocks, existing)
    return result.to_dict()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = None
    try:
        args = parse_arguments(argv)
        initialize_system(args)
        logger = get_logger(__name__)

        if args.command == "train":
            run_training(
                data_path=args.data,
                output_path=args.output,
                model_version=args.version,
                use_cross_validation=False if args.no_cv else None,
                folds=args.folds,
                min_samples=args.min_samples,
            )
        elif args.command == "evaluate":
            run_evaluation(args.model, args.data, args.report, args.baseline)
        elif args.command == "models":
            run_models(args.models_command, getattr(args, "version", None), args.model_dir)
        elif args.command == "classify":
            summary = run_classification(args.model, args.blocks, args.existing)
            payload = json.dumps(summary, indent=2, ensure_ascii=False)
            if args.output:
                ensure_directory(Path(args.output).parent)
                with open(args.output, 'w', encoding='utf-8') as f:
                    f.write(payload)
                logger.info(f"Result saved to: {args.output}")
            else:
                print(payload)

        log_banner(logger, f"{args.command.capitalize()} complete.")
        return 0

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except (InvoiceFieldsError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130

    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args is not None and args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
