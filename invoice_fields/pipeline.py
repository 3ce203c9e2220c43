"""
Document Pipeline Module.

Runs one document's text blocks through the whole decision path:

    TextBlocks -> Feature Extraction -> Classification -> Aggregation
               -> Validation -> Decision

All sibling lists are materialized before extraction starts; extraction and
classification then run concurrently up to ``max_workers``. Results are
merged in (page, line_index) order. A block that fails is reported in the
diagnostics and left out; the rest of the document continues.

Author: ML Engineering Team
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from config import get_config
from invoice_fields.domain.invoice import CandidateInvoice
from invoice_fields.domain.labeled_block import LabeledBlock
from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.extractor import FeatureExtractor
from invoice_fields.model_inference.engine import PredictionEngine
from invoice_fields.model_inference.prediction import Prediction
from invoice_fields.policy.decision import DecisionPolicy, PolicyDecision
from invoice_fields.postprocessor.aggregator import InvoiceAssembler
from invoice_fields.postprocessor.validators import InvoiceValidator, ValidationResult
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class BlockDiagnostic:
    """Problem recorded for one block."""
    ordinal: int
    line_index: int
    page_number: int
    stage: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ordinal': self.ordinal,
            'page_number': self.page_number,
            'line_index': self.line_index,
            'stage': self.stage,
            'message': self.message,
        }


@dataclass
class DocumentResult:
    """
    Everything produced for one document.

    Attributes:
        document_id: Source document identifier
        labeled_blocks: Classified blocks in (page, line) order, for storage
        predictions: Prediction per labeled block, same order
        invoice: Assembled candidate invoice
        validation: Field validation of the invoice
        decision: Accept / Review / Reject with reasons
        diagnostics: Per-block problems
        model_version: Version of the model used
        processing_time: Wall time in seconds
    """
    document_id: Optional[str] = None
    labeled_blocks: List[LabeledBlock] = field(default_factory=list)
    predictions: List[Prediction] = field(default_factory=list)
    invoice: Optional[CandidateInvoice] = None
    validation: Optional[ValidationResult] = None
    decision: Optional[PolicyDecision] = None
    diagnostics: List[BlockDiagnostic] = field(default_factory=list)
    model_version: Optional[str] = None
    processing_time: float = 0.0

    @property
    def skipped_blocks(self) -> int:
        return len({d.ordinal for d in self.diagnostics if d.stage == 'classification'})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'model_version': self.model_version,
            'processing_time': round(self.processing_time, 3),
            'blocks': [b.to_dict() for b in self.labeled_blocks],
            'invoice': self.invoice.to_dict() if self.invoice else None,
            'validation': self.validation.to_dict() if self.validation else None,
            'decision': self.decision.to_dict() if self.decision else None,
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


class DocumentPipeline:
    """
    Classifies a document's blocks and decides on the resulting invoice.

    Example:
        >>> engine = PredictionEngine("models/field_classifier.pkl")
        >>> engine.load()
        >>> pipeline = DocumentPipeline(engine)
        >>> result = pipeline.process(blocks, existing_invoices)
        >>> print(result.decision.outcome, result.decision.reason_codes)
    """

    def __init__(
        self,
        engine: PredictionEngine,
        extractor: Optional[FeatureExtractor] = None,
        assembler: Optional[InvoiceAssembler] = None,
        validator: Optional[InvoiceValidator] = None,
        policy: Optional[DecisionPolicy] = None,
        max_workers: Optional[int] = None
    ) -> None:
        self.engine = engine
        self.extractor = extractor or FeatureExtractor()
        self.assembler = assembler or InvoiceAssembler()
        self.validator = validator or InvoiceValidator()
        self.policy = policy or DecisionPolicy()
        self.max_workers = int(max_workers or get_config("model.max_workers", 4))

    def process(
        self,
        blocks: Iterable[TextBlock],
        existing_invoices: Iterable[CandidateInvoice] = (),
        wait_timeout: Optional[float] = None
    ) -> DocumentResult:
        """
        Run the full pipeline for one document.

        Args:
            blocks: All text blocks of the document.
            existing_invoices: Stored invoices for the duplicate check; only read.
            wait_timeout: Seconds to wait for a loading model.

        Returns:
            DocumentResult.

        Raises:
            ModelNotReadyError: If the engine has no ready model (retryable).
            ModelSchemaError: If the model expects another feature schema.
        """
        started = time.monotonic()
        blocks = list(blocks)
        result = DocumentResult(document_id=next((b.document_id for b in blocks if b.document_id), None))

        if not blocks:
            logger.warning("Document has no text blocks")

        features = self.extractor.extract_document(blocks, max_workers=self.max_workers)
        for feature in features:
            for message in feature.diagnostics:
                result.diagnostics.append(_diagnostic(feature.block, 'features', message))

        batch = self.engine.predict_features(features, self.max_workers, wait_timeout)
        result.model_version = batch.model_version

        pairs = []
        for index, (feature, prediction) in enumerate(zip(features, batch.predictions)):
            block = feature.block
            if prediction is None:
                result.diagnostics.append(
                    _diagnostic(block, 'classification', batch.errors.get(index, "prediction failed")))
                continue
            labeled = LabeledBlock(block)
            labeled.set_prediction(prediction.label, prediction.confidence, prediction.model_version)
            result.labeled_blocks.append(labeled)
            result.predictions.append(prediction)
            pairs.append((block, prediction))

        result.invoice = self.assembler.assemble(pairs)
        if result.invoice.document_id is None:
            result.invoice.document_id = result.document_id
        result.validation = self.validator.validate(result.invoice)
        result.decision = self.policy.decide(
            result.invoice, result.invoice.extraction_confidence, existing_invoices)

        result.processing_time = time.monotonic() - started
        logger.info(
            f"Document {result.document_id or '?'}: {len(result.labeled_blocks)}/{len(blocks)} blocks "
            f"classified, confidence {result.invoice.extraction_confidence:.2f}, "
            f"decision {result.decision.outcome.value}"
        )
        return result


def _diagnostic(block: TextBlock, stage: str, message: str) -> BlockDiagnostic:
    return BlockDiagnostic(
        ordinal=block.ordinal,
        line_index=block.line_index,
        page_number=block.page_number,
        stage=stage,
        message=message,
    )
