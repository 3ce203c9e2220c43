"""
Training Samples Module.

Labeled samples for training and evaluation, their file formats, and
conversion into feature matrices.

Supported Formats:
    - TSV / CSV files (header row, one sample per line)
    - JSON Lines files (one JSON object per line)
    - Excel files (first sheet, header row)

No duplicate elimination is done; the caller controls sampling.

Author: ML Engineering Team
"""

import csv
import json
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from invoice_fields.domain.field_type import FieldType
from invoice_fields.domain.labeled_block import LabeledBlock
from invoice_fields.domain.text_block import TextBlock
from invoice_fields.features.extractor import FeatureExtractor
from invoice_fields.features.feature_models import ExtractedFeature
from invoice_fields.features.schema import FEATURE_COUNT, apply_overrides
from invoice_fields.utils.exceptions import TrainingDataFormatError
from invoice_fields.utils.helpers import ensure_directory
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


COLUMNS = [
    'text', 'label', 'line_index', 'page_number', 'x', 'y', 'width', 'height',
    'page_width', 'page_height', 'document_id', 'features',
]


@dataclass
class TrainingSample:
    """
    One labeled block.

    Attributes:
        text: Block text
        label: Ground-truth field type
        line_index: Reading-order index on the page
        page_number: 1-based page
        x, y, width, height: Block box
        page_width, page_height: Page size
        document_id: Source document
        features: Named feature overrides applied after extraction
    """
    text: str
    label: FieldType
    line_index: int = 0
    page_number: int = 1
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    page_width: float = 0.0
    page_height: float = 0.0
    document_id: str = ""
    features: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        self.label = FieldType.parse(self.label)

    def to_block(self, ordinal: int = 0) -> TextBlock:
        return TextBlock(
            text=self.text,
            page_number=self.page_number,
            line_index=self.line_index,
            x=self.x,
            y=self.y,
            width=self.width,
            height=self.height,
            page_width=self.page_width,
            page_height=self.page_height,
            ordinal=ordinal,
            document_id=self.document_id or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'label': self.label.value,
            'line_index': self.line_index,
            'page_number': self.page_number,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'page_width': self.page_width,
            'page_height': self.page_height,
            'document_id': self.document_id,
            'features': dict(self.features),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingSample':
        """
        Build a sample from a record.

        ``features`` may be a mapping or a JSON object string; blank
        numeric cells fall back to defaults.
        """
        overrides = data.get('features') or {}
        if isinstance(overrides, str):
            overrides = json.loads(overrides) if overrides.strip() else {}

        return cls(
            text=str(data.get('text') or ""),
            label=FieldType.parse(data.get('label')),
            line_index=_to_int(data.get('line_index'), 0),
            page_number=_to_int(data.get('page_number'), 1),
            x=_to_float(data.get('x')),
            y=_to_float(data.get('y')),
            width=_to_float(data.get('width')),
            height=_to_float(data.get('height')),
            page_width=_to_float(data.get('page_width')),
            page_height=_to_float(data.get('page_height')),
            document_id=str(data.get('document_id') or ""),
            features={str(k): float(v) for k, v in dict(overrides).items()},
        )

    @classmethod
    def from_labeled_block(cls, labeled: LabeledBlock) -> 'TrainingSample':
        block = labeled.block
        return cls(
            text=block.text,
            label=labeled.actual_label or FieldType.NONE,
            line_index=block.line_index,
            page_number=block.page_number,
            x=block.x,
            y=block.y,
            width=block.width,
            height=block.height,
            page_width=block.page_width,
            page_height=block.page_height,
            document_id=block.document_id or "",
        )


class TrainingSet:
    """
    Named, ordered collection of samples.

    Example:
        >>> training_set = TrainingSet.load("data/labeled_blocks.tsv")
        >>> len(training_set)
        1250
        >>> training_set.label_counts()[FieldType.GROSS_TOTAL]
        118
    """

    def __init__(self, samples: Optional[Iterable[TrainingSample]] = None, name: str = "training") -> None:
        self.name = name
        self.samples: List[TrainingSample] = list(samples or [])

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[TrainingSample]:
        return iter(self.samples)

    def __getitem__(self, index: int) -> TrainingSample:
        return self.samples[index]

    def add(self, sample: TrainingSample) -> None:
        self.samples.append(sample)

    def extend(self, samples: Iterable[TrainingSample]) -> None:
        self.samples.extend(samples)

    @property
    def labels(self) -> List[FieldType]:
        return [s.label for s in self.samples]

    def label_counts(self) -> Dict[FieldType, int]:
        return dict(Counter(self.labels))

    def subset(self, indices: Iterable[int], name: Optional[str] = None) -> 'TrainingSet':
        return TrainingSet([self.samples[i] for i in indices], name=name or self.name)

    # -------------------------------------------------------------------------
    # File I/O
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, file_path: Union[str, Path], name: Optional[str] = None) -> 'TrainingSet':
        """
        Load samples from a .tsv, .csv, .jsonl or .xlsx file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            TrainingDataFormatError: If the format is unsupported or a
                record cannot be parsed.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Training data file not found: {path}")

        extension = path.suffix.lower()
        if extension in ('.tsv', '.csv'):
            records = _load_delimited(path, '\t' if extension == '.tsv' else ',')
        elif extension in ('.jsonl', '.ndjson'):
            records = _load_jsonl(path)
        elif extension == '.xlsx':
            records = _load_excel(path)
        else:
            raise TrainingDataFormatError(str(path), reason=f"Unsupported format: {extension}")

        samples = []
        for line_number, record in records:
            try:
                samples.append(TrainingSample.from_dict(record))
            except (ValueError, TypeError) as e:
                raise TrainingDataFormatError(str(path), line_number, str(e))

        logger.info(f"Loaded {len(samples)} samples from {path.name}")
        return cls(samples, name=name or path.stem)

    def save(self, file_path: Union[str, Path]) -> str:
        """Write samples as .tsv/.csv or .jsonl depending on the extension."""
        path = Path(file_path)
        ensure_directory(path.parent)
        extension = path.suffix.lower()

        if extension in ('.jsonl', '.ndjson'):
            with open(path, 'w', encoding='utf-8') as f:
                for sample in self.samples:
                    f.write(json.dumps(sample.to_dict(), ensure_ascii=False) + "\n")
        elif extension in ('.tsv', '.csv'):
            delimiter = '\t' if extension == '.tsv' else ','
            with open(path, 'w', encoding='utf-8', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=COLUMNS, delimiter=delimiter)
                writer.writeheader()
                for sample in self.samples:
                    row = sample.to_dict()
                    row['features'] = json.dumps(row['features']) if row['features'] else ""
                    writer.writerow(row)
        else:
            raise TrainingDataFormatError(str(path), reason=f"Unsupported format: {extension}")

        logger.info(f"Saved {len(self.samples)} samples to {path}")
        return str(path)


# =============================================================================
# FEATURE MATRIX
# =============================================================================

def featurize(
    samples: Iterable[TrainingSample],
    extractor: Optional[FeatureExtractor] = None,
    max_workers: Optional[int] = None
) -> Tuple[np.ndarray, List[FieldType], List[ExtractedFeature]]:
    """
    Extract feature vectors for samples.

    Samples are grouped by (document_id, page_number) so each sees its
    page siblings as context. Named overrides are applied afterwards.

    Returns:
        (matrix of shape (n, FEATURE_COUNT), labels, features), all in the
        order of ``samples``.
    """
    samples = list(samples)
    extractor = extractor or FeatureExtractor()

    groups: Dict[Tuple[str, int], List[int]] = defaultdict(list)
    for index, sample in enumerate(samples):
        groups[(sample.document_id, sample.page_number)].append(index)

    features: List[Optional[ExtractedFeature]] = [None] * len(samples)
    for indices in groups.values():
        blocks = [samples[i].to_block(ordinal=i) for i in indices]
        extracted = extractor.extract_document(blocks, max_workers=max_workers)
        by_ordinal = {f.block.ordinal: f for f in extracted}
        for i in indices:
            feature = by_ordinal[i]
            if samples[i].features:
                feature = _with_overrides(feature, samples[i].features)
            features[i] = feature

    matrix = np.zeros((len(samples), FEATURE_COUNT), dtype=np.float64)
    for i, feature in enumerate(features):
        matrix[i] = feature.vector.values

    return matrix, [s.label for s in samples], features


def _with_overrides(feature: ExtractedFeature, overrides: Dict[str, float]) -> ExtractedFeature:
    return replace(feature, vector=apply_overrides(feature.vector, overrides))


# =============================================================================
# FILE READERS
# =============================================================================

def _load_delimited(path: Path, delimiter: str) -> List[Tuple[int, Dict[str, Any]]]:
    with open(path, 'r', encoding='utf-8', newline='') as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        return [(i + 2, dict(row)) for i, row in enumerate(reader)]


def _load_jsonl(path: Path) -> List[Tuple[int, Dict[str, Any]]]:
    records = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                records.append((line_number, json.loads(line)))
            except json.JSONDecodeError as e:
                raise TrainingDataFormatError(str(path), line_number, str(e))
    return records


def _load_excel(path: Path) -> List[Tuple[int, Dict[str, Any]]]:
    import openpyxl

    workbook = openpyxl.load_workbook(path, read_only=True)
    sheet = workbook.active

    records = []
    headers = None
    for row_idx, row in enumerate(sheet.iter_rows(values_only=True)):
        if row_idx == 0:
            headers = [str(cell).strip() if cell else f'col_{i}' for i, cell in enumerate(row)]
            continue
        if not any(cell is not None for cell in row):
            continue
        records.append((row_idx + 1, {
            headers[i]: cell for i, cell in enumerate(row) if i < len(headers)
        }))

    workbook.close()
    return records


def _to_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    return int(float(value))


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)
