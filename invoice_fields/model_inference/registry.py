"""
Model Registry Module.

Versioned model artifacts in the model directory.

Features:
    - List saved versions with their metadata
    - Activate a version (reloads an attached PredictionEngine)
    - Delete a version, refusing the active one

The active version is recorded in ``active.json`` beside the artifacts so
that it survives between command-line runs.

Author: ML Engineering Team
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config import get_config
from invoice_fields.features.schema import FEATURE_COUNT, SCHEMA_VERSION
from invoice_fields.model_inference.classifier import FieldClassifier
from invoice_fields.model_inference.engine import PredictionEngine
from invoice_fields.utils.exceptions import ModelLoadError, ModelRegistryError
from invoice_fields.utils.helpers import ensure_directory, generate_timestamp
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


ACTIVE_MARKER = "active.json"
ARTIFACT_PATTERN = "*.pkl"


@dataclass(frozen=True)
class ModelEntry:
    """
    One saved artifact.

    Attributes:
        path: Artifact file
        model_version: Version recorded at training time
        schema_version: Feature schema of the artifact
        feature_count: Number of features the artifact was trained on
        trained_at: ISO timestamp of training
        size_bytes: File size
        is_active: True for the version recorded as active
    """
    path: Path
    model_version: str
    schema_version: Optional[str] = None
    feature_count: int = 0
    trained_at: Optional[str] = None
    size_bytes: int = 0
    is_active: bool = False

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def is_compatible(self) -> bool:
        """Trained on the feature schema this build extracts."""
        return self.schema_version == SCHEMA_VERSION and self.feature_count == FEATURE_COUNT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path': str(self.path),
            'model_version': self.model_version,
            'schema_version': self.schema_version,
            'feature_count': self.feature_count,
            'trained_at': self.trained_at,
            'size_bytes': self.size_bytes,
            'is_active': self.is_active,
            'is_compatible': self.is_compatible,
        }


class ModelRegistry:
    """
    Saved model versions under one directory.

    Versions are addressed by model version or by artifact file name
    (without ``.pkl``).

    Attributes:
        model_dir: Directory holding the artifacts
        engine: Optional engine reloaded on activation

    Example:
        >>> registry = ModelRegistry("models", engine=engine)
        >>> [entry.model_version for entry in registry.list_models()]
        ['v1.0', 'v1.1']
        >>> registry.activate("v1.1")
        >>> registry.delete("v1.0")
    """

    def __init__(
        self,
        model_dir: Optional[Union[str, Path]] = None,
        engine: Optional[PredictionEngine] = None
    ) -> None:
        self.model_dir = Path(model_dir or get_config("paths.model_dir", "models"))
        self.engine = engine

    @property
    def marker_path(self) -> Path:
        return self.model_dir / ACTIVE_MARKER

    def list_models(self) -> List[ModelEntry]:
        """Readable artifacts, newest training first. Unreadable files are skipped."""
        if not self.model_dir.is_dir():
            return []

        active = self._active_file()
        entries = []
        for path in sorted(self.model_dir.glob(ARTIFACT_PATTERN)):
            try:
                metadata = FieldClassifier.read_metadata(path)
            except ModelLoadError as e:
                logger.warning(f"Skipping {path.name}: {e}")
                continue
            entries.append(ModelEntry(
                path=path,
                model_version=metadata['model_version'],
                schema_version=metadata['schema_version'],
                feature_count=metadata['feature_count'],
                trained_at=metadata['trained_at'],
                size_bytes=path.stat().st_size,
                is_active=path.name == active,
            ))

        entries.sort(key=lambda e: e.trained_at or "", reverse=True)
        return entries

    def get(self, version: str) -> ModelEntry:
        """
        Find one saved version.

        Raises:
            ModelRegistryError: If no artifact matches, or the version
                matches several artifacts and no file name does.
        """
        entries = self.list_models()
        for entry in entries:
            if entry.name == version:
                return entry

        matches = [e for e in entries if e.model_version == version]
        if not matches:
            raise ModelRegistryError(f"No saved model with version {version}", version)
        if len(matches) > 1:
            names = ", ".join(e.name for e in matches)
            raise ModelRegistryError(f"Version {version} is ambiguous, use one of: {names}", version)
        return matches[0]

    def active(self) -> Optional[ModelEntry]:
        """The active version, or None when none is recorded or its file is gone."""
        return next((e for e in self.list_models() if e.is_active), None)

    def activate(self, version: str) -> ModelEntry:
        """
        Make ``version`` the active model.

        An attached engine loads the artifact first; the marker is only
        written once the engine is READY on it.

        Raises:
            ModelRegistryError: If the version is unknown.
            ModelLoadError, ModelSchemaError: If the engine cannot load it.
        """
        entry = self.get(version)
        if self.engine is not None:
            self.engine.load(entry.path)
            self.engine.model_path = str(entry.path)

        ensure_directory(self.model_dir)
        with open(self.marker_path, 'w', encoding='utf-8') as f:
            json.dump({
                'file': entry.path.name,
                'model_version': entry.model_version,
                'activated_at': generate_timestamp("%Y-%m-%dT%H:%M:%S"),
            }, f, indent=2)

        logger.info(f"Activated model {entry.model_version} ({entry.path.name})")
        return replace(entry, is_active=True)

    def delete(self, version: str) -> ModelEntry:
        """
        Remove a saved version from disk.

        Raises:
            ModelRegistryError: If the version is unknown or active.
        """
        entry = self.get(version)
        if entry.is_active or self._engine_uses(entry):
            raise ModelRegistryError(
                f"Model {entry.model_version} ({entry.name}) is active and cannot be deleted",
                version,
            )

        entry.path.unlink()
        logger.info(f"Deleted model {entry.model_version} ({entry.path.name})")
        return entry

    def _active_file(self) -> Optional[str]:
        if not self.marker_path.exists():
            return None
        try:
            with open(self.marker_path, 'r', encoding='utf-8') as f:
                return json.load(f).get('file')
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable {ACTIVE_MARKER}: {e}")
            return None

    def _engine_uses(self, entry: ModelEntry) -> bool:
        if self.engine is None or not self.engine.is_ready:
            return False
        return Path(self.engine.model_path).resolve() == entry.path.resolve()
