"""
Field Classifier Module.

The trained model artifact: a scikit-learn pipeline (StandardScaler +
multinomial LogisticRegression) together with the model version and the
feature schema it was trained on.

Features:
    - Probabilities over the full FieldType label space (classes absent
      from training get probability 0)
    - Schema checks on every vector
    - Pickle persistence with metadata

Author: ML Engineering Team
"""

import pickle
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from sklearn.dummy import DummyClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from invoice_fields.domain.field_type import ALL_FIELD_TYPES, FieldType
from invoice_fields.features.feature_models import MLFeatureVector
from invoice_fields.features.schema import FEATURE_COUNT, FEATURE_NAMES, SCHEMA_VERSION
from invoice_fields.utils.exceptions import InferenceError, ModelLoadError, ModelSchemaError
from invoice_fields.utils.helpers import ensure_directory
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


ARTIFACT_FORMAT = "invoice-field-classifier"

VectorLike = Union[MLFeatureVector, Sequence[float], np.ndarray]


class FieldClassifier:
    """
    Trained multiclass model over FieldType.

    Instances are not modified after construction; PredictionEngine shares
    one instance between threads.

    Attributes:
        model_version: Version string recorded at training time
        schema_version: Feature schema the model expects
        feature_names: Feature names the model was trained on
        trained_at: ISO timestamp of training
        training_info: Free-form training metadata

    Example:
        >>> model = FieldClassifier.fit(X, labels, model_version="v1.0")
        >>> model.predict_proba(vector)
        array([0.01, 0.93, 0.01, ...])
        >>> model.save("models/field_classifier.pkl")
    """

    def __init__(
        self,
        pipeline: Pipeline,
        model_version: str = "v1.0",
        schema_version: str = SCHEMA_VERSION,
        feature_names: Sequence[str] = FEATURE_NAMES,
        trained_at: Optional[str] = None,
        training_info: Optional[Dict[str, Any]] = None
    ) -> None:
        self._pipeline = pipeline
        self.model_version = model_version
        self.schema_version = schema_version
        self.feature_names = tuple(feature_names)
        self.trained_at = trained_at or datetime.now().isoformat()
        self.training_info = dict(training_info or {})
        self._class_indices = np.asarray(pipeline.classes_, dtype=int)

    @property
    def feature_count(self) -> int:
        return len(self.feature_names)

    @property
    def classes(self) -> List[FieldType]:
        """Full label space of the probability vectors."""
        return list(ALL_FIELD_TYPES)

    @property
    def trained_classes(self) -> List[FieldType]:
        """Classes that occurred in the training data."""
        return [FieldType.from_index(i) for i in self._class_indices]

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    @classmethod
    def fit(
        cls,
        features: np.ndarray,
        labels: Sequence[FieldType],
        model_version: str = "v1.0",
        normalize: bool = True,
        max_iterations: int = 100,
        l2_regularization: float = 0.01,
        random_seed: int = 42,
        training_info: Optional[Dict[str, Any]] = None
    ) -> 'FieldClassifier':
        """
        Fit a new classifier.

        Args:
            features: Matrix of shape (n_samples, FEATURE_COUNT).
            labels: FieldType per row.
            model_version: Version to record in the artifact.
            normalize: Standardize features before the linear model.
            max_iterations: Solver iteration limit.
            l2_regularization: L2 strength; the solver uses C = 1 / strength.
            random_seed: Seed for the solver.
            training_info: Extra metadata to store.

        Raises:
            ModelSchemaError: If the matrix width differs from the schema.
            ValueError: If there are no rows.
        """
        X = np.asarray(features, dtype=np.float64)
        if X.ndim != 2 or X.shape[0] == 0:
            raise ValueError("Training matrix must be two-dimensional and non-empty")
        if X.shape[1] != FEATURE_COUNT:
            raise ModelSchemaError(FEATURE_COUNT, X.shape[1], "training matrix width")

        y = np.asarray([FieldType.parse(label).class_index for label in labels], dtype=int)

        if len(np.unique(y)) < 2:
            # A linear model needs two classes; fall back to the constant predictor
            logger.warning("Only one class in training data, fitting a constant classifier")
            estimator = DummyClassifier(strategy="most_frequent")
        else:
            estimator = LogisticRegression(
                C=1.0 / l2_regularization if l2_regularization > 0 else 1e6,
                max_iter=max_iterations,
                random_state=random_seed,
            )

        steps = [("scaler", StandardScaler())] if normalize else []
        steps.append(("classifier", estimator))
        pipeline = Pipeline(steps)
        pipeline.fit(X, y)

        logger.debug(f"Fitted {type(estimator).__name__} on {X.shape[0]} samples")
        return cls(
            pipeline,
            model_version=model_version,
            training_info=training_info,
        )

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def check_vector(self, vector: VectorLike) -> np.ndarray:
        """
        Return ``vector`` as a 1-D float array after schema checks.

        Raises:
            ModelSchemaError: On schema-version or length mismatch.
        """
        if isinstance(vector, MLFeatureVector):
            if vector.schema_version != self.schema_version:
                raise ModelSchemaError(
                    self.feature_count,
                    len(vector),
                    f"schema version {vector.schema_version} != {self.schema_version}"
                )
            values = vector.values
        else:
            values = np.asarray(vector, dtype=np.float64).ravel()

        if len(values) != self.feature_count:
            raise ModelSchemaError(self.feature_count, len(values))
        return np.asarray(values, dtype=np.float64)

    def predict_proba(self, vector: VectorLike) -> np.ndarray:
        """Probability per FieldType for one vector."""
        return self.predict_proba_matrix(self.check_vector(vector).reshape(1, -1))[0]

    def predict_proba_matrix(self, matrix: np.ndarray) -> np.ndarray:
        """
        Probabilities for a (n, FEATURE_COUNT) matrix, one column per FieldType.

        Raises:
            ModelSchemaError: If the matrix width is wrong.
            InferenceError: If the estimator fails.
        """
        X = np.asarray(matrix, dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != self.feature_count:
            raise ModelSchemaError(self.feature_count, X.shape[-1] if X.ndim else 0)

        try:
            partial = self._pipeline.predict_proba(X)
        except (ValueError, FloatingPointError) as e:
            raise InferenceError(str(e))

        full = np.zeros((X.shape[0], len(ALL_FIELD_TYPES)), dtype=np.float64)
        full[:, self._class_indices] = partial
        return full

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> str:
        """Pickle the artifact to ``path`` and return the path."""
        path = Path(path)
        ensure_directory(path.parent)

        artifact = {
            "format": ARTIFACT_FORMAT,
            "pipeline": self._pipeline,
            "model_version": self.model_version,
            "schema_version": self.schema_version,
            "feature_names": list(self.feature_names),
            "trained_at": self.trained_at,
            "training_info": self.training_info,
        }
        with open(path, 'wb') as f:
            pickle.dump(artifact, f)

        logger.info(f"Model {self.model_version} saved to {path}")
        return str(path)

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        expected_schema_version: str = SCHEMA_VERSION,
        expected_feature_count: int = FEATURE_COUNT
    ) -> 'FieldClassifier':
        """
        Load an artifact written by save().

        Raises:
            ModelLoadError: If the file is missing or not an artifact.
            ModelSchemaError: If the artifact was trained on another schema.
        """
        path = Path(path)
        artifact = _read_artifact(path)

        feature_names = artifact.get("feature_names") or []
        schema_version = artifact.get("schema_version")
        if len(feature_names) != expected_feature_count:
            raise ModelSchemaError(expected_feature_count, len(feature_names), f"artifact {path}")
        if schema_version != expected_schema_version:
            raise ModelSchemaError(
                expected_feature_count,
                len(feature_names),
                f"artifact schema version {schema_version} != {expected_schema_version}"
            )

        model = cls(
            artifact["pipeline"],
            model_version=artifact.get("model_version", "unknown"),
            schema_version=schema_version,
            feature_names=feature_names,
            trained_at=artifact.get("trained_at"),
            training_info=artifact.get("training_info"),
        )
        logger.info(f"Model {model.model_version} loaded from {path}")
        return model

    @staticmethod
    def read_metadata(path: Union[str, Path]) -> Dict[str, Any]:
        """
        Metadata of a saved artifact, without schema checks.

        Raises:
            ModelLoadError: If the file is missing or not an artifact.
        """
        artifact = _read_artifact(Path(path))
        return {
            'model_version': artifact.get("model_version", "unknown"),
            'schema_version': artifact.get("schema_version"),
            'feature_count': len(artifact.get("feature_names") or []),
            'trained_at': artifact.get("trained_at"),
            'training_info': artifact.get("training_info") or {},
        }

    def info(self) -> Dict[str, Any]:
        return {
            'model_version': self.model_version,
            'schema_version': self.schema_version,
            'feature_count': self.feature_count,
            'trained_classes': [c.value for c in self.trained_classes],
            'trained_at': self.trained_at,
            'estimator': type(self._pipeline.steps[-1][1]).__name__,
        }

    def __repr__(self) -> str:
        return f"FieldClassifier(version={self.model_version!r}, schema={self.schema_version!r})"


def _read_artifact(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ModelLoadError(str(path), "file not found")

    try:
        with open(path, 'rb') as f:
            artifact = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
        raise ModelLoadError(str(path), str(e))

    if not isinstance(artifact, dict) or artifact.get("format") != ARTIFACT_FORMAT:
        raise ModelLoadError(str(path), "not a field classifier artifact")
    return artifact
