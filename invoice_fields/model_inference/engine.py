"""
Prediction Engine Module.

Owns the currently loaded FieldClassifier and serves predictions from it.

Lifecycle:
    UNLOADED -> LOADING -> READY -> UNLOADED (unload)
                                 -> LOADING -> READY (reload)

Loads are serialized by a single writer lock. A reload builds the new model
beside the old one and swaps the reference only when it is ready; a
prediction that already holds the old reference finishes on it. While the
engine is LOADING or UNLOADED, new predictions raise ModelNotReadyError,
or wait for READY when a wait timeout is given.

Author: ML Engineering Team
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from config import get_config
from invoice_fields.domain.field_type import ALL_FIELD_TYPES
from invoice_fields.features.feature_models import ExtractedFeature
from invoice_fields.features.schema import FEATURE_COUNT, SCHEMA_VERSION
from invoice_fields.model_inference.classifier import FieldClassifier, VectorLike
from invoice_fields.model_inference.prediction import BatchPrediction, Prediction
from invoice_fields.utils.exceptions import (
    InferenceError,
    ModelNotReadyError,
    ModelSchemaError,
)
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class ModelState(Enum):
    UNLOADED = "Unloaded"
    LOADING = "Loading"
    READY = "Ready"


class PredictionEngine:
    """
    Thread-safe prediction service with an explicit model lifecycle.

    Attributes:
        model_path: Default artifact path for load()
        max_workers: Worker threads for batch prediction
        wait_timeout: Default seconds to wait for READY (None rejects at once)

    Example:
        >>> engine = PredictionEngine()
        >>> engine.load("models/field_classifier.pkl")
        >>> engine.state
        <ModelState.READY: 'Ready'>
        >>> engine.predict(features.vector).label
        <FieldType.INVOICE_NUMBER: 'InvoiceNumber'>
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        max_workers: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        expected_schema_version: str = SCHEMA_VERSION,
        expected_feature_count: int = FEATURE_COUNT
    ) -> None:
        self.model_path = model_path or get_config("model.path", "models/field_classifier.pkl")
        self.max_workers = int(max_workers or get_config("model.max_workers", 4))
        self.wait_timeout = wait_timeout if wait_timeout is not None else get_config(
            "model.ready_wait_timeout", None)
        self.expected_schema_version = expected_schema_version
        self.expected_feature_count = expected_feature_count

        self._writer = threading.Lock()
        self._condition = threading.Condition()
        self._state = ModelState.UNLOADED
        self._model: Optional[FieldClassifier] = None

        logger.debug(f"PredictionEngine initialized (workers: {self.max_workers})")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ModelState:
        with self._condition:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state == ModelState.READY

    @property
    def model_version(self) -> Optional[str]:
        with self._condition:
            return self._model.model_version if self._model else None

    def load(self, path: Optional[Union[str, Path]] = None) -> FieldClassifier:
        """
        Load (or reload) the artifact at ``path``.

        Raises:
            ModelLoadError: If the artifact cannot be read.
            ModelSchemaError: If it was trained on another feature schema.
        """
        path = path or self.model_path
        return self._install(lambda: FieldClassifier.load(
            path,
            expected_schema_version=self.expected_schema_version,
            expected_feature_count=self.expected_feature_count,
        ))

    def use_model(self, model: FieldClassifier) -> FieldClassifier:
        """
        Install an in-memory model, e.g. one just produced by training.

        Raises:
            ModelSchemaError: If the model's schema differs from the engine's.
        """
        return self._install(lambda: model)

    def unload(self) -> None:
        with self._writer:
            with self._condition:
                self._state = ModelState.UNLOADED
                self._model = None
                self._condition.notify_all()
        logger.info("Model unloaded")

    def _install(self, build) -> FieldClassifier:
        with self._writer:
            with self._condition:
                previous_state = self._state
                previous_model = self._model
                self._state = ModelState.LOADING

            try:
                model = build()
                self._check_schema(model)
            except Exception:
                with self._condition:
                    self._state = previous_state
                    self._model = previous_model
                    self._condition.notify_all()
                raise

            with self._condition:
                self._model = model
                self._state = ModelState.READY
                self._condition.notify_all()

        logger.info(f"Model {model.model_version} ready")
        return model

    def _check_schema(self, model: FieldClassifier) -> None:
        if (model.feature_count != self.expected_feature_count
                or model.schema_version != self.expected_schema_version):
            raise ModelSchemaError(
                self.expected_feature_count,
                model.feature_count,
                f"model schema {model.schema_version}, engine schema {self.expected_schema_version}"
            )

    def _acquire(self, wait_timeout: Optional[float]) -> FieldClassifier:
        """Snapshot the current model, waiting for READY if allowed."""
        timeout = wait_timeout if wait_timeout is not None else self.wait_timeout
        with self._condition:
            if self._state != ModelState.READY:
                if timeout is None or timeout <= 0:
                    raise ModelNotReadyError(self._state.value)
                if not self._condition.wait_for(
                        lambda: self._state == ModelState.READY, timeout=timeout):
                    raise ModelNotReadyError(self._state.value)
            return self._model

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def predict(self, vector: VectorLike, wait_timeout: Optional[float] = None) -> Prediction:
        """
        Classify one feature vector.

        Raises:
            ModelNotReadyError: If no model is READY (retryable).
            ModelSchemaError: If the vector does not match the model schema.
        """
        model = self._acquire(wait_timeout)
        return self._predict_with(model, vector)

    @staticmethod
    def _predict_with(model: FieldClassifier, vector: VectorLike) -> Prediction:
        probabilities = model.predict_proba(vector)
        return Prediction.from_probabilities(probabilities, ALL_FIELD_TYPES, model.model_version)

    def predict_batch(
        self,
        vectors: Sequence[VectorLike],
        max_workers: Optional[int] = None,
        wait_timeout: Optional[float] = None
    ) -> BatchPrediction:
        """
        Classify several vectors with one model snapshot.

        Results keep input order. An InferenceError on one vector is
        recorded in ``errors`` and the rest continue; schema mismatches
        propagate.
        """
        model = self._acquire(wait_timeout)
        workers = max_workers or self.max_workers
        batch = BatchPrediction(model_version=model.model_version)

        def _safe(item):
            index, vector = item
            try:
                return index, self._predict_with(model, vector), None
            except InferenceError as e:
                return index, None, str(e)

        items = list(enumerate(vectors))
        if workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(_safe, items))
        else:
            results = [_safe(item) for item in items]

        for index, prediction, error in results:
            batch.predictions.append(prediction)
            if error is not None:
                logger.warning(f"Prediction failed for item {index}: {error}")
                batch.errors[index] = error

        logger.debug(
            f"Batch of {len(items)} predicted, avg confidence {batch.average_confidence:.3f}"
        )
        return batch

    def predict_features(
        self,
        features: Sequence[ExtractedFeature],
        max_workers: Optional[int] = None,
        wait_timeout: Optional[float] = None
    ) -> BatchPrediction:
        """Classify the vectors of extracted features, keeping their order."""
        return self.predict_batch([f.vector for f in features], max_workers, wait_timeout)

    def info(self) -> Dict[str, Any]:
        with self._condition:
            model = self._model
            state = self._state
        data = {'state': state.value, 'model_path': str(self.model_path)}
        if model is not None:
            data.update(model.info())
        return data
