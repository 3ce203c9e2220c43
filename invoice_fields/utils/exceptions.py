"""
Custom Exceptions Module.

Exceptions raised by the invoice field classifier. Business-policy outcomes
(duplicates, suspicious amounts, incomplete data) are never raised; they are
returned as decision reasons.

Exception Hierarchy:
    InvoiceFieldsError (base)
    ├── ConfigurationError              fatal, raised before processing
    │   └── ModelSchemaError
    ├── ModelError
    │   ├── ModelNotReadyError          retryable
    │   ├── ModelLoadError
    │   ├── ModelRegistryError
    │   └── InferenceError
    ├── TrainingError
    │   ├── InsufficientTrainingDataError
    │   ├── TrainingCancelledError
    │   └── TrainingDataFormatError
    └── OutputError
        └── ReportExportError
"""


class InvoiceFieldsError(Exception):
    """
    Base exception for all invoice field classifier errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(InvoiceFieldsError):
    """
    Raised when configuration values are inconsistent.

    Example:
        >>> raise ConfigurationError("Split fractions must sum to 1.0", {"sum": 0.9})
    """
    pass


class ModelSchemaError(ConfigurationError):
    """Raised when a model and a feature vector disagree on the schema."""

    def __init__(self, expected: int, actual: int, reason: str = None):
        message = f"Feature schema mismatch: expected {expected} features, got {actual}"
        details = {"expected": expected, "actual": actual}
        if reason:
            details["reason"] = reason
        super().__init__(message, details)


# =============================================================================
# MODEL ERRORS
# =============================================================================

class ModelError(InvoiceFieldsError):
    """Base exception for model-related errors."""
    pass


class ModelNotReadyError(ModelError):
    """
    Raised when predicting while the model is not loaded.

    The condition is retryable: callers may wait for the engine to become
    ready and try again.
    """

    retryable = True

    def __init__(self, state: str):
        message = f"Model not ready (state: {state})"
        details = {"state": state}
        super().__init__(message, details)


class ModelLoadError(ModelError):
    """Raised when a model artifact cannot be read."""

    def __init__(self, model_path: str, reason: str = None):
        message = f"Failed to load model: {model_path}"
        details = {"model": model_path, "reason": reason}
        super().__init__(message, details)


class ModelRegistryError(ModelError):
    """Raised when a saved model version is unknown, ambiguous or in use."""

    def __init__(self, message: str, version: str = None):
        super().__init__(message, {"version": version})


class InferenceError(ModelError):
    """Raised when the classifier fails on a vector."""

    def __init__(self, reason: str = None):
        message = "Model inference failed"
        details = {"reason": reason}
        super().__init__(message, details)


# =============================================================================
# TRAINING ERRORS
# =============================================================================

class TrainingError(InvoiceFieldsError):
    """Base exception for training and evaluation errors."""
    pass


class InsufficientTrainingDataError(TrainingError):
    """Raised when fewer samples than the configured minimum are supplied."""

    def __init__(self, required: int, actual: int):
        message = f"Insufficient training data: {actual} samples, at least {required} required"
        details = {"required": required, "actual": actual}
        super().__init__(message, details)


class TrainingCancelledError(TrainingError):
    """Raised when a training run is cancelled between folds."""

    def __init__(self, completed_folds: int = 0):
        message = "Training cancelled"
        details = {"completed_folds": completed_folds}
        super().__init__(message, details)


class TrainingDataFormatError(TrainingError):
    """Raised when a sample file cannot be parsed."""

    def __init__(self, filepath: str, line: int = None, reason: str = None):
        message = f"Malformed training data: {filepath}"
        details = {"filepath": filepath, "line": line, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# OUTPUT ERRORS
# =============================================================================

class OutputError(InvoiceFieldsError):
    """Base exception for output handling errors."""
    pass


class ReportExportError(OutputError):
    """Raised when an evaluation report cannot be written."""

    def __init__(self, filepath: str, reason: str = None):
        message = f"Failed to export report: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


__all__ = [
    'InvoiceFieldsError',
    'ConfigurationError',
    'ModelSchemaError',
    'ModelError',
    'ModelNotReadyError',
    'ModelLoadError',
    'ModelRegistryError',
    'InferenceError',
    'TrainingError',
    'InsufficientTrainingDataError',
    'TrainingCancelledError',
    'TrainingDataFormatError',
    'OutputError',
    'ReportExportError',
]
