"""
Invoice Field Classifier - Source Package.

Classifies positioned invoice text blocks into header fields and decides
whether the assembled invoice can be accepted automatically.

Modules:
    - domain: Field types, text blocks, candidate invoices, filters
    - features: Regex pattern matcher and feature extraction
    - model_inference: Classifier, predictions and the prediction engine
    - training: Labeled samples, splitting and model training
    - evaluation: Confusion matrix, metrics, model evaluation and reports
    - postprocessor: Normalization, aggregation and validation
    - policy: Confidence bands, business rules and decisions
    - utils: Logging, exceptions and helpers

Architecture:
    TextBlocks → Features → Classifier → Aggregation → Validation → Decision
                               ↑
               Training & Evaluation (offline)
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'domain',
    'features',
    'model_inference',
    'training',
    'evaluation',
    'postprocessor',
    'policy',
    'pipeline',
    'utils',
]
