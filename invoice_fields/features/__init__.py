"""
Feature Extraction Module.

Converts positioned text blocks into feature records and fixed-length
vectors for the classifier.

Components:
    - RegexPatternMatcher: fixed invoice-domain pattern catalogue
    - FeatureExtractor: per-block feature groups and vector
    - schema: vector layout and version
"""

from .patterns import RegexPatternMatcher, RegexHit, PatternCategory
from .feature_models import ExtractedFeature, MLFeatureVector
from .extractor import FeatureExtractor
from .schema import FEATURE_NAMES, FEATURE_COUNT, SCHEMA_VERSION

__all__ = [
    'RegexPatternMatcher',
    'RegexHit',
    'PatternCategory',
    'ExtractedFeature',
    'MLFeatureVector',
    'FeatureExtractor',
    'FEATURE_NAMES',
    'FEATURE_COUNT',
    'SCHEMA_VERSION',
]
