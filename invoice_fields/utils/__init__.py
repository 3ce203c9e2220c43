"""
Utility Module for the Invoice Field Classifier.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - Common helpers
"""

from .logger import setup_logger, get_logger, log_banner
from .helpers import ensure_directory, generate_timestamp, safe_divide, to_decimal

__all__ = [
    'setup_logger',
    'get_logger',
    'log_banner',
    'ensure_directory',
    'generate_timestamp',
    'safe_divide',
    'to_decimal',
]
