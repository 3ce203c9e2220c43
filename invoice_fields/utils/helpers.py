"""
Helper Utilities Module.

Small generic helpers shared across the package.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - generate_timestamp: Generate formatted timestamps
    - safe_filename: Sanitize filenames for filesystem
    - safe_divide: Division that returns a default on a zero denominator
    - median: Median of a numeric sequence
    - to_decimal: Lenient Decimal conversion
"""

import re
import statistics
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Optional, Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Example:
        >>> ensure_directory("outputs/models")
        PosixPath('outputs/models')
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def generate_timestamp(format_str: str = "%Y%m%d_%H%M%S") -> str:
    """
    Generate a formatted timestamp string.

    Example:
        >>> generate_timestamp("%Y-%m-%d")
        "2026-01-21"
    """
    return datetime.now().strftime(format_str)


def safe_filename(filename: str, replacement: str = "_") -> str:
    """
    Sanitize a filename by replacing characters invalid on common filesystems.

    Example:
        >>> safe_filename("model:v1/final")
        "model_v1_final"
    """
    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', replacement, filename)
    sanitized = sanitized.strip('. ')
    return sanitized or "unnamed"


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning ``default`` when the denominator is zero.

    Example:
        >>> safe_divide(3, 0)
        0.0
    """
    if not denominator:
        return default
    return numerator / denominator


def median(values: Iterable[float], default: float = 0.0) -> float:
    """Median of ``values``, or ``default`` for an empty input."""
    data = [v for v in values]
    if not data:
        return default
    return float(statistics.median(data))


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert ``value`` to Decimal, returning None when not numeric.

    Floats are converted through their string form so 1190.02 stays
    1190.02 rather than its binary expansion. NaN and Infinity are not
    amounts and also give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, float):
        value = repr(value)
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    return value if value.is_finite() else None
