"""
Confidence Levels.

Maps a confidence in [0, 1] onto four bands. Each threshold is the
inclusive lower bound of the higher band:

    [0.8, 1.0]  HIGH
    [0.5, 0.8)  MEDIUM
    [0.3, 0.5)  LOW
    [0.0, 0.3)  VERY_LOW

Author: ML Engineering Team
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config import get_config
from invoice_fields.utils.exceptions import ConfigurationError


class ConfidenceLevel(Enum):
    VERY_LOW = "VeryLow"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class ConfidenceThresholds:
    """
    Band boundaries.

    Raises:
        ConfigurationError: If not 0 <= low <= medium <= high <= 1.
    """
    high: float = 0.8
    medium: float = 0.5
    low: float = 0.3

    def __post_init__(self):
        if not 0.0 <= self.low <= self.medium <= self.high <= 1.0:
            raise ConfigurationError(
                "Confidence thresholds must satisfy 0 <= low <= medium <= high <= 1",
                {"high": self.high, "medium": self.medium, "low": self.low}
            )

    @classmethod
    def from_config(cls) -> 'ConfidenceThresholds':
        return cls(
            high=float(get_config("policy.confidence.high", 0.8)),
            medium=float(get_config("policy.confidence.medium", 0.5)),
            low=float(get_config("policy.confidence.low", 0.3)),
        )

    def level(self, confidence: float) -> ConfidenceLevel:
        if confidence >= self.high:
            return ConfidenceLevel.HIGH
        if confidence >= self.medium:
            return ConfidenceLevel.MEDIUM
        if confidence >= self.low:
            return ConfidenceLevel.LOW
        return ConfidenceLevel.VERY_LOW


DEFAULT_THRESHOLDS = ConfidenceThresholds()


def get_level(
    confidence: float,
    thresholds: Optional[ConfidenceThresholds] = None
) -> ConfidenceLevel:
    """
    Band for ``confidence``.

    Example:
        >>> get_level(0.8)
        <ConfidenceLevel.HIGH: 'High'>
        >>> get_level(0.2999)
        <ConfidenceLevel.VERY_LOW: 'VeryLow'>
    """
    return (thresholds or DEFAULT_THRESHOLDS).level(confidence)
