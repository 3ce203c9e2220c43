"""
Decision Policy Module.

Confidence bands, invoice business rules and the Accept / Review / Reject
decision.

Author: ML Engineering Team
"""

from .confidence import ConfidenceLevel, ConfidenceThresholds, get_level
from .business_rules import (
    RuleSettings,
    find_duplicates,
    is_complete_address,
    is_complete_financials,
    is_duplicate,
    is_standard_vat_rate,
    is_suspicious_amount,
    is_valid_vat,
    missing_required_fields,
)
from .decision import DecisionOutcome, DecisionPolicy, DecisionReason, PolicyDecision, ReasonSeverity

__all__ = [
    'ConfidenceLevel',
    'ConfidenceThresholds',
    'get_level',
    'RuleSettings',
    'find_duplicates',
    'is_complete_address',
    'is_complete_financials',
    'is_duplicate',
    'is_standard_vat_rate',
    'is_suspicious_amount',
    'is_valid_vat',
    'missing_required_fields',
    'DecisionOutcome',
    'DecisionPolicy',
    'DecisionReason',
    'PolicyDecision',
    'ReasonSeverity',
]
