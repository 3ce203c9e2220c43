"""
Decision Policy Module.

Combines the classifier's invoice-level confidence with the business rules
into an Accept / Review / Reject outcome.

Outcome rules:
    - Reject: incomplete financials or address, inconsistent VAT, missing
      invoice number or date (and duplicates when configured to reject)
    - Review: duplicates (default action), suspicious amounts, confidence
      below the high band
    - Accept: high confidence and every check passes

Every triggered rule is returned as a reason; a non-standard VAT rate is
reported for information only. decide() performs no I/O and does not
modify its inputs.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from config import get_config
from invoice_fields.domain.invoice import CandidateInvoice
from invoice_fields.policy import business_rules as rules
from invoice_fields.policy.confidence import ConfidenceLevel, ConfidenceThresholds
from invoice_fields.utils.exceptions import ConfigurationError
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class DecisionOutcome(Enum):
    ACCEPT = "Accept"
    REVIEW = "Review"
    REJECT = "Reject"


class ReasonSeverity(Enum):
    INFO = "info"
    REVIEW = "review"
    REJECT = "reject"


@dataclass(frozen=True)
class DecisionReason:
    """One triggered rule."""
    code: str
    message: str
    severity: ReasonSeverity

    def to_dict(self) -> Dict[str, str]:
        return {'code': self.code, 'message': self.message, 'severity': self.severity.value}

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class PolicyDecision:
    """
    Outcome of DecisionPolicy.decide().

    Attributes:
        outcome: Accept, Review or Reject
        reasons: Triggered rules in evaluation order
        confidence_level: Band of the classifier confidence
        checks: Result of every rule by name
        duplicates_of: Document ids (or numbers) of matching existing invoices
    """
    outcome: DecisionOutcome
    reasons: Tuple[DecisionReason, ...] = ()
    confidence_level: ConfidenceLevel = ConfidenceLevel.VERY_LOW
    checks: Dict[str, bool] = field(default_factory=dict)
    duplicates_of: Tuple[str, ...] = ()

    @property
    def reason_codes(self):
        return [reason.code for reason in self.reasons]

    @property
    def is_accepted(self) -> bool:
        return self.outcome == DecisionOutcome.ACCEPT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outcome': self.outcome.value,
            'confidence_level': self.confidence_level.value,
            'reasons': [r.to_dict() for r in self.reasons],
            'checks': dict(self.checks),
            'duplicates_of': list(self.duplicates_of),
        }


DUPLICATE_ACTIONS = {
    'review': DecisionOutcome.REVIEW,
    'reject': DecisionOutcome.REJECT,
}


class DecisionPolicy:
    """
    Decides what happens to a candidate invoice.

    Example:
        >>> policy = DecisionPolicy()
        >>> decision = policy.decide(invoice, 0.82, existing_invoices)
        >>> decision.outcome
        <DecisionOutcome.ACCEPT: 'Accept'>
    """

    def __init__(
        self,
        thresholds: Optional[ConfidenceThresholds] = None,
        settings: Optional[rules.RuleSettings] = None,
        duplicate_action: Optional[str] = None
    ) -> None:
        self.thresholds = thresholds or ConfidenceThresholds.from_config()
        self.settings = settings or rules.RuleSettings.from_config()

        action = (duplicate_action or get_config("policy.duplicate.action", "review")).lower()
        if action not in DUPLICATE_ACTIONS:
            raise ConfigurationError(
                f"Unknown duplicate action: {action}",
                {"allowed": sorted(DUPLICATE_ACTIONS)}
            )
        self.duplicate_action = DUPLICATE_ACTIONS[action]

    def decide(
        self,
        candidate: CandidateInvoice,
        classifier_confidence: float,
        existing: Iterable[CandidateInvoice] = ()
    ) -> PolicyDecision:
        """
        Evaluate every rule and pick the outcome.

        Args:
            candidate: Invoice to decide on.
            classifier_confidence: Invoice-level confidence in [0, 1].
            existing: Previously stored invoices; only read.

        Returns:
            PolicyDecision with outcome, reasons and individual checks.
        """
        level = self.thresholds.level(classifier_confidence)
        reasons = []

        def _add(code: str, message: str, severity: ReasonSeverity) -> None:
            reasons.append(DecisionReason(code, message, severity))

        missing = rules.missing_required_fields(candidate)
        financials = rules.is_complete_financials(candidate)
        address = rules.is_complete_address(candidate)
        valid_vat = rules.is_valid_vat(candidate, self.settings.vat_tolerance)
        duplicates = rules.find_duplicates(candidate, existing, self.settings.duplicate_window_days)
        suspicious = rules.is_suspicious_amount(candidate, self.settings)
        standard_rate = rules.is_standard_vat_rate(candidate, self.settings)

        if missing:
            _add('missing_fields', f"Missing required fields: {', '.join(missing)}", ReasonSeverity.REJECT)
        if not financials:
            _add('incomplete_financials', "Net, VAT and gross must be present and non-negative, gross above 0",
                 ReasonSeverity.REJECT)
        if not address:
            _add('incomplete_address', "Issuer name, street, postal code and city are required",
                 ReasonSeverity.REJECT)
        if financials and not valid_vat:
            _add('vat_mismatch',
                 f"Net + VAT differs from gross by {candidate.total_difference():.2f} "
                 f"(tolerance {self.settings.vat_tolerance})",
                 ReasonSeverity.REJECT)

        if duplicates:
            severity = ReasonSeverity.REJECT if self.duplicate_action == DecisionOutcome.REJECT else ReasonSeverity.REVIEW
            _add('duplicate',
                 f"Duplicate of {len(duplicates)} existing invoice(s) with number {candidate.normalized_number} "
                 f"within {self.settings.duplicate_window_days} days",
                 severity)
        if suspicious:
            _add('suspicious_amount',
                 f"Suspicious amount (gross {candidate.gross_total}, VAT rate {candidate.vat_rate:.1f}%)",
                 ReasonSeverity.REVIEW)
        if level != ConfidenceLevel.HIGH:
            _add('low_confidence',
                 f"Confidence {classifier_confidence:.2f} is {level.value}, below {self.thresholds.high:.2f}",
                 ReasonSeverity.REVIEW)

        if financials and valid_vat and not standard_rate:
            _add('non_standard_vat_rate', f"VAT rate {candidate.vat_rate:.2f}% is not a standard rate",
                 ReasonSeverity.INFO)

        severities = {reason.severity for reason in reasons}
        if ReasonSeverity.REJECT in severities:
            outcome = DecisionOutcome.REJECT
        elif ReasonSeverity.REVIEW in severities:
            outcome = DecisionOutcome.REVIEW
        else:
            outcome = DecisionOutcome.ACCEPT

        checks = {
            'required_fields': not missing,
            'complete_financials': financials,
            'complete_address': address,
            'valid_vat': valid_vat,
            'duplicate': bool(duplicates),
            'suspicious_amount': suspicious,
            'standard_vat_rate': standard_rate,
            'high_confidence': level == ConfidenceLevel.HIGH,
        }

        decision = PolicyDecision(
            outcome=outcome,
            reasons=tuple(reasons),
            confidence_level=level,
            checks=checks,
            duplicates_of=tuple(d.document_id or d.invoice_number or "" for d in duplicates),
        )
        logger.debug(f"Decision for {candidate.invoice_number!r}: {outcome.value} {decision.reason_codes}")
        return decision
