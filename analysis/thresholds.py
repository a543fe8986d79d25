from dataclasses import dataclass, field
from typing import FrozenSet

from config import constants


@dataclass(frozen=True)
class AggregationThresholds:
    """Confidence cut-offs used to filter findings and grade severity.

    Defaults come from `config.constants` (environment overridable); tests and
    callers can pass their own instance.
    """

    disease_min: float = constants.DISEASE_MIN_CONFIDENCE
    disease_suspicious: float = constants.DISEASE_SUSPICIOUS_CONFIDENCE
    disease_critical: float = constants.DISEASE_CRITICAL_CONFIDENCE
    wound_min: float = constants.WOUND_MIN_CONFIDENCE
    wound_critical: float = constants.WOUND_CRITICAL_CONFIDENCE
    healthy_labels: FrozenSet[str] = field(
        default_factory=lambda: frozenset(constants.HEALTHY_LABELS)
    )


@dataclass(frozen=True)
class ConsolidationThresholds:
    critical_confidence: float = constants.CONSOLIDATED_CRITICAL_CONFIDENCE
    suspicious_confidence: float = constants.CONSOLIDATED_SUSPICIOUS_CONFIDENCE


DEFAULT_THRESHOLDS = AggregationThresholds()
DEFAULT_CONSOLIDATION_THRESHOLDS = ConsolidationThresholds()
