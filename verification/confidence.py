"""Confidence shown next to each unverified report. A display heuristic, kept within [10, 100]."""

import math

from core.config import ConfidenceWeights
from core.models import Incident, Severity

DEFAULT_WEIGHTS = ConfidenceWeights()


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def severity_weight(severity: Severity, weights: ConfidenceWeights = DEFAULT_WEIGHTS) -> int:
    return {
        Severity.CRITICAL: weights.critical,
        Severity.HIGH: weights.high,
        Severity.MEDIUM: weights.medium,
    }.get(severity, weights.low)


def confidence(incident: Incident, weights: ConfidenceWeights = DEFAULT_WEIGHTS) -> int:
    score = weights.base + severity_weight(incident.severity, weights) + _round_half_up(incident.panic * weights.panic)
    if incident.verified:
        score += weights.verified_boost
    return max(weights.floor, min(weights.ceiling, score))


def is_low_confidence(score: int, weights: ConfidenceWeights = DEFAULT_WEIGHTS) -> bool:
    return score < weights.low_confidence_below
