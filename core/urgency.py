"""
Urgency score for the primary incident feed: severity + panic - time decay.

Severity dominates, panic amplifies, age fades. With default weights a Critical
report keeps outranking a fresh Medium one for 20 hours (50 - 2x > 10).
The score is unbounded and only meaningful relative to other scores.
"""

from dataclasses import dataclass
from datetime import datetime

from core.config import UrgencyWeights
from core.models import Incident, Severity

DEFAULT_WEIGHTS = UrgencyWeights()


def severity_weight(severity: Severity, weights: UrgencyWeights = DEFAULT_WEIGHTS) -> float:
    return {
        Severity.CRITICAL: weights.critical,
        Severity.HIGH: weights.high,
        Severity.MEDIUM: weights.medium,
    }.get(severity, weights.low)


def hours_since(created_at: datetime, now: datetime) -> float:
    return (now - created_at).total_seconds() / 3600.0


def urgency_score(incident: Incident, now: datetime, weights: UrgencyWeights = DEFAULT_WEIGHTS) -> float:
    score = severity_weight(incident.severity, weights)
    score += incident.panic * weights.panic
    # Future-dated (clock-skewed) reports get no bonus
    score -= max(0.0, hours_since(incident.created_at, now)) * weights.decay_per_hour
    return score


@dataclass(frozen=True)
class ScoredIncident:
    incident: Incident
    urgency_score: float

    def to_dict(self):
        d = self.incident.to_dict()
        d["urgencyScore"] = round(self.urgency_score, 4)
        return d


def sorted_feed(incidents, now: datetime, weights: UrgencyWeights = DEFAULT_WEIGHTS) -> list[ScoredIncident]:
    """Highest score first; equal scores put the larger (newer) id first."""
    scored = [ScoredIncident(incident=i, urgency_score=urgency_score(i, now, weights)) for i in incidents]
    scored.sort(key=lambda s: (s.urgency_score, s.incident.id), reverse=True)
    return scored
