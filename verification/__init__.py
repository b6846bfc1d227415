"""Community verification: distance, confidence, spam signal, verify/flag actions."""

from verification.geo import haversine_km, distance_km, is_geofenced
from verification.confidence import confidence
from verification.reports import location_key, recent_report_count, recent_report_counts, spam_flag
from verification.analyzer import (
    ActionResult,
    VerificationAnalyzer,
    VerificationItem,
    VerificationQueue,
)

__all__ = [
    "haversine_km",
    "distance_km",
    "is_geofenced",
    "confidence",
    "location_key",
    "recent_report_count",
    "recent_report_counts",
    "spam_flag",
    "ActionResult",
    "VerificationAnalyzer",
    "VerificationItem",
    "VerificationQueue",
]
