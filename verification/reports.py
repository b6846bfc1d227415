"""
Duplicate/bulk reporting signal: how many reports name the same place within a time window.

SPAM_THRESHOLD is a tunable heuristic (TRIAGE_SPAM_THRESHOLD), not a statistical test.
"""

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable

from core.models import Incident

SPAM_THRESHOLD = 3
RECENT_WINDOW_MINUTES = 60.0
SPAM_REASON = "Rapid duplicate reports"


def location_key(location: str | None) -> str:
    """Grouping key: case-insensitive, surrounding and repeated whitespace ignored."""
    return re.sub(r"\s+", " ", (location or "").strip().lower())


def _in_window(incident: Incident, cutoff: datetime) -> bool:
    return incident.created_at >= cutoff


def recent_report_counts(
    incidents: Iterable[Incident],
    now: datetime,
    window_minutes: float = RECENT_WINDOW_MINUTES,
) -> Counter:
    """Reports per location key created at or after now - window. Blank locations are not grouped."""
    cutoff = now - timedelta(minutes=window_minutes)
    counts: Counter = Counter()
    for incident in incidents:
        key = location_key(incident.location)
        if key and _in_window(incident, cutoff):
            counts[key] += 1
    return counts


def recent_report_count(
    incident: Incident,
    all_incidents: Iterable[Incident],
    now: datetime,
    window_minutes: float = RECENT_WINDOW_MINUTES,
) -> int:
    """Count of reports at this incident's location in the window, the incident itself included."""
    key = location_key(incident.location)
    if not key:
        cutoff = now - timedelta(minutes=window_minutes)
        return 1 if _in_window(incident, cutoff) else 0
    return recent_report_counts(all_incidents, now, window_minutes)[key]


def spam_flag(report_count: int, threshold: int = SPAM_THRESHOLD) -> bool:
    return report_count > threshold
