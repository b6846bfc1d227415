"""Incident records, change events, settings and urgency scoring."""

from core.models import (
    Incident,
    IncidentDraft,
    IncidentType,
    IncidentStatus,
    Severity,
    Coordinates,
    IncidentValidationError,
    validate_create_fields,
)
from core.events import ChangeEvent, EventKind, MalformedEventError, parse_change_event
from core.urgency import urgency_score, sorted_feed, ScoredIncident

__all__ = [
    "Incident",
    "IncidentDraft",
    "IncidentType",
    "IncidentStatus",
    "Severity",
    "Coordinates",
    "IncidentValidationError",
    "validate_create_fields",
    "ChangeEvent",
    "EventKind",
    "MalformedEventError",
    "parse_change_event",
    "urgency_score",
    "sorted_feed",
    "ScoredIncident",
]
