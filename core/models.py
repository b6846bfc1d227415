"""Incident records: closed enums, immutable snapshots, wire codec and creation validation."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

DEFAULT_PANIC = 0.6
DEFAULT_SEVERITY = "High"
DEFAULT_DESCRIPTION = "Reported via SOS."
# Base coordinates used when a report arrives without a device position
DEFAULT_LAT = 17.6599
DEFAULT_LNG = 75.9064


class IncidentValidationError(ValueError):
    """Creation input that must be rejected rather than stored with a guessed value."""


class MalformedRecordError(ValueError):
    """A record from the store that cannot be turned into an Incident."""


class IncidentType(str, Enum):
    FLOOD = "Flood"
    MEDICAL = "Medical"
    FIRE = "Fire"
    COLLAPSE = "Collapse"


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """0 for Low up to 3 for Critical."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


class IncidentStatus(str, Enum):
    OPEN = "Open"
    ASSIGNED = "Assigned"
    RESOLVED = "Resolved"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_dict(self):
        return {"lat": round(self.lat, 6), "lng": round(self.lng, 6)}


def _clamp_panic(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def parse_iso(ts) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without Z) into an aware UTC datetime."""
    if ts is None:
        return None
    if isinstance(ts, datetime):
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)
    if not isinstance(ts, str) or not ts.strip():
        return None
    try:
        parsed = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Incident:
    """One incident as the store last reported it. Snapshots hand these out, so they never change in place."""
    id: int
    type: IncidentType
    location: str
    coordinates: Coordinates
    severity: Severity
    created_at: datetime
    panic: float = DEFAULT_PANIC
    verified: bool = False
    status: IncidentStatus = IncidentStatus.OPEN
    # Annotations from external classifiers; carried through untouched
    description: Optional[str] = None
    sentiment: Optional[str] = None
    transcription: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "panic", _clamp_panic(self.panic))

    @property
    def is_resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED

    @classmethod
    def from_record(cls, record: dict) -> "Incident":
        """Build from a store row (column names as the store uses them)."""
        if not isinstance(record, dict):
            raise MalformedRecordError("record is not an object")
        raw_id = record.get("id")
        if raw_id is None or isinstance(raw_id, bool):
            raise MalformedRecordError("record has no id")
        try:
            incident_id = int(raw_id)
        except (TypeError, ValueError):
            raise MalformedRecordError(f"record id {raw_id!r} is not an integer") from None

        try:
            itype = IncidentType(record.get("type"))
            severity = Severity(record.get("severity") or DEFAULT_SEVERITY)
            status = IncidentStatus(record.get("status") or IncidentStatus.OPEN.value)
        except ValueError as e:
            raise MalformedRecordError(f"incident {incident_id}: {e}") from None

        created_at = None
        for candidate in (record.get("created_at"), record.get("timestamp")):
            created_at = parse_iso(candidate)
            if created_at is not None:
                break
        if created_at is None:
            raise MalformedRecordError(f"incident {incident_id}: no parseable created_at/timestamp")

        try:
            lat = float(record["lat"]) if record.get("lat") is not None else DEFAULT_LAT
            lng = float(record["lng"]) if record.get("lng") is not None else DEFAULT_LNG
            panic = float(record["panic"]) if record.get("panic") is not None else DEFAULT_PANIC
        except (TypeError, ValueError):
            raise MalformedRecordError(f"incident {incident_id}: non-numeric lat/lng/panic") from None
        if not all(math.isfinite(v) for v in (lat, lng, panic)):
            raise MalformedRecordError(f"incident {incident_id}: non-finite lat/lng/panic")

        verified = record.get("verified")
        if verified is None:
            verified = False
        elif not isinstance(verified, bool):
            raise MalformedRecordError(f"incident {incident_id}: verified {verified!r} is not a boolean")

        return cls(
            id=incident_id,
            type=itype,
            location=str(record.get("location") or ""),
            coordinates=Coordinates(lat=lat, lng=lng),
            severity=severity,
            created_at=created_at,
            panic=panic,
            verified=verified,
            status=status,
            description=record.get("description"),
            sentiment=record.get("sentiment"),
            transcription=record.get("transcription"),
        )

    def to_dict(self):
        d = {
            "id": self.id,
            "type": self.type.value,
            "location": self.location,
            "lat": round(self.coordinates.lat, 6),
            "lng": round(self.coordinates.lng, 6),
            "severity": self.severity.value,
            "panic": round(self.panic, 4),
            "verified": self.verified,
            "status": self.status.value,
            "created_at": format_iso(self.created_at),
        }
        if self.description is not None:
            d["description"] = self.description
        if self.sentiment is not None:
            d["sentiment"] = self.sentiment
        if self.transcription is not None:
            d["transcription"] = self.transcription
        return d


@dataclass(frozen=True)
class IncidentDraft:
    """Validated creation fields; the store assigns id, created_at, status and verified."""
    type: IncidentType
    location: str
    coordinates: Coordinates
    severity: Severity = Severity.HIGH
    panic: float = DEFAULT_PANIC
    description: str = DEFAULT_DESCRIPTION
    sentiment: Optional[str] = None
    transcription: Optional[str] = None

    def to_record(self) -> dict:
        d = {
            "type": self.type.value,
            "location": self.location,
            "lat": self.coordinates.lat,
            "lng": self.coordinates.lng,
            "severity": self.severity.value,
            "panic": self.panic,
            "description": self.description,
        }
        if self.sentiment is not None:
            d["sentiment"] = self.sentiment
        if self.transcription is not None:
            d["transcription"] = self.transcription
        return d


def validate_create_fields(fields: dict, default_coordinates: Optional[Coordinates] = None) -> IncidentDraft:
    """
    Check submitted fields and apply the documented defaults.
    Raises IncidentValidationError listing every problem found.
    """
    errors = []
    default_coordinates = default_coordinates or Coordinates(DEFAULT_LAT, DEFAULT_LNG)

    itype = None
    raw_type = fields.get("type")
    if not raw_type or not str(raw_type).strip():
        errors.append("type is required")
    else:
        try:
            itype = IncidentType(str(raw_type).strip())
        except ValueError:
            errors.append(f"unknown type {raw_type!r}")

    location = str(fields.get("location") or "").strip()
    if not location:
        errors.append("location is required")

    severity = Severity.HIGH
    if fields.get("severity") is not None:
        try:
            severity = Severity(fields["severity"])
        except ValueError:
            errors.append(f"unknown severity {fields['severity']!r}")

    panic = DEFAULT_PANIC
    if fields.get("panic") is not None:
        try:
            panic = float(fields["panic"])
        except (TypeError, ValueError):
            errors.append("panic must be a number")
        else:
            if not 0.0 <= panic <= 1.0:
                errors.append("panic must be within [0, 1]")

    lat, lng = fields.get("lat"), fields.get("lng")
    coordinates = default_coordinates
    if (lat is None) != (lng is None):
        errors.append("lat and lng must be given together")
    elif lat is not None:
        try:
            lat_f, lng_f = float(lat), float(lng)
        except (TypeError, ValueError):
            errors.append("lat/lng must be numbers")
        else:
            if not -90.0 <= lat_f <= 90.0 or not -180.0 <= lng_f <= 180.0:
                errors.append("lat/lng out of range")
            else:
                coordinates = Coordinates(lat_f, lng_f)

    if errors:
        raise IncidentValidationError("; ".join(errors))

    return IncidentDraft(
        type=itype,
        location=location,
        coordinates=coordinates,
        severity=severity,
        panic=panic,
        description=fields.get("description") or DEFAULT_DESCRIPTION,
        sentiment=fields.get("sentiment"),
        transcription=fields.get("transcription"),
    )


@dataclass(frozen=True)
class ProjectionSnapshot:
    """What readers see: the projection at one instant plus freshness markers."""
    incidents: tuple = field(default_factory=tuple)  # tuple of Incident, projection order
    synced_at: Optional[datetime] = None  # last successful full resync
    updated_at: Optional[datetime] = None  # last write of any kind

    def get(self, incident_id: int) -> Optional[Incident]:
        return next((i for i in self.incidents if i.id == incident_id), None)

    def is_stale(self, now: datetime, max_age_seconds: float) -> bool:
        if self.synced_at is None:
            return True
        return (now - self.synced_at).total_seconds() > max_age_seconds
