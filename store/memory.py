"""In-process incident store: the default backend and the test double for the real one."""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.events import ChangeEvent
from core.models import Coordinates, Incident, IncidentDraft, IncidentStatus, IncidentType, Severity
from store.base import ChangeFeed, IncidentNotFoundError, StoreError

logger = logging.getLogger("incident_api.store.memory")

# Demo incidents around the default base coordinates
DEMO_INCIDENTS = [
    {"type": "Flood", "location": "Kondi Village (Sector 4)", "lat": 17.665, "lng": 75.91,
     "severity": "Critical", "verified": True, "status": "Open", "description": "Water entering homes", "panic": 0.85},
    {"type": "Fire", "location": "Railway Station Area", "lat": 17.645, "lng": 75.89,
     "severity": "High", "verified": True, "status": "Assigned", "description": "Near Railway Station", "panic": 0.7},
    {"type": "Collapse", "location": "Old Bridge, Sina River", "lat": 17.652, "lng": 75.915,
     "severity": "Medium", "verified": False, "status": "Open", "description": "Old Bridge strain", "panic": 0.5},
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryIncidentStore:
    """Single-writer store: every mutation is published on ``feed`` after it lands."""

    kind = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.feed = ChangeFeed()
        self._clock = clock or _utcnow
        self._rows: dict[int, Incident] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def list_incidents(self) -> list[Incident]:
        with self._lock:
            # Newest first, as a full scan ordered by id would return them
            return sorted(self._rows.values(), key=lambda i: i.id, reverse=True)

    def get(self, incident_id: int) -> Optional[Incident]:
        with self._lock:
            return self._rows.get(incident_id)

    def create_incident(self, draft: IncidentDraft, created_at: Optional[datetime] = None) -> Incident:
        with self._lock:
            incident = Incident(
                id=self._next_id,
                type=draft.type,
                location=draft.location,
                coordinates=draft.coordinates,
                severity=draft.severity,
                created_at=created_at or self._clock(),
                panic=draft.panic,
                description=draft.description,
                sentiment=draft.sentiment,
                transcription=draft.transcription,
            )
            self._rows[incident.id] = incident
            self._next_id += 1
        logger.info("incident created id=%s type=%s location=%r", incident.id, incident.type.value, incident.location)
        self.feed.publish(ChangeEvent.insert(incident, committed_at=self._clock()))
        return incident

    def _update(self, incident_id: int, **changes) -> Incident:
        with self._lock:
            current = self._rows.get(incident_id)
            if current is None:
                raise IncidentNotFoundError(incident_id)
            updated = replace(current, **changes)
            self._rows[incident_id] = updated
        self.feed.publish(ChangeEvent.update(updated, committed_at=self._clock()))
        return updated

    def set_verified(self, incident_id: int) -> Incident:
        return self._update(incident_id, verified=True)

    def set_resolved(self, incident_id: int) -> Incident:
        return self._update(incident_id, status=IncidentStatus.RESOLVED)

    def set_status(self, incident_id: int, status: IncidentStatus) -> Incident:
        """Dispatcher-side status change (e.g. Open -> Assigned). Resolved is terminal."""
        current = self.get(incident_id)
        if current is not None and current.is_resolved and status != IncidentStatus.RESOLVED:
            raise StoreError(f"incident {incident_id} is resolved")
        return self._update(incident_id, status=status)

    def delete_incident(self, incident_id: int) -> bool:
        with self._lock:
            removed = self._rows.pop(incident_id, None)
        if removed is None:
            return False
        self.feed.publish(ChangeEvent.delete(incident_id, committed_at=self._clock()))
        return True

    def seed(self, records: list[dict] | None = None) -> list[Incident]:
        """Insert demo rows, spaced a few minutes apart ending now."""
        records = DEMO_INCIDENTS if records is None else records
        now = self._clock()
        created = []
        for idx, rec in enumerate(records):
            draft = IncidentDraft(
                type=IncidentType(rec["type"]),
                location=rec["location"],
                coordinates=Coordinates(rec["lat"], rec["lng"]),
                severity=Severity(rec.get("severity", "High")),
                panic=rec.get("panic", 0.6),
                description=rec.get("description", ""),
            )
            incident = self.create_incident(draft, created_at=now - timedelta(minutes=5 * (len(records) - 1 - idx)))
            if rec.get("verified"):
                incident = self.set_verified(incident.id)
            if rec.get("status") and rec["status"] != IncidentStatus.OPEN.value:
                incident = self.set_status(incident.id, IncidentStatus(rec["status"]))
            created.append(incident)
        return created
