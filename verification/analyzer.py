"""
Community verification queue and the two reviewer actions.

The queue holds unverified, unresolved incidents, newest first (not by urgency).
Each item carries distance from the observer, a confidence heuristic, the recent
report count at its location and the spam flag derived from it.

verify/flag only ask the store for the change. The projection picks the change up
from the change feed (or the next resync); the store's reply is never applied here.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from core.config import TriageConfig
from core.models import Coordinates, Incident, format_iso
from reconciler.reconciler import Reconciler
from store.base import IncidentNotFoundError, IncidentStore, StoreError
from verification.confidence import confidence, is_low_confidence
from verification.geo import distance_km, is_geofenced
from verification.reports import SPAM_REASON, location_key, recent_report_count, recent_report_counts, spam_flag

logger = logging.getLogger("incident_api.verification")

ACTION_VERIFY = "verify"
ACTION_FLAG = "flag"

# ActionResult.reason values
REASON_NOT_FOUND = "not_found"
REASON_CONFLICT = "conflict"
REASON_STORE_ERROR = "store_error"


@dataclass(frozen=True)
class VerificationItem:
    incident: Incident
    distance_km: Optional[float]
    confidence: int
    low_confidence: bool
    recent_report_count: int
    spam_flag: bool
    is_geofenced: bool

    @property
    def spam_reason(self) -> Optional[str]:
        return SPAM_REASON if self.spam_flag else None

    def to_dict(self):
        return {
            "incident": self.incident.to_dict(),
            "distanceKm": round(self.distance_km, 3) if self.distance_km is not None else None,
            "confidence": self.confidence,
            "lowConfidence": self.low_confidence,
            "recentReportCount": self.recent_report_count,
            "spamFlag": self.spam_flag,
            "spamReason": self.spam_reason,
            "isGeofenced": self.is_geofenced,
        }


@dataclass(frozen=True)
class VerificationQueue:
    items: list = field(default_factory=list)  # list of VerificationItem
    radius_km: float = 10.0
    synced_at: Optional[datetime] = None
    stale: bool = False

    @property
    def geofence_count(self) -> int:
        return sum(1 for item in self.items if item.is_geofenced)

    def to_dict(self):
        return {
            "items": [item.to_dict() for item in self.items],
            "geofenceCount": self.geofence_count,
            "radiusKm": self.radius_km,
            "lastSyncedAt": format_iso(self.synced_at),
            "stale": self.stale,
        }


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    action: str
    incident_id: int
    error: Optional[str] = None
    reason: Optional[str] = None
    already_applied: bool = False

    def to_dict(self):
        return {
            "ok": self.ok,
            "action": self.action,
            "incidentId": self.incident_id,
            "error": self.error,
            "reason": self.reason,
            "alreadyApplied": self.already_applied,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationAnalyzer:
    def __init__(
        self,
        reconciler: Reconciler,
        store: IncidentStore,
        config: Optional[TriageConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reconciler = reconciler
        self.store = store
        self.config = config or TriageConfig()
        self._clock = clock or _utcnow

    def verification_queue(self, observer: Optional[Coordinates] = None, now: Optional[datetime] = None) -> VerificationQueue:
        now = now or self._clock()
        snap = self.reconciler.snapshot()
        cfg = self.config
        # Spam counts cover every report in the projection, verified or not
        counts = recent_report_counts(snap.incidents, now, cfg.recent_window_minutes)

        pending = [i for i in snap.incidents if not i.verified and not i.is_resolved]
        pending.sort(key=lambda i: (i.created_at, i.id), reverse=True)

        items = []
        for incident in pending:
            dist = distance_km(observer, incident)
            key = location_key(incident.location)
            if key:
                reports = counts[key]
            else:
                reports = recent_report_count(incident, (), now, cfg.recent_window_minutes)
            score = confidence(incident, cfg.confidence)
            items.append(VerificationItem(
                incident=incident,
                distance_km=dist,
                confidence=score,
                low_confidence=is_low_confidence(score, cfg.confidence),
                recent_report_count=reports,
                spam_flag=spam_flag(reports, cfg.spam_threshold),
                is_geofenced=is_geofenced(dist, cfg.geofence_km),
            ))
        return VerificationQueue(
            items=items,
            radius_km=cfg.geofence_km,
            synced_at=snap.synced_at,
            stale=snap.is_stale(now, cfg.stale_after_seconds),
        )

    def verify(self, incident_id: int) -> ActionResult:
        """Ask the store to mark the incident verified."""
        current = self.reconciler.snapshot().get(incident_id)
        if current is not None:
            if current.verified:
                return ActionResult(ok=True, action=ACTION_VERIFY, incident_id=incident_id, already_applied=True)
            if current.is_resolved:
                return ActionResult(ok=False, action=ACTION_VERIFY, incident_id=incident_id,
                                    error="incident is already resolved", reason=REASON_CONFLICT)
        return self._request(ACTION_VERIFY, incident_id, self.store.set_verified)

    def flag(self, incident_id: int) -> ActionResult:
        """Ask the store to resolve the incident as fake."""
        current = self.reconciler.snapshot().get(incident_id)
        if current is not None:
            if current.is_resolved:
                return ActionResult(ok=True, action=ACTION_FLAG, incident_id=incident_id, already_applied=True)
            if current.verified:
                return ActionResult(ok=False, action=ACTION_FLAG, incident_id=incident_id,
                                    error="incident is already verified", reason=REASON_CONFLICT)
        return self._request(ACTION_FLAG, incident_id, self.store.set_resolved)

    def _request(self, action: str, incident_id: int, call: Callable[[int], Incident]) -> ActionResult:
        # Single attempt, no retry
        try:
            call(incident_id)
        except IncidentNotFoundError as e:
            logger.warning("%s incident_id=%s: %s", action, incident_id, e)
            return ActionResult(ok=False, action=action, incident_id=incident_id, error=str(e), reason=REASON_NOT_FOUND)
        except StoreError as e:
            logger.warning("%s incident_id=%s failed: %s", action, incident_id, e)
            return ActionResult(ok=False, action=action, incident_id=incident_id, error=str(e), reason=REASON_STORE_ERROR)
        logger.info("%s requested incident_id=%s", action, incident_id)
        return ActionResult(ok=True, action=action, incident_id=incident_id)
