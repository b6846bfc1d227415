"""Pytest fixtures for triage engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from core.models import Coordinates, Incident, IncidentStatus, IncidentType, Severity
from store.memory import InMemoryIncidentStore
from reconciler.reconciler import Reconciler

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _make_incident(
    id=1,
    type="Fire",
    location="Market Road",
    severity="High",
    panic=0.5,
    verified=False,
    status="Open",
    created_at=NOW,
    lat=17.66,
    lng=75.91,
    **annotations,
) -> Incident:
    return Incident(
        id=id,
        type=IncidentType(type),
        location=location,
        coordinates=Coordinates(lat, lng),
        severity=Severity(severity),
        created_at=created_at,
        panic=panic,
        verified=verified,
        status=IncidentStatus(status),
        **annotations,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_incident():
    """Factory for Incident snapshots with sensible defaults."""
    return _make_incident


@pytest.fixture
def memory_store(clock):
    return InMemoryIncidentStore(clock=clock)


@pytest.fixture
def reconciler(memory_store, clock):
    """Reconciler wired to the in-memory store's change feed (no timer thread)."""
    rec = Reconciler(memory_store, clock=clock)
    unsubscribe = memory_store.feed.subscribe(rec.apply_event)
    yield rec
    unsubscribe()


@pytest.fixture
def sample_record():
    """A store row as the REST API / webhook delivers it."""
    return {
        "id": 42,
        "type": "Flood",
        "location": "Kondi Village (Sector 4)",
        "lat": 17.665,
        "lng": 75.91,
        "severity": "Critical",
        "panic": 0.85,
        "verified": False,
        "status": "Open",
        "created_at": "2025-01-15T11:30:00Z",
        "description": "Water entering homes",
    }
