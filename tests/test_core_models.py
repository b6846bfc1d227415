"""Tests for core models: Incident codec, panic clamping, creation validation, snapshots."""

from datetime import timedelta

import pytest

from core.models import (
    DEFAULT_DESCRIPTION,
    DEFAULT_LAT,
    DEFAULT_LNG,
    Coordinates,
    Incident,
    IncidentStatus,
    IncidentType,
    IncidentValidationError,
    MalformedRecordError,
    ProjectionSnapshot,
    Severity,
    parse_iso,
    validate_create_fields,
)


class TestIncident:
    def test_clamps_panic_high(self, make_incident):
        assert make_incident(panic=1.7).panic == 1.0

    def test_clamps_panic_low(self, make_incident):
        assert make_incident(panic=-0.2).panic == 0.0

    def test_is_immutable(self, make_incident):
        inc = make_incident()
        with pytest.raises(AttributeError):
            inc.verified = True

    def test_severity_rank_order(self):
        ranks = [Severity.LOW.rank, Severity.MEDIUM.rank, Severity.HIGH.rank, Severity.CRITICAL.rank]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4


class TestFromRecord:
    def test_parses_full_row(self, sample_record, now):
        inc = Incident.from_record(sample_record)
        assert inc.id == 42
        assert inc.type == IncidentType.FLOOD
        assert inc.severity == Severity.CRITICAL
        assert inc.status == IncidentStatus.OPEN
        assert inc.coordinates == Coordinates(17.665, 75.91)
        assert inc.created_at == now - timedelta(minutes=30)
        assert inc.description == "Water entering homes"
        assert inc.sentiment is None

    def test_falls_back_to_timestamp_field(self, sample_record, now):
        del sample_record["created_at"]
        sample_record["timestamp"] = "2025-01-15T10:00:00+00:00"
        inc = Incident.from_record(sample_record)
        assert inc.created_at == now - timedelta(hours=2)

    def test_missing_optional_fields_get_defaults(self):
        inc = Incident.from_record({"id": "7", "type": "Fire", "location": "X", "created_at": "2025-01-15T12:00:00Z"})
        assert inc.id == 7
        assert inc.severity == Severity.HIGH
        assert inc.panic == 0.6
        assert inc.coordinates == Coordinates(DEFAULT_LAT, DEFAULT_LNG)
        assert inc.verified is False

    def test_verified_defaults_to_false_when_null(self, sample_record):
        sample_record["verified"] = None
        assert Incident.from_record(sample_record).verified is False

    def test_store_panic_out_of_range_is_clamped(self, sample_record):
        sample_record["panic"] = 3
        assert Incident.from_record(sample_record).panic == 1.0

    @pytest.mark.parametrize("field,value", [
        ("id", None),
        ("id", "abc"),
        ("type", "Earthquake"),
        ("severity", "Apocalyptic"),
        ("status", "Closed"),
        ("created_at", "yesterday"),
        ("lat", "north"),
        ("lat", float("nan")),
        ("lat", "NaN"),
        ("lng", float("inf")),
        ("panic", float("nan")),
        ("verified", "false"),
        ("verified", 1),
    ])
    def test_malformed_rows_rejected(self, sample_record, field, value):
        sample_record[field] = value
        with pytest.raises(MalformedRecordError):
            Incident.from_record(sample_record)

    def test_to_dict_round_trips_columns(self, sample_record):
        d = Incident.from_record(sample_record).to_dict()
        assert d["id"] == 42
        assert d["created_at"] == "2025-01-15T11:30:00Z"
        assert d["severity"] == "Critical"
        assert "transcription" not in d


class TestParseIso:
    def test_with_z(self, now):
        assert parse_iso("2025-01-15T12:00:00Z") == now

    def test_naive_assumed_utc(self, now):
        assert parse_iso("2025-01-15T12:00:00") == now

    def test_garbage_returns_none(self):
        assert parse_iso("10:05 AM") is None
        assert parse_iso("") is None
        assert parse_iso(None) is None


class TestValidateCreateFields:
    def test_defaults_applied(self):
        draft = validate_create_fields({"type": "Flood", "location": "Kondi Village"})
        assert draft.type == IncidentType.FLOOD
        assert draft.severity == Severity.HIGH
        assert draft.panic == 0.6
        assert draft.description == DEFAULT_DESCRIPTION
        assert draft.coordinates == Coordinates(DEFAULT_LAT, DEFAULT_LNG)

    def test_custom_default_coordinates(self):
        draft = validate_create_fields({"type": "Fire", "location": "A"}, Coordinates(51.5, -0.12))
        assert draft.coordinates == Coordinates(51.5, -0.12)

    def test_explicit_fields_kept(self):
        draft = validate_create_fields({
            "type": "Medical", "location": " Lobby ", "lat": 17.7, "lng": 75.9,
            "severity": "Critical", "panic": 0.95, "sentiment": "Panicked", "transcription": "help",
        })
        assert draft.location == "Lobby"
        assert draft.coordinates == Coordinates(17.7, 75.9)
        assert draft.severity == Severity.CRITICAL
        assert draft.panic == 0.95
        assert draft.to_record()["sentiment"] == "Panicked"

    @pytest.mark.parametrize("fields,message", [
        ({"location": "A"}, "type is required"),
        ({"type": "Fire"}, "location is required"),
        ({"type": "Fire", "location": "   "}, "location is required"),
        ({"type": "Tornado", "location": "A"}, "unknown type"),
        ({"type": "Fire", "location": "A", "severity": "Extreme"}, "unknown severity"),
        ({"type": "Fire", "location": "A", "panic": 1.5}, "panic must be within"),
        ({"type": "Fire", "location": "A", "panic": -0.1}, "panic must be within"),
        ({"type": "Fire", "location": "A", "lat": 17.6}, "lat and lng must be given together"),
        ({"type": "Fire", "location": "A", "lat": 95, "lng": 10}, "out of range"),
    ])
    def test_invalid_input_rejected(self, fields, message):
        with pytest.raises(IncidentValidationError) as exc:
            validate_create_fields(fields)
        assert message in str(exc.value)

    def test_reports_every_problem(self):
        with pytest.raises(IncidentValidationError) as exc:
            validate_create_fields({"panic": 2})
        msg = str(exc.value)
        assert "type is required" in msg
        assert "location is required" in msg
        assert "panic" in msg


class TestProjectionSnapshot:
    def test_never_synced_is_stale(self, now):
        assert ProjectionSnapshot().is_stale(now, 120) is True

    def test_recent_sync_not_stale(self, now):
        snap = ProjectionSnapshot(synced_at=now - timedelta(seconds=60))
        assert snap.is_stale(now, 120) is False
        assert snap.is_stale(now + timedelta(seconds=61), 120) is True

    def test_get_by_id(self, make_incident):
        snap = ProjectionSnapshot(incidents=(make_incident(id=1), make_incident(id=2)))
        assert snap.get(2).id == 2
        assert snap.get(3) is None
