"""Tests for change payload parsing (webhook and realtime shapes)."""

import pytest

from core.events import ChangeEvent, EventKind, MalformedEventError, parse_change_event
from core.models import parse_iso


class TestParseChangeEvent:
    def test_webhook_insert(self, sample_record):
        event = parse_change_event({"type": "INSERT", "table": "incidents", "record": sample_record, "old_record": None})
        assert event.kind == EventKind.INSERT
        assert event.incident_id == 42
        assert event.incident.location == "Kondi Village (Sector 4)"
        assert event.committed_at is None

    def test_realtime_update_with_commit_timestamp(self, sample_record):
        sample_record["verified"] = True
        event = parse_change_event({
            "eventType": "UPDATE",
            "new": sample_record,
            "old": {"id": 42},
            "commit_timestamp": "2025-01-15T11:45:00Z",
        })
        assert event.kind == EventKind.UPDATE
        assert event.incident.verified is True
        assert event.committed_at == parse_iso("2025-01-15T11:45:00Z")

    def test_lowercase_type_accepted(self, sample_record):
        assert parse_change_event({"type": "update", "record": sample_record}).kind == EventKind.UPDATE

    def test_delete_carries_only_id(self):
        event = parse_change_event({"type": "DELETE", "record": None, "old_record": {"id": 9}})
        assert event == ChangeEvent.delete(9)
        assert event.incident is None

    def test_realtime_delete(self):
        event = parse_change_event({"eventType": "DELETE", "new": {}, "old": {"id": "12"}})
        assert event.kind == EventKind.DELETE
        assert event.incident_id == 12

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"type": "TRUNCATE", "record": None},
        {"type": "INSERT"},
        {"type": "INSERT", "record": {"type": "Fire"}},
        {"type": "UPDATE", "record": {"id": 1, "type": "Meteor", "created_at": "2025-01-15T12:00:00Z"}},
        {"type": "DELETE", "old_record": {}},
        {"type": "DELETE", "old_record": {"id": "x"}},
    ])
    def test_malformed_payloads_rejected(self, payload):
        with pytest.raises(MalformedEventError):
            parse_change_event(payload)


class TestChangeEventConstructors:
    def test_insert_and_update_take_id_from_incident(self, make_incident):
        inc = make_incident(id=5)
        assert ChangeEvent.insert(inc).incident_id == 5
        assert ChangeEvent.update(inc).kind == EventKind.UPDATE
