"""Tests for the REST incident store (HTTP mocked with respx)."""

import json

import httpx
import pytest
import respx

from core.models import Coordinates, IncidentDraft, IncidentType, Severity
from store.base import IncidentNotFoundError, StoreError
from store.rest import RestIncidentStore

BASE_URL = "https://store.test"
TABLE_URL = "https://store.test/rest/v1/incidents"


@pytest.fixture
def rest_store():
    store = RestIncidentStore(BASE_URL, api_key="anon-key", timeout=1.0)
    yield store
    store.close()


class TestListIncidents:
    @respx.mock
    def test_full_scan(self, rest_store, sample_record):
        route = respx.get(TABLE_URL).mock(return_value=httpx.Response(200, json=[sample_record]))
        incidents = rest_store.list_incidents()
        assert [i.id for i in incidents] == [42]
        request = route.calls.last.request
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        assert request.url.params["order"] == "id.desc"

    @respx.mock
    def test_skips_malformed_rows(self, rest_store, sample_record):
        bad = {"id": 43, "type": "Meteor", "created_at": "2025-01-15T11:00:00Z"}
        respx.get(TABLE_URL).mock(return_value=httpx.Response(200, json=[sample_record, bad]))
        assert [i.id for i in rest_store.list_incidents()] == [42]

    @respx.mock
    def test_server_error(self, rest_store):
        respx.get(TABLE_URL).mock(return_value=httpx.Response(500, text="boom"))
        with pytest.raises(StoreError) as exc:
            rest_store.list_incidents()
        assert "500" in str(exc.value)

    @respx.mock
    def test_timeout(self, rest_store):
        respx.get(TABLE_URL).mock(side_effect=httpx.ConnectTimeout)
        with pytest.raises(StoreError) as exc:
            rest_store.list_incidents()
        assert "timed out" in str(exc.value)

    @respx.mock
    def test_connection_error(self, rest_store):
        respx.get(TABLE_URL).mock(side_effect=httpx.ConnectError)
        with pytest.raises(StoreError):
            rest_store.list_incidents()

    @respx.mock
    def test_non_json_body(self, rest_store):
        respx.get(TABLE_URL).mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(StoreError):
            rest_store.list_incidents()


class TestWrites:
    @respx.mock
    def test_set_verified(self, rest_store, sample_record):
        sample_record["verified"] = True
        route = respx.patch(TABLE_URL).mock(return_value=httpx.Response(200, json=[sample_record]))
        incident = rest_store.set_verified(42)
        assert incident.verified is True
        request = route.calls.last.request
        assert request.url.params["id"] == "eq.42"
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == {"verified": True}

    @respx.mock
    def test_set_resolved(self, rest_store, sample_record):
        sample_record["status"] = "Resolved"
        route = respx.patch(TABLE_URL).mock(return_value=httpx.Response(200, json=[sample_record]))
        assert rest_store.set_resolved(42).is_resolved
        assert json.loads(route.calls.last.request.content) == {"status": "Resolved"}

    @respx.mock
    def test_patch_matching_nothing_is_not_found(self, rest_store):
        respx.patch(TABLE_URL).mock(return_value=httpx.Response(200, json=[]))
        with pytest.raises(IncidentNotFoundError) as exc:
            rest_store.set_verified(999)
        assert exc.value.incident_id == 999

    @respx.mock
    def test_create_incident(self, rest_store, sample_record):
        route = respx.post(TABLE_URL).mock(return_value=httpx.Response(201, json=[sample_record]))
        draft = IncidentDraft(
            type=IncidentType.FLOOD,
            location="Kondi Village (Sector 4)",
            coordinates=Coordinates(17.665, 75.91),
            severity=Severity.CRITICAL,
            panic=0.85,
        )
        incident = rest_store.create_incident(draft)
        assert incident.id == 42
        body = json.loads(route.calls.last.request.content)
        assert body["type"] == "Flood"
        assert body["lat"] == 17.665
        assert "id" not in body

    @respx.mock
    def test_create_empty_response(self, rest_store):
        respx.post(TABLE_URL).mock(return_value=httpx.Response(201, json=[]))
        with pytest.raises(StoreError):
            rest_store.create_incident(IncidentDraft(IncidentType.FIRE, "Depot", Coordinates(17.6, 75.9)))

    @respx.mock
    def test_write_failure(self, rest_store):
        route = respx.patch(TABLE_URL).mock(return_value=httpx.Response(503))
        with pytest.raises(StoreError):
            rest_store.set_resolved(1)
        assert route.call_count == 1
