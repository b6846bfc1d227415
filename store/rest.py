"""
REST-backed incident store (PostgREST / Supabase table API) over httpx.

Reads and writes go to ``{base_url}/rest/v1/{table}``. The store pushes row changes to
the API's /feed/events webhook, which publishes them on ``feed``; this client never
polls for changes itself.
"""

import logging
from typing import Optional

import httpx

from core.models import Incident, IncidentDraft, MalformedRecordError
from store.base import ChangeFeed, IncidentNotFoundError, StoreError

logger = logging.getLogger("incident_api.store.rest")


class RestIncidentStore:
    kind = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "incidents",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.feed = ChangeFeed()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _request(self, method: str, **kwargs) -> list:
        try:
            r = self.client.request(method, f"/{self.table}", **kwargs)
            r.raise_for_status()
        except httpx.TimeoutException as e:
            raise StoreError(f"{method} {self.table} timed out") from e
        except httpx.HTTPStatusError as e:
            raise StoreError(f"{method} {self.table} failed: HTTP {e.response.status_code} {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {self.table} failed: {e}") from e
        try:
            data = r.json()
        except ValueError as e:
            raise StoreError(f"{method} {self.table} returned non-JSON body") from e
        if not isinstance(data, list):
            data = [data]
        return data

    def _to_incident(self, row: dict) -> Incident:
        try:
            return Incident.from_record(row)
        except MalformedRecordError as e:
            raise StoreError(f"store returned a malformed row: {e}") from e

    def list_incidents(self) -> list[Incident]:
        rows = self._request("GET", params={"select": "*", "order": "id.desc"})
        incidents = []
        for row in rows:
            try:
                incidents.append(Incident.from_record(row))
            except MalformedRecordError as e:
                # Bad row: skip it, keep the rest of the scan
                logger.warning("skipping malformed row in full scan: %s", e)
        return incidents

    def _patch(self, incident_id: int, changes: dict) -> Incident:
        rows = self._request(
            "PATCH",
            params={"id": f"eq.{incident_id}", "select": "*"},
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise IncidentNotFoundError(incident_id)
        return self._to_incident(rows[0])

    def set_verified(self, incident_id: int) -> Incident:
        return self._patch(incident_id, {"verified": True})

    def set_resolved(self, incident_id: int) -> Incident:
        return self._patch(incident_id, {"status": "Resolved"})

    def create_incident(self, draft: IncidentDraft) -> Incident:
        rows = self._request(
            "POST",
            params={"select": "*"},
            json=draft.to_record(),
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise StoreError("insert returned no row")
        incident = self._to_incident(rows[0])
        logger.info("incident created id=%s type=%s location=%r", incident.id, incident.type.value, incident.location)
        return incident
