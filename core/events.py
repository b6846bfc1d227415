"""Change-feed events: insert/update carry a full record, delete carries only the id."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from core.models import Incident, MalformedRecordError, parse_iso


class MalformedEventError(ValueError):
    """Change payload that cannot be applied (unknown type, missing id, bad record)."""


class EventKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    kind: EventKind
    incident_id: int
    incident: Optional[Incident] = None  # None only for DELETE
    committed_at: Optional[datetime] = None  # store commit time when the feed supplies it

    @classmethod
    def insert(cls, incident: Incident, committed_at: Optional[datetime] = None) -> "ChangeEvent":
        return cls(EventKind.INSERT, incident.id, incident, committed_at)

    @classmethod
    def update(cls, incident: Incident, committed_at: Optional[datetime] = None) -> "ChangeEvent":
        return cls(EventKind.UPDATE, incident.id, incident, committed_at)

    @classmethod
    def delete(cls, incident_id: int, committed_at: Optional[datetime] = None) -> "ChangeEvent":
        return cls(EventKind.DELETE, incident_id, None, committed_at)


def _delete_id(old) -> int:
    if not isinstance(old, dict) or old.get("id") is None or isinstance(old.get("id"), bool):
        raise MalformedEventError("delete event without id")
    try:
        return int(old["id"])
    except (TypeError, ValueError):
        raise MalformedEventError(f"delete event id {old.get('id')!r} is not an integer") from None


def parse_change_event(payload: dict) -> ChangeEvent:
    """
    Accept both change payload shapes the store emits:
    - database webhook: {"type": "UPDATE", "record": {...}, "old_record": {...}}
    - realtime channel: {"eventType": "UPDATE", "new": {...}, "old": {...}, "commit_timestamp": "..."}
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("event payload is not an object")
    raw_kind = payload.get("eventType") or payload.get("type")
    try:
        kind = EventKind(str(raw_kind).upper())
    except ValueError:
        raise MalformedEventError(f"unknown event type {raw_kind!r}") from None

    committed_at = parse_iso(payload.get("commit_timestamp"))
    new = payload.get("new") if "new" in payload else payload.get("record")
    old = payload.get("old") if "old" in payload else payload.get("old_record")

    if kind == EventKind.DELETE:
        return ChangeEvent.delete(_delete_id(old), committed_at)

    try:
        incident = Incident.from_record(new)
    except MalformedRecordError as e:
        raise MalformedEventError(str(e)) from None
    return ChangeEvent(kind, incident.id, incident, committed_at)
