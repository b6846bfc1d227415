"""What the engine needs from the authoritative incident store, and the change-feed fan-out."""

import logging
import threading
from typing import Callable, Protocol, Union

from core.events import ChangeEvent
from core.models import Incident, IncidentDraft

logger = logging.getLogger("incident_api.store")

FeedItem = Union[ChangeEvent, dict]  # parsed event, or raw payload straight off a webhook
Listener = Callable[[FeedItem], None]


class StoreError(Exception):
    """Store call failed (network, timeout, non-2xx). Safe to surface; never fatal."""


class IncidentNotFoundError(StoreError):
    def __init__(self, incident_id: int):
        super().__init__(f"incident {incident_id} not found")
        self.incident_id = incident_id


class ChangeFeed:
    """Delivers each change to every subscriber, in publish order."""

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def publish(self, item: FeedItem) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(item)
            except Exception:
                # Remaining listeners still get the item
                logger.exception("change feed listener failed")


class IncidentStore(Protocol):
    feed: ChangeFeed

    def list_incidents(self) -> list[Incident]: ...

    def set_verified(self, incident_id: int) -> Incident: ...

    def set_resolved(self, incident_id: int) -> Incident: ...

    def create_incident(self, draft: IncidentDraft) -> Incident: ...
