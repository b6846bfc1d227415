"""Incident store collaborators: protocol, change feed, in-memory and REST backends."""

from store.base import ChangeFeed, IncidentNotFoundError, IncidentStore, StoreError
from store.memory import InMemoryIncidentStore
from store.rest import RestIncidentStore

__all__ = [
    "ChangeFeed",
    "IncidentNotFoundError",
    "IncidentStore",
    "StoreError",
    "InMemoryIncidentStore",
    "RestIncidentStore",
]
