"""
Canonical in-memory projection of incidents, kept in step with the store by two writers:
the change feed (deltas) and a periodic full resync.

Ordering without row versions: every entry is tagged with the local clock at the time
the write that produced it was applied. A resync is tagged with the time its fetch
started, so anything applied strictly after that (including deletes, kept as
tombstones) survives the resync. The store's commit timestamp, when the feed supplies
one, only orders deltas for the same id against each other: a delta committed before
the last one applied for that id is ignored. The two clocks are never compared.

Readers call snapshot(); it never waits on writers.
"""

import logging
import threading
from datetime import datetime, timezone
from dataclasses import replace
from typing import Callable, Iterable, Optional, Union

from core.events import ChangeEvent, EventKind, MalformedEventError, parse_change_event
from core.models import Incident, IncidentStatus, MalformedRecordError, ProjectionSnapshot
from store.base import IncidentStore, StoreError

logger = logging.getLogger("incident_api.reconciler")

DEFAULT_RESYNC_INTERVAL = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def carry_one_way_state(current: Incident, incoming: Incident) -> Incident:
    """verified and Resolved never revert; keep them if an incoming record drops them."""
    if current.verified and not incoming.verified:
        logger.warning("incident %s: store record reverts verified; keeping verified=True", incoming.id)
        incoming = replace(incoming, verified=True)
    if current.is_resolved and not incoming.is_resolved:
        logger.warning("incident %s: store record reverts Resolved to %s; keeping Resolved",
                       incoming.id, incoming.status.value)
        incoming = replace(incoming, status=IncidentStatus.RESOLVED)
    return incoming


class Reconciler:
    def __init__(
        self,
        store: IncidentStore,
        clock: Optional[Callable[[], datetime]] = None,
        resync_interval: float = DEFAULT_RESYNC_INTERVAL,
    ):
        self.store = store
        self.resync_interval = resync_interval
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._entries: dict[int, Incident] = {}
        self._tags: dict[int, datetime] = {}
        self._tombstones: dict[int, datetime] = {}
        self._commits: dict[int, datetime] = {}  # store commit time of the last delta applied, per id
        self._order: list[int] = []  # most recently added first
        self._synced_at: Optional[datetime] = None
        self._updated_at: Optional[datetime] = None
        self._snapshot = ProjectionSnapshot()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.dropped_events = 0
        self.failed_resyncs = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def snapshot(self) -> ProjectionSnapshot:
        return self._snapshot

    def _publish(self) -> None:
        """Swap in a fresh immutable snapshot. Caller holds the lock."""
        self._snapshot = ProjectionSnapshot(
            incidents=tuple(self._entries[i] for i in self._order),
            synced_at=self._synced_at,
            updated_at=self._updated_at,
        )

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def apply_event(self, event: Union[ChangeEvent, dict]) -> bool:
        """Apply one change. Returns False when the event was dropped (malformed or stale)."""
        if not isinstance(event, ChangeEvent):
            try:
                event = parse_change_event(event)
            except MalformedEventError as e:
                self.dropped_events += 1
                logger.warning("dropping malformed change event: %s", e)
                return False

        iid = event.incident_id
        with self._lock:
            tag = self._clock()
            last_commit = self._commits.get(iid)
            if event.committed_at is not None and last_commit is not None and event.committed_at < last_commit:
                logger.info("ignoring stale %s for incident %s (committed %s < last applied %s)",
                            event.kind.value, iid, event.committed_at.isoformat(), last_commit.isoformat())
                return False
            if event.committed_at is not None:
                self._commits[iid] = event.committed_at

            if event.kind == EventKind.DELETE:
                if self._entries.pop(iid, None) is not None:
                    self._order.remove(iid)
                self._tags.pop(iid, None)
                self._tombstones[iid] = tag
            else:
                incoming = event.incident
                existing = self._entries.get(iid)
                if existing is None:
                    self._order.insert(0, iid)
                else:
                    incoming = carry_one_way_state(existing, incoming)
                self._entries[iid] = incoming
                self._tags[iid] = tag
                self._tombstones.pop(iid, None)

            self._updated_at = tag
            self._publish()
        logger.debug("applied %s incident_id=%s", event.kind.value, iid)
        return True

    def full_resync(self, records: Iterable[Union[Incident, dict]], fetched_at: Optional[datetime] = None) -> int:
        """
        Replace the projection with a full scan taken at fetched_at (default: now).
        Local writes strictly newer than fetched_at are kept. Returns the projection size.
        """
        fetched_at = fetched_at or self._clock()
        incidents = []
        for rec in records:
            if isinstance(rec, Incident):
                incidents.append(rec)
                continue
            try:
                incidents.append(Incident.from_record(rec))
            except MalformedRecordError as e:
                logger.warning("resync: skipping malformed record: %s", e)

        with self._lock:
            entries: dict[int, Incident] = {}
            tags: dict[int, datetime] = {}
            order: list[int] = []
            for incoming in incidents:
                iid = incoming.id
                if iid in entries:
                    logger.warning("resync: duplicate id %s in snapshot; keeping first", iid)
                    continue
                tombstone = self._tombstones.get(iid)
                if tombstone is not None and tombstone > fetched_at:
                    continue
                existing = self._entries.get(iid)
                existing_tag = self._tags.get(iid)
                if existing is not None and existing_tag is not None and existing_tag > fetched_at:
                    entries[iid] = existing
                    tags[iid] = existing_tag
                else:
                    entries[iid] = carry_one_way_state(existing, incoming) if existing is not None else incoming
                    tags[iid] = fetched_at
                order.append(iid)

            # Inserted by a delta after the fetch started: not in the scan, still current
            newer = [i for i in self._order if i not in entries and self._tags[i] > fetched_at]
            for iid in newer:
                entries[iid] = self._entries[iid]
                tags[iid] = self._tags[iid]

            self._entries = entries
            self._tags = tags
            self._order = newer + order
            self._tombstones = {i: t for i, t in self._tombstones.items() if t > fetched_at}
            # Commit times only survive for ids whose local state outlived the scan
            self._commits = {
                i: c for i, c in self._commits.items()
                if i in self._tombstones or (i in tags and tags[i] > fetched_at)
            }
            if self._synced_at is None or fetched_at > self._synced_at:
                self._synced_at = fetched_at
            self._updated_at = self._clock()
            self._publish()
            return len(self._order)

    def resync(self) -> bool:
        """Fetch a full scan from the store and apply it. On failure the last snapshot stays."""
        fetched_at = self._clock()
        try:
            records = self.store.list_incidents()
        except StoreError as e:
            self.failed_resyncs += 1
            logger.warning("resync failed; keeping last snapshot (%d incidents): %s",
                           len(self._snapshot.incidents), e)
            return False
        size = self.full_resync(records, fetched_at=fetched_at)
        logger.info("resync applied incidents=%d", size)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Subscribe to the change feed, resync once, then resync every resync_interval seconds."""
        if self._thread is not None:
            return
        self._stop.clear()
        # Subscribe before the first fetch so nothing committed meanwhile is missed
        self._unsubscribe = self.store.feed.subscribe(self.apply_event)
        self.resync()
        self._thread = threading.Thread(target=self._resync_loop, name="incident-resync", daemon=True)
        self._thread.start()
        logger.info("reconciler started (resync every %ss)", self.resync_interval)

    def _resync_loop(self) -> None:
        while not self._stop.wait(self.resync_interval):
            try:
                self.resync()
            except Exception:
                logger.exception("background resync failed")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("reconciler stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
