"""Primary incident feed: the current projection, urgency-scored and sorted."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from core.config import TriageConfig
from core.models import format_iso
from core.urgency import sorted_feed
from reconciler.reconciler import Reconciler


@dataclass(frozen=True)
class ScoredFeed:
    items: list = field(default_factory=list)  # list of ScoredIncident, highest urgency first
    generated_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stale: bool = False

    def to_dict(self):
        return {
            "incidents": [s.to_dict() for s in self.items],
            "generatedAt": format_iso(self.generated_at),
            "lastSyncedAt": format_iso(self.synced_at),
            "lastUpdatedAt": format_iso(self.updated_at),
            "stale": self.stale,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoreFeed:
    def __init__(
        self,
        reconciler: Reconciler,
        config: Optional[TriageConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reconciler = reconciler
        self.config = config or TriageConfig()
        self._clock = clock or _utcnow

    def get_sorted_feed(self, now: Optional[datetime] = None, include_resolved: bool = False) -> ScoredFeed:
        """Resolved incidents stay in the projection (history) but leave the active feed."""
        now = now or self._clock()
        snap = self.reconciler.snapshot()
        incidents = snap.incidents if include_resolved else [i for i in snap.incidents if not i.is_resolved]
        return ScoredFeed(
            items=sorted_feed(incidents, now, self.config.urgency),
            generated_at=now,
            synced_at=snap.synced_at,
            updated_at=snap.updated_at,
            stale=snap.is_stale(now, self.config.stale_after_seconds),
        )
