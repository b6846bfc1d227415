"""
Engine settings from the environment (.env is loaded by the API entrypoint).

- TRIAGE_GEOFENCE_KM: verification geofence radius (default 10).
- TRIAGE_SPAM_THRESHOLD: reports per location per window above which a report is flagged (default 3).
- TRIAGE_RECENT_WINDOW_MINUTES: window for the per-location report count (default 60).
- TRIAGE_RESYNC_SECONDS: full resync interval (default 60).
- TRIAGE_STALE_AFTER_SECONDS: feed is reported stale past this (default 2x resync interval).
- TRIAGE_ACTION_TIMEOUT: seconds allowed for any store call (default 5).
- TRIAGE_SEVERITY_WEIGHTS: comma-separated critical,high,medium,low urgency weights (default 50,30,10,0).
- TRIAGE_PANIC_WEIGHT / TRIAGE_DECAY_PER_HOUR: urgency panic multiplier (20) and hourly decay (2).
- TRIAGE_DEFAULT_LAT / TRIAGE_DEFAULT_LNG: coordinates given to reports submitted without a position.
- STORE_URL / STORE_API_KEY / STORE_TABLE: REST store; in-memory store when STORE_URL is unset.

Invalid values fall back to the default with a warning.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from core.models import DEFAULT_LAT, DEFAULT_LNG, Coordinates

logger = logging.getLogger("incident_api.config")


@dataclass(frozen=True)
class UrgencyWeights:
    critical: float = 50.0
    high: float = 30.0
    medium: float = 10.0
    low: float = 0.0
    panic: float = 20.0
    decay_per_hour: float = 2.0


@dataclass(frozen=True)
class ConfidenceWeights:
    """Display heuristic for the verification queue, not a probability."""
    base: int = 30
    critical: int = 30
    high: int = 20
    medium: int = 10
    low: int = 10
    panic: int = 40
    verified_boost: int = 20
    floor: int = 10
    ceiling: int = 100
    low_confidence_below: int = 40


@dataclass(frozen=True)
class TriageConfig:
    geofence_km: float = 10.0
    spam_threshold: int = 3
    recent_window_minutes: float = 60.0
    resync_interval: float = 60.0
    stale_after: Optional[float] = None
    action_timeout: float = 5.0
    urgency: UrgencyWeights = field(default_factory=UrgencyWeights)
    confidence: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    default_coordinates: Coordinates = field(default_factory=lambda: Coordinates(DEFAULT_LAT, DEFAULT_LNG))
    store_url: Optional[str] = None
    store_api_key: Optional[str] = None
    store_table: str = "incidents"

    @property
    def stale_after_seconds(self) -> float:
        return self.stale_after if self.stale_after is not None else 2 * self.resync_interval


def _env_float(name: str, default: float, minimum: Optional[float] = None) -> float:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return default
    try:
        f = float(v.strip())
    except ValueError:
        logger.warning("%s=%r is not a number; using %s", name, v, default)
        return default
    if minimum is not None and f < minimum:
        logger.warning("%s=%s below minimum %s; using %s", name, f, minimum, default)
        return default
    return f


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return default
    try:
        i = int(v.strip())
    except ValueError:
        logger.warning("%s=%r is not an integer; using %s", name, v, default)
        return default
    return i if i >= minimum else default


def _env_str(name: str) -> Optional[str]:
    v = os.environ.get(name, "").strip()
    return v or None


def _parse_severity_weights(s: str | None) -> tuple[float, float, float, float] | None:
    if not s or not s.strip():
        return None
    parts = [p.strip() for p in s.split(",") if p.strip()]
    if len(parts) != 4:
        return None
    try:
        w = tuple(float(x) for x in parts)
    except ValueError:
        return None
    # Weights must keep severity order: critical >= high >= medium >= low
    if not (w[0] >= w[1] >= w[2] >= w[3]):
        return None
    return w


def load_config() -> TriageConfig:
    """Read TriageConfig from os.environ."""
    urgency_defaults = UrgencyWeights()
    sev = _parse_severity_weights(os.environ.get("TRIAGE_SEVERITY_WEIGHTS"))
    if sev is None:
        if os.environ.get("TRIAGE_SEVERITY_WEIGHTS"):
            logger.warning("TRIAGE_SEVERITY_WEIGHTS invalid; using defaults")
        sev = (urgency_defaults.critical, urgency_defaults.high, urgency_defaults.medium, urgency_defaults.low)
    urgency = UrgencyWeights(
        critical=sev[0],
        high=sev[1],
        medium=sev[2],
        low=sev[3],
        panic=_env_float("TRIAGE_PANIC_WEIGHT", urgency_defaults.panic, minimum=0.0),
        decay_per_hour=_env_float("TRIAGE_DECAY_PER_HOUR", urgency_defaults.decay_per_hour, minimum=0.0),
    )

    resync = _env_float("TRIAGE_RESYNC_SECONDS", 60.0, minimum=1.0)
    stale = _env_float("TRIAGE_STALE_AFTER_SECONDS", -1.0)
    lat = _env_float("TRIAGE_DEFAULT_LAT", DEFAULT_LAT)
    lng = _env_float("TRIAGE_DEFAULT_LNG", DEFAULT_LNG)
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        logger.warning("TRIAGE_DEFAULT_LAT/LNG out of range; using %s, %s", DEFAULT_LAT, DEFAULT_LNG)
        lat, lng = DEFAULT_LAT, DEFAULT_LNG

    return TriageConfig(
        geofence_km=_env_float("TRIAGE_GEOFENCE_KM", 10.0, minimum=0.0),
        spam_threshold=_env_int("TRIAGE_SPAM_THRESHOLD", 3, minimum=1),
        recent_window_minutes=_env_float("TRIAGE_RECENT_WINDOW_MINUTES", 60.0, minimum=1.0),
        resync_interval=resync,
        stale_after=stale if stale > 0 else None,
        action_timeout=_env_float("TRIAGE_ACTION_TIMEOUT", 5.0, minimum=0.1),
        urgency=urgency,
        default_coordinates=Coordinates(lat, lng),
        store_url=_env_str("STORE_URL"),
        store_api_key=_env_str("STORE_API_KEY"),
        store_table=_env_str("STORE_TABLE") or "incidents",
    )
