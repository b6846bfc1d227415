"""Observer-to-incident distance and the geofence test."""

import math
from typing import Optional

from core.models import Coordinates, Incident

# Mean Earth radius in km
EARTH_RADIUS_KM = 6371.0
DEFAULT_GEOFENCE_KM = 10.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two (lat, lng) points."""
    a = math.radians(lat2 - lat1)
    b = math.radians(lng2 - lng1)
    x = math.sin(a / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(b / 2) ** 2
    c = 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))
    return EARTH_RADIUS_KM * c


def distance_km(observer: Optional[Coordinates], incident: Incident) -> Optional[float]:
    """None when the observer position is unknown (not zero, not infinity)."""
    if observer is None:
        return None
    here, there = observer, incident.coordinates
    if not all(math.isfinite(v) for v in (here.lat, here.lng, there.lat, there.lng)):
        return None
    return haversine_km(here.lat, here.lng, there.lat, there.lng)


def is_geofenced(dist_km: Optional[float], radius_km: float = DEFAULT_GEOFENCE_KM) -> bool:
    return dist_km is not None and dist_km <= radius_km
