"""
Geo helpers: haversine distance, pickup ETA and zone containment.
"""
import math
from decimal import Decimal
from typing import Optional, Sequence, Tuple, Union

Number = Union[float, Decimal, None]

# Average speed for ETA (km/h). Overridden by settings.DELIVERY_AVG_SPEED_KMH.
DEFAULT_AVG_SPEED_KMH = 25
EARTH_RADIUS_KM = 6371


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km between two (lat, lon) points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def eta_minutes(distance_km: float, avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH) -> int:
    if distance_km <= 0 or avg_speed_kmh <= 0:
        return 0
    return int(round(distance_km / avg_speed_kmh * 60))


def compute_distance_eta(
    from_lat: Number, from_lon: Number,
    to_lat: Number, to_lon: Number,
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
) -> Tuple[Optional[float], Optional[int]]:
    """
    Return (distance_km, eta_minutes) between two points, or (None, None)
    when any coordinate is missing.
    """
    if from_lat is None or from_lon is None or to_lat is None or to_lon is None:
        return None, None
    dist = haversine_km(float(from_lat), float(from_lon), float(to_lat), float(to_lon))
    return round(dist, 2), eta_minutes(dist, avg_speed_kmh)


def point_in_polygon(lat: Number, lng: Number, boundary: Sequence[Sequence[float]]) -> bool:
    """
    Ray-casting containment test. ``boundary`` holds [lng, lat] pairs (GeoJSON
    order). Missing coordinates or a degenerate ring never match.
    """
    if lat is None or lng is None or not boundary or len(boundary) < 3:
        return False
    x, y = float(lng), float(lat)
    inside = False
    n = len(boundary)
    j = n - 1
    for i in range(n):
        xi, yi = float(boundary[i][0]), float(boundary[i][1])
        xj, yj = float(boundary[j][0]), float(boundary[j][1])
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside
