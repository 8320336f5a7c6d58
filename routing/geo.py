#Purpose: Great-circle distance between two coordinates.
#Pure math, no I/O. Used by the service-area geofence only.

import math
from typing import Tuple

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0


def distance_km(a: LatLon, b: LatLon) -> float:
    """
    Haversine distance in kilometres between two (lat, lon) points.

    Symmetric, and distance_km(a, a) == 0.
    """
    lat1, lon1 = a
    lat2, lon2 = b

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    #clamp: floating error can push h a hair above 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))
