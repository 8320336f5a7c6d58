#Marks routing as a package.
#Re-exports the geo helpers so other modules import from routing without knowing internal file names.
#No business logic.

from .geo import LatLon, distance_km
from .geofence import (
    ServiceArea,
    ServiceAreaResult,
    ServiceAreaStatus,
    check_service_area,
    parse_coordinates,
)

__all__ = [
    "LatLon",
    "distance_km",
    "ServiceArea",
    "ServiceAreaResult",
    "ServiceAreaStatus",
    "check_service_area",
    "parse_coordinates",
]
