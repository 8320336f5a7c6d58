#Purpose: Vendor service-area geofencing.
#Decides whether a customer coordinate falls inside a vendor's delivery radius.
#Typical responsibilities:
#Parse a free-text map link (Google Maps share links, "lat,lon" text) into (lat, lon)
#Compare haversine distance to the vendor radius
#Never block checkout on missing data: no service area or no coordinate -> not restricted
#Output: a ServiceAreaResult the checkout engine can turn into per-vendor errors.

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .geo import LatLon, distance_km

# Patterns seen in shared map links, most specific first.
_COORDINATE_PATTERNS = [
    re.compile(r"!3d(-?\d+(?:\.\d+)?)!4d(-?\d+(?:\.\d+)?)"),
    re.compile(r"@(-?\d+(?:\.\d+)?),\s*(-?\d+(?:\.\d+)?)"),
    re.compile(r"[?&](?:q|query|ll|destination|daddr)=(-?\d+(?:\.\d+)?)(?:,|%2C)\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE),
    re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$"),
]


class ServiceAreaStatus(str, Enum):
    NOT_RESTRICTED = "not_restricted"
    IN_RANGE = "in_range"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class ServiceArea:
    """
    A vendor's optional delivery geofence (center + radius).
    """
    enabled: bool = False
    center: Optional[LatLon] = None
    radius_km: float = 0.0

    def validate(self) -> None:
        if not self.enabled:
            return
        if self.center is None:
            raise ValueError("service area center must be set when the service area is enabled")
        if self.radius_km <= 0:
            raise ValueError("service area radius_km must be > 0 when enabled")


@dataclass(frozen=True)
class ServiceAreaResult:
    status: ServiceAreaStatus
    distance_km: Optional[float] = None
    radius_km: Optional[float] = None

    @property
    def allowed(self) -> bool:
        return self.status != ServiceAreaStatus.OUT_OF_RANGE


NOT_RESTRICTED = ServiceAreaResult(ServiceAreaStatus.NOT_RESTRICTED)


def parse_coordinates(location_link: Optional[str]) -> Optional[LatLon]:
    """
    Extract (lat, lon) from a map link or plain "lat,lon" text.
    Returns None when nothing usable is found.
    """
    if not location_link:
        return None

    for pattern in _COORDINATE_PATTERNS:
        match = pattern.search(location_link)
        if not match:
            continue
        lat, lon = float(match.group(1)), float(match.group(2))
        #reject anything that is not a real coordinate
        if -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0:
            return (lat, lon)
    return None


def check_service_area(area: Optional[ServiceArea], customer: Optional[LatLon]) -> ServiceAreaResult:
    """
    Geofence check for one vendor.

    Args:
        area: the vendor's service area (None or disabled -> no restriction)
        customer: customer coordinate, already parsed (None -> no restriction)

    Returns:
        ServiceAreaResult with status, distance and radius when evaluated.
    """
    if area is None or not area.enabled or area.center is None or area.radius_km <= 0:
        return NOT_RESTRICTED
    if customer is None:
        return NOT_RESTRICTED

    distance = distance_km(area.center, customer)
    if distance > area.radius_km:
        return ServiceAreaResult(ServiceAreaStatus.OUT_OF_RANGE, distance, area.radius_km)
    return ServiceAreaResult(ServiceAreaStatus.IN_RANGE, distance, area.radius_km)
