from dataclasses import dataclass
from typing import List, Optional


class CheckoutError(Exception):
    """Base class for failures that reject a whole checkout pass."""
    pass


class InvalidCheckoutState(CheckoutError):
    """No address / empty cart / unsupported delivery method. Raised before any write."""
    pass


@dataclass(frozen=True)
class ServiceAreaViolationDetail:
    vendor_id: str
    distance_km: float
    radius_km: float


class ServiceAreaViolation(CheckoutError):
    """
    One or more vendors cannot deliver to the selected location.
    Raised before any order is written; lists every offending vendor.
    """

    def __init__(self, violations: List[ServiceAreaViolationDetail], message: Optional[str] = None):
        self.violations = violations
        if message is None:
            parts = [
                f"{v.vendor_id} ({v.distance_km:.1f} km > {v.radius_km:.1f} km)"
                for v in violations
            ]
            message = "Delivery address is outside the service area of: " + ", ".join(parts)
        super().__init__(message)

    @property
    def vendor_ids(self) -> List[str]:
        return [v.vendor_id for v in self.violations]
