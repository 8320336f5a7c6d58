"""
Purpose: Central configuration for checkout behavior (single source of truth).
What it does:

Stores the marketplace-wide defaults a vendor's own settings fall back to:

DEFAULT_SHIPPING_COST = 49 (used when a vendor has no settings record)

HOME_ZONE_STATES = Tamil Nadu spellings

HOME_ZONE_POSTAL_RANGE = 600000 - 643999

DEFAULT_DELIVERY_DAYS = 3 in-zone, 7 out-of-zone

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Tuple


@dataclass(frozen=True)
class CheckoutPolicy:
    """
    Central configuration for shipping and zone resolution.
    """

    # --- Shipping fallback ---
    # Flat cost charged when a vendor has no settings record at all.
    default_shipping_cost: Decimal = Decimal("49")

    # --- Zone resolution ---
    # State name is the canonical signal; compared case-insensitively with spaces removed.
    home_zone_states: Tuple[str, ...] = field(default_factory=lambda: ("tamilnadu", "tn"))
    # Postal code range is the fallback when the state name is blank.
    home_zone_postal_range: Tuple[int, int] = (600000, 643999)

    # --- SLA defaults (days) when the vendor leaves them empty ---
    default_delivery_days_in_zone: int = 3
    default_delivery_days_out_of_zone: int = 7

    currency: str = "INR"

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.default_shipping_cost < 0:
            raise ValueError("default_shipping_cost must be >= 0")

        low, high = self.home_zone_postal_range
        if low > high:
            raise ValueError("home_zone_postal_range must be (low, high)")

        if self.default_delivery_days_in_zone < 0 or self.default_delivery_days_out_of_zone < 0:
            raise ValueError("default delivery days must be >= 0")

        if not self.home_zone_states:
            raise ValueError("home_zone_states must not be empty")


def default_policy() -> CheckoutPolicy:
    """
    Convenience factory for the default policy.
    """
    p = CheckoutPolicy()
    p.validate()
    return p
