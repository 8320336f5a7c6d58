"""
Purpose: Shipping cost, extra charges and delivery-date estimation for one vendor order.
What it does:

- resolve_zone: classify the delivery address as in-zone / out-of-zone
  (state name first, postal range as fallback)
- shipping_cost: zone cost with the free-delivery override and self-pickup short-circuit
- extra_charges: flat per-order charges (food cutting charges, delivery extras, same-day)
- quote_vendor_order: everything above for one vendor partition, resolved once per order

Rule: pure functions. No persistence, no gateway calls.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from .models import ZERO, Address, DeliveryMethod, ShopType, VendorSettings, to_money
from .policy import CheckoutPolicy, default_policy

logger = logging.getLogger(__name__)


class Zone(str, Enum):
    IN_ZONE = "in_zone"
    OUT_OF_ZONE = "out_of_zone"


def _normalize_state(state: Optional[str]) -> str:
    return re.sub(r"[^a-z]", "", (state or "").lower())


def _postal_in_range(postal_code: Optional[str], policy: CheckoutPolicy) -> Optional[bool]:
    digits = re.sub(r"\D", "", postal_code or "")
    if not digits:
        return None
    low, high = policy.home_zone_postal_range
    return low <= int(digits) <= high


def resolve_zone(address: Address, policy: Optional[CheckoutPolicy] = None) -> Zone:
    """
    Classify a delivery address.

    The state name is canonical. The postal-code range only decides when the
    state is blank. When both are present and disagree the state wins and the
    disagreement is logged so it can be reviewed.
    """
    policy = policy or default_policy()

    state = _normalize_state(address.state)
    by_postal = _postal_in_range(address.postal_code, policy)

    if not state:
        return Zone.IN_ZONE if by_postal else Zone.OUT_OF_ZONE

    by_state = state in policy.home_zone_states
    if by_postal is not None and by_postal != by_state:
        logger.warning(
            "Zone mismatch for address %s: state=%r says %s, postal=%r says %s; using state",
            address.id, address.state, "in" if by_state else "out",
            address.postal_code, "in" if by_postal else "out",
        )
    return Zone.IN_ZONE if by_state else Zone.OUT_OF_ZONE


def shipping_cost(
    zone: Optional[Zone],
    subtotal: Decimal,
    settings: Optional[VendorSettings],
    *,
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY,
    policy: Optional[CheckoutPolicy] = None,
) -> Decimal:
    """
    Shipping cost for one vendor order.

    - self pickup -> 0, zone not evaluated
    - free_delivery_above > 0 and subtotal >= threshold -> 0 (inclusive)
    - no vendor settings -> policy.default_shipping_cost
    - otherwise the vendor's in-zone / out-of-zone cost
    """
    policy = policy or default_policy()

    if delivery_method == DeliveryMethod.SELF_PICKUP:
        return ZERO

    subtotal = to_money(subtotal)

    if settings is None:
        return to_money(policy.default_shipping_cost)

    threshold = to_money(settings.free_delivery_above)
    if threshold > ZERO and subtotal >= threshold:
        return ZERO

    if zone == Zone.IN_ZONE:
        return to_money(settings.shipping_cost_in_zone)
    return to_money(settings.shipping_cost_out_of_zone)


def same_day_applies(settings: Optional[VendorSettings], requested: bool, now: datetime) -> bool:
    if not requested or settings is None or not settings.same_day_delivery_enabled:
        return False
    cutoff = settings.same_day_cutoff_time
    return cutoff is None or now.time() <= cutoff


def extra_charges(
    settings: Optional[VendorSettings],
    *,
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY,
    same_day: bool = False,
) -> Decimal:
    """
    Flat per-order charges on top of shipping.
    Cutting charges apply to food vendors; delivery extras and same-day only when delivering.
    """
    if settings is None:
        return ZERO

    total = ZERO
    if settings.shop_type == ShopType.FOOD:
        total += to_money(settings.cutting_charges)
    if delivery_method == DeliveryMethod.DELIVERY:
        total += to_money(settings.extra_delivery_charges)
        if same_day:
            total += to_money(settings.same_day_delivery_charge)
    return total


def estimate_delivery_date(
    zone: Optional[Zone],
    settings: Optional[VendorSettings],
    now: datetime,
    *,
    same_day: bool = False,
    policy: Optional[CheckoutPolicy] = None,
) -> date:
    policy = policy or default_policy()

    if same_day:
        return now.date()

    if zone == Zone.OUT_OF_ZONE:
        days = settings.delivery_days_out_of_zone if settings else None
        if days is None:
            days = policy.default_delivery_days_out_of_zone
    else:
        days = settings.delivery_days_in_zone if settings else None
        if days is None:
            days = policy.default_delivery_days_in_zone
    return (now + timedelta(days=days)).date()


@dataclass(frozen=True)
class VendorQuote:
    """
    Priced slice of a checkout for one vendor. total = subtotal + shipping + extra.
    """
    vendor_id: str
    zone: Optional[Zone]
    subtotal: Decimal
    shipping_cost: Decimal
    extra_charges: Decimal
    estimated_delivery_date: Optional[date]
    same_day: bool = False

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.shipping_cost + self.extra_charges


def quote_vendor_order(
    vendor_id: str,
    subtotal: Decimal,
    settings: Optional[VendorSettings],
    address: Optional[Address],
    *,
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY,
    same_day_requested: bool = False,
    now: Optional[datetime] = None,
    policy: Optional[CheckoutPolicy] = None,
) -> VendorQuote:
    """
    Price one vendor partition. The zone is resolved once here, from the single
    selected address, and reused for cost and SLA.
    """
    policy = policy or default_policy()
    now = now or datetime.now()

    pickup = delivery_method == DeliveryMethod.SELF_PICKUP
    zone = None if pickup or address is None else resolve_zone(address, policy)
    same_day = not pickup and same_day_applies(settings, same_day_requested, now)

    return VendorQuote(
        vendor_id=vendor_id,
        zone=zone,
        subtotal=to_money(subtotal),
        shipping_cost=shipping_cost(zone, subtotal, settings, delivery_method=delivery_method, policy=policy),
        extra_charges=extra_charges(settings, delivery_method=delivery_method, same_day=same_day),
        estimated_delivery_date=None if pickup else estimate_delivery_date(
            zone, settings, now, same_day=same_day, policy=policy
        ),
        same_day=same_day,
    )
