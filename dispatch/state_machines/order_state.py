from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from orders.models import STATUS_SEQUENCE, OrderStatus, VendorOrder


class TransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class Actor(str, Enum):
    VENDOR_ADMIN = "vendor_admin"
    DELIVERY_PARTNER = "delivery_partner"
    SYSTEM = "system"


# The only moves a delivery partner may drive, on orders assigned to them.
PARTNER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.CONFIRMED: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.READY_FOR_PICKUP: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
}


@dataclass(frozen=True)
class TrackingInfo:
    """Courier details a vendor admin can attach with any status change."""
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    courier_tracking_url: Optional[str] = None
    estimated_delivery_date: Optional[date] = None


def status_rank(status: OrderStatus) -> int:
    return STATUS_SEQUENCE.index(status)


def next_partner_status(order: VendorOrder) -> Optional[OrderStatus]:
    """
    The single next step a partner's app should offer for this order, if any.
    """
    allowed = PARTNER_TRANSITIONS.get(order.status)
    if not allowed:
        return None
    return next(iter(allowed))


def validate_transition(
    order: VendorOrder,
    new_status: OrderStatus,
    actor: Actor,
    partner_id: Optional[str] = None,
) -> None:
    """
    Raise TransitionError unless `actor` may move `order` to `new_status`.

    - terminal orders (delivered / cancelled) never move again
    - vendor admins may set any status at or after the current one, or cancel
    - delivery partners only drive PARTNER_TRANSITIONS, on their own orders
    """
    if order.is_terminal:
        raise TransitionError(f"Order {order.order_number} is already {order.status.value}")

    if actor == Actor.DELIVERY_PARTNER:
        if partner_id is None or order.delivery_partner_id != partner_id:
            raise TransitionError(f"Order {order.order_number} is not assigned to partner {partner_id}")
        if new_status not in PARTNER_TRANSITIONS.get(order.status, frozenset()):
            raise TransitionError(
                f"Delivery partner cannot move order {order.order_number} from {order.status.value} to {new_status.value}"
            )
        return

    if new_status == OrderStatus.CANCELLED:
        return

    if status_rank(new_status) < status_rank(order.status):
        raise TransitionError(
            f"Cannot move order {order.order_number} back from {order.status.value} to {new_status.value}"
        )


def apply_transition(
    order: VendorOrder,
    new_status: OrderStatus,
    now: datetime,
    tracking: Optional[TrackingInfo] = None,
) -> VendorOrder:
    """
    Mutate the order into `new_status`. Call validate_transition first.
    shipped_at / delivered_at are stamped once and never overwritten.
    """
    order.status = new_status
    order.updated_at = now

    if new_status == OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    if new_status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now

    if tracking is not None:
        if tracking.courier_service is not None:
            order.courier_service = tracking.courier_service
        if tracking.tracking_number is not None:
            order.tracking_number = tracking.tracking_number
        if tracking.courier_tracking_url is not None:
            order.courier_tracking_url = tracking.courier_tracking_url
        if tracking.estimated_delivery_date is not None:
            order.estimated_delivery_date = tracking.estimated_delivery_date
    return order
