from typing import Optional

from drivers.models import DeliveryPartner
from orders.models import VendorOrder


class AssignmentError(Exception):
    """Raised when an invalid partner assignment is attempted."""
    pass


def assign_partner(order: VendorOrder, partner: Optional[DeliveryPartner]) -> bool:
    """
    Point the order at `partner`. Returns False when it was already assigned
    to that partner (nothing changed), True otherwise.
    Reassignment is allowed until the order is delivered or cancelled.
    """
    if partner is None:
        raise AssignmentError("Delivery partner not found")

    if order.is_terminal:
        raise AssignmentError(f"Order {order.order_number} is already {order.status.value}")

    if partner.vendor_id != order.vendor_id:
        raise AssignmentError(f"Partner {partner.id} does not deliver for vendor {order.vendor_id}")

    if not partner.is_active:
        raise AssignmentError(f"Partner {partner.id} is inactive")

    if order.delivery_partner_id == partner.id:
        return False

    order.delivery_partner_id = partner.id
    return True
