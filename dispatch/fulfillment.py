"""
Purpose: Orchestrator for the post-checkout order lifecycle (the "glue").
What it does:
Loads an order under its lock, checks the state machine, applies the change and
runs the side effects that belong to it:
- status history entry on every change
- one-time stock decrement when an order becomes delivered
- tracking channel opened on out_for_delivery, closed on delivered / cancelled
Also owns delivery-partner assignment (and who can be assigned) and the partner
dashboard queries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from drivers.models import DeliveryPartner
from orders.models import OrderStatus, StatusHistoryEntry, VendorOrder
from orders.store import OrderNotFound

from .state_machines.order_state import Actor, TrackingInfo, apply_transition, validate_transition
from .state_machines.partner_state import assign_partner
from .tracking import TrackingRegistry

logger = logging.getLogger(__name__)

# Orders a partner still has work on.
PARTNER_ACTIVE_STATUSES = [
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
]


class FulfillmentService:

    def __init__(self, orders, inventory, partners, tracking: Optional[TrackingRegistry] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.orders = orders
        self.inventory = inventory
        self.partners = partners
        self.tracking = tracking
        self.clock = clock or datetime.now

    def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        *,
        actor: Actor = Actor.VENDOR_ADMIN,
        partner_id: Optional[str] = None,
        note: Optional[str] = None,
        tracking_info: Optional[TrackingInfo] = None,
    ) -> VendorOrder:
        """
        Move an order to `new_status`. Raises TransitionError with no mutation
        when the state machine forbids it, OrderNotFound for an unknown id.

        The current status is re-read under the order lock, so two concurrent
        "delivered" calls cannot both pass the check and decrement stock twice.
        """
        new_status = OrderStatus(new_status)

        with self.orders.lock(order_id):
            order = self._load(order_id)
            validate_transition(order, new_status, actor, partner_id)

            previous = order.status
            now = self.clock()
            apply_transition(order, new_status, now, tracking_info)
            order = self.orders.save(order)

            self.orders.append_history(StatusHistoryEntry(
                order_id=order.id,
                vendor_id=order.vendor_id,
                status=new_status,
                note=note or self._default_note(actor),
                actor=actor.value,
                created_at=now,
            ))

            if new_status == OrderStatus.DELIVERED and previous != OrderStatus.DELIVERED:
                self._decrement_stock(order)

        logger.info("Order %s: %s -> %s by %s", order.order_number, previous.value, new_status.value, actor.value)
        self._sync_tracking(order)
        return order

    def assign_delivery_partner(self, order_id: str, partner_id: str) -> VendorOrder:
        """
        Set (or change) the order's delivery partner. Re-assigning the same
        partner is a no-op. Raises AssignmentError.
        """
        partner = self.partners.get(partner_id)

        with self.orders.lock(order_id):
            order = self._load(order_id)
            previous_partner = order.delivery_partner_id
            if not assign_partner(order, partner):
                return order

            order.updated_at = self.clock()
            order = self.orders.save(order)
            note = f"Assigned to delivery partner {partner.name or partner.id}"
            if previous_partner:
                note = f"Reassigned from {previous_partner} to delivery partner {partner.name or partner.id}"
            self.orders.append_history(StatusHistoryEntry(
                order_id=order.id,
                vendor_id=order.vendor_id,
                status=order.status,
                note=note,
                actor=Actor.VENDOR_ADMIN.value,
                created_at=order.updated_at,
            ))

        logger.info("Order %s assigned to partner %s", order.order_number, partner_id)
        if self.tracking is not None and order.status == OrderStatus.OUT_FOR_DELIVERY:
            self.tracking.start(order.id, partner_id)
        return order

    def assignable_partners(self, order_id: str) -> List[DeliveryPartner]:
        """
        Active partners of the order's vendor, i.e. who the vendor can pick from.
        """
        order = self._load(order_id)
        return self.partners.for_vendor(order.vendor_id)

    # --- Partner dashboard ---

    def partner_active_orders(self, partner_id: str) -> List[VendorOrder]:
        return self.orders.orders_for_partner(partner_id, PARTNER_ACTIVE_STATUSES)

    def partner_delivered_today(self, partner_id: str) -> int:
        start_of_day = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.orders.count_delivered_since(partner_id, start_of_day)

    # --- Internal helpers ---

    def _load(self, order_id: str) -> VendorOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    def _default_note(self, actor: Actor) -> str:
        if actor == Actor.DELIVERY_PARTNER:
            return "Updated by delivery partner"
        return "Updated by store"

    def _decrement_stock(self, order: VendorOrder) -> None:
        for item in order.items:
            remaining = self.inventory.decrement(item.product_id, item.quantity)
            logger.info("Stock for %s reduced by %d to %d (order %s)",
                        item.product_id, item.quantity, remaining, order.order_number)

    def _sync_tracking(self, order: VendorOrder) -> None:
        if self.tracking is None:
            return
        if order.status == OrderStatus.OUT_FOR_DELIVERY and order.delivery_partner_id:
            self.tracking.start(order.id, order.delivery_partner_id)
        elif order.is_terminal:
            self.tracking.stop(order.id)
