from datetime import date
from decimal import Decimal

import pytest

from dispatch.state_machines.order_state import Actor, TrackingInfo, TransitionError, next_partner_status
from dispatch.state_machines.partner_state import AssignmentError
from orders.models import OrderStatus, VendorOrder, generate_order_number
from orders.store import OrderNotFound

from .conftest import FIXED_NOW, line


@pytest.fixture
def placed_order(orders, inventory):
    inventory.set_stock("p1", 10)
    inventory.set_stock("p2", 1)
    order = VendorOrder.new(
        order_number=generate_order_number(FIXED_NOW),
        vendor_id="v1",
        customer_id="cust-1",
        lines=[line("v1", "p1", "100", 2), line("v1", "p2", "50", 3)],
        shipping_cost=Decimal("40"),
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )
    return orders.insert_order(order)


def advance(fulfillment, order_id, *statuses):
    for new_status in statuses:
        fulfillment.update_order_status(order_id, new_status)


def test_vendor_moves_order_forward_and_history_is_kept(fulfillment, placed_order, orders):
    order = fulfillment.update_order_status(placed_order.id, OrderStatus.CONFIRMED, note="Accepted")

    assert order.status == OrderStatus.CONFIRMED
    entries = orders.history(placed_order.id)
    assert entries[-1].status == OrderStatus.CONFIRMED
    assert entries[-1].note == "Accepted"
    assert entries[-1].actor == "vendor_admin"


def test_vendor_may_skip_ahead_but_not_go_back(fulfillment, placed_order):
    fulfillment.update_order_status(placed_order.id, OrderStatus.SHIPPED)

    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.CONFIRMED)


def test_shipped_and_delivered_timestamps_are_stamped_once(fulfillment, placed_order):
    shipped = fulfillment.update_order_status(placed_order.id, OrderStatus.SHIPPED)
    again = fulfillment.update_order_status(placed_order.id, OrderStatus.SHIPPED, note="Handed to courier")
    delivered = fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED)

    assert shipped.shipped_at == FIXED_NOW
    assert again.shipped_at == shipped.shipped_at
    assert delivered.delivered_at == FIXED_NOW


def test_delivered_is_terminal_and_stock_is_decremented_once(fulfillment, placed_order, inventory):
    """
    A second "delivered" call is rejected, so stock only drops once.
    p2 is floored at zero (1 in stock, 3 delivered).
    """
    fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED)

    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED)

    assert inventory.stock("p1") == 8
    assert inventory.stock("p2") == 0


def test_cancel_from_any_open_state_then_frozen(fulfillment, placed_order, inventory):
    advance(fulfillment, placed_order.id, OrderStatus.CONFIRMED, OrderStatus.PREPARING)

    cancelled = fulfillment.update_order_status(placed_order.id, OrderStatus.CANCELLED)

    assert cancelled.status == OrderStatus.CANCELLED
    assert inventory.stock("p1") == 10
    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.CONFIRMED)


def test_tracking_info_is_attached_by_vendor(fulfillment, placed_order):
    info = TrackingInfo(courier_service="DTDC", tracking_number="D123",
                        courier_tracking_url="https://track.example/D123",
                        estimated_delivery_date=date(2026, 10, 25))

    order = fulfillment.update_order_status(placed_order.id, OrderStatus.SHIPPED, tracking_info=info)

    assert order.courier_service == "DTDC"
    assert order.tracking_number == "D123"
    assert order.estimated_delivery_date == date(2026, 10, 25)


def test_partner_transitions_are_restricted(fulfillment, placed_order):
    fulfillment.assign_delivery_partner(placed_order.id, "p1")
    fulfillment.update_order_status(placed_order.id, OrderStatus.CONFIRMED)

    # 1. Partner cannot pick an arbitrary status
    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.SHIPPED, actor=Actor.DELIVERY_PARTNER,
                                        partner_id="p1")

    # 2. A different partner cannot touch the order
    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.OUT_FOR_DELIVERY,
                                        actor=Actor.DELIVERY_PARTNER, partner_id="p2")

    # 3. The assigned partner drives out_for_delivery -> delivered
    order = fulfillment.update_order_status(placed_order.id, OrderStatus.OUT_FOR_DELIVERY,
                                            actor=Actor.DELIVERY_PARTNER, partner_id="p1")
    assert next_partner_status(order) == OrderStatus.DELIVERED
    order = fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED,
                                            actor=Actor.DELIVERY_PARTNER, partner_id="p1")
    assert order.status == OrderStatus.DELIVERED


def test_partner_cannot_start_from_pending(fulfillment, placed_order):
    fulfillment.assign_delivery_partner(placed_order.id, "p1")

    with pytest.raises(TransitionError):
        fulfillment.update_order_status(placed_order.id, OrderStatus.OUT_FOR_DELIVERY,
                                        actor=Actor.DELIVERY_PARTNER, partner_id="p1")


def test_default_history_note_names_the_actor(fulfillment, placed_order, orders):
    fulfillment.assign_delivery_partner(placed_order.id, "p1")
    advance(fulfillment, placed_order.id, OrderStatus.READY_FOR_PICKUP)
    fulfillment.update_order_status(placed_order.id, OrderStatus.OUT_FOR_DELIVERY,
                                    actor=Actor.DELIVERY_PARTNER, partner_id="p1")

    notes = [entry.note for entry in orders.history(placed_order.id)]
    assert notes[-2:] == ["Updated by store", "Updated by delivery partner"]


def test_unknown_order(fulfillment):
    with pytest.raises(OrderNotFound):
        fulfillment.update_order_status("missing", OrderStatus.CONFIRMED)


# --- Partner assignment ---

def test_assignment_rules(fulfillment, placed_order):
    # 1. Unknown, inactive and other-vendor partners are refused
    for partner_id in ("ghost", "p-off", "p-other"):
        with pytest.raises(AssignmentError):
            fulfillment.assign_delivery_partner(placed_order.id, partner_id)

    # 2. Assign, then re-assign to someone else
    assert fulfillment.assign_delivery_partner(placed_order.id, "p1").delivery_partner_id == "p1"
    assert fulfillment.assign_delivery_partner(placed_order.id, "p2").delivery_partner_id == "p2"

    # 3. Terminal orders cannot be re-assigned
    fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED)
    with pytest.raises(AssignmentError):
        fulfillment.assign_delivery_partner(placed_order.id, "p1")


def test_assignable_partners_are_the_vendors_active_ones(fulfillment, placed_order):
    # p-off is inactive, p-other belongs to v2
    assert [p.id for p in fulfillment.assignable_partners(placed_order.id)] == ["p1", "p2"]

    with pytest.raises(OrderNotFound):
        fulfillment.assignable_partners("missing")


def test_reassigning_same_partner_is_a_no_op(fulfillment, placed_order, orders):
    fulfillment.assign_delivery_partner(placed_order.id, "p1")
    before = len(orders.history(placed_order.id))

    fulfillment.assign_delivery_partner(placed_order.id, "p1")

    assert len(orders.history(placed_order.id)) == before


def test_partner_dashboard(fulfillment, placed_order):
    fulfillment.assign_delivery_partner(placed_order.id, "p1")
    fulfillment.update_order_status(placed_order.id, OrderStatus.CONFIRMED)

    assert [o.id for o in fulfillment.partner_active_orders("p1")] == [placed_order.id]
    assert fulfillment.partner_delivered_today("p1") == 0

    fulfillment.update_order_status(placed_order.id, OrderStatus.DELIVERED)

    assert fulfillment.partner_active_orders("p1") == []
    assert fulfillment.partner_delivered_today("p1") == 1
