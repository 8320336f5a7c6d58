import random
import re
from decimal import Decimal

import pytest

from drivers.models import DeliveryPartner
from drivers.selection import filter_eligible_partners
from orders.models import VendorOrder, generate_order_number
from orders.store import OrderWriteError

from .conftest import FIXED_NOW, line


def make_order(number="ORD-1"):
    return VendorOrder.new(order_number=number, vendor_id="v1", customer_id="cust-1",
                           lines=[line("v1", "p1", "10", 2)], shipping_cost=Decimal("5"))


def test_order_number_format():
    number = generate_order_number(FIXED_NOW, random.Random(7))

    assert re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{9}", number)
    assert number.startswith(f"ORD-{int(FIXED_NOW.timestamp() * 1000)}-")


def test_new_order_totals():
    order = make_order()

    assert order.subtotal == Decimal("20.00")
    assert order.total == Decimal("25.00")


def test_duplicate_order_number_is_rejected(orders):
    orders.insert_order(make_order("ORD-1"))

    with pytest.raises(OrderWriteError):
        orders.insert_order(make_order("ORD-1"))


def test_stored_orders_are_copies(orders):
    saved = orders.insert_order(make_order())
    saved.notes = "changed outside the store"

    assert orders.get(saved.id).notes is None


def test_filter_eligible_partners():
    partners = [
        DeliveryPartner.new("a", "v1", "u1"),
        DeliveryPartner.new("b", "v1", "u2", is_active=False),
        DeliveryPartner.new("c", "v2", "u3"),
    ]

    assert [p.id for p in filter_eligible_partners(partners, "v1")] == ["a"]
