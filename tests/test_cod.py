import re
from decimal import Decimal

import pytest

from dispatch.cod import CODCollectionError, CODReconciler
from orders.models import OrderStatus, PaymentMethod, PaymentStatus, VendorOrder, generate_order_number
from orders.store import OrderNotFound

from .conftest import FIXED_NOW, line


@pytest.fixture
def reconciler(orders, clock):
    return CODReconciler(orders, clock=clock)


def place(orders, payment_method=PaymentMethod.COD, **extra):
    return orders.insert_order(VendorOrder.new(
        order_number=generate_order_number(FIXED_NOW),
        vendor_id="v1",
        customer_id="cust-1",
        lines=[line("v1", "p1", "450")],
        shipping_cost=Decimal("40"),
        payment_method=payment_method,
        **extra,
    ))


def test_collect_cod_marks_order_paid(reconciler, orders):
    order = place(orders)

    updated = reconciler.collect_cod(order.id, "490")

    assert updated.payment_status == PaymentStatus.PAID
    assert updated.collected_amount == Decimal("490.00")
    assert re.fullmatch(r"COD-\d+-[A-Z0-9]{6}", updated.payment_id)
    assert orders.history(order.id)[-1].note == "Cash collected: Rs. 490.00"


def test_collected_amount_may_differ_from_total(reconciler, orders, caplog):
    order = place(orders)

    with caplog.at_level("INFO"):
        updated = reconciler.collect_cod(order.id, Decimal("500"))

    assert updated.collected_amount == Decimal("500.00")
    assert updated.total == Decimal("490.00")
    assert "difference 10.00" in caplog.text


def test_collect_cod_rejections(reconciler, orders):
    # 1. Online orders are not cash orders
    with pytest.raises(CODCollectionError):
        reconciler.collect_cod(place(orders, payment_method=PaymentMethod.RAZORPAY).id, "490")

    # 2. Cancelled orders
    with pytest.raises(CODCollectionError):
        reconciler.collect_cod(place(orders, status=OrderStatus.CANCELLED).id, "490")

    # 3. Negative amounts
    with pytest.raises(CODCollectionError):
        reconciler.collect_cod(place(orders).id, "-1")

    # 4. Cash already collected
    order = place(orders)
    reconciler.collect_cod(order.id, "490")
    with pytest.raises(CODCollectionError):
        reconciler.collect_cod(order.id, "490")

    # 5. Unknown order
    with pytest.raises(OrderNotFound):
        reconciler.collect_cod("missing", "10")
