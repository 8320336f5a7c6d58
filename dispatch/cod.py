"""
Purpose: Cash-on-delivery reconciliation.
What it does:
Records the cash a partner or admin collected against a COD order, gives it a
local payment reference and marks it paid. Independent of status changes; the
amount is not required to match the order total (cash gets rounded).
"""

import logging
import random
import string
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from checkout.models import ZERO, to_money
from orders.models import OrderStatus, PaymentMethod, PaymentStatus, StatusHistoryEntry, VendorOrder
from orders.store import OrderNotFound

from .state_machines.order_state import Actor

logger = logging.getLogger(__name__)


class CODCollectionError(Exception):
    """Raised when cash cannot be recorded against an order."""
    pass


def cod_reference(now: datetime) -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"COD-{int(now.timestamp() * 1000)}-{suffix}"


class CODReconciler:

    def __init__(self, orders, clock: Optional[Callable[[], datetime]] = None):
        self.orders = orders
        self.clock = clock or datetime.now

    def collect_cod(self, order_id: str, amount_collected, *, actor: Actor = Actor.DELIVERY_PARTNER,
                    note: Optional[str] = None) -> VendorOrder:
        amount: Decimal = to_money(amount_collected)
        if amount < ZERO:
            raise CODCollectionError("Collected amount cannot be negative")

        with self.orders.lock(order_id):
            order = self.orders.get(order_id)
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found")
            if order.payment_method != PaymentMethod.COD:
                raise CODCollectionError(f"Order {order.order_number} is not a cash-on-delivery order")
            if order.status == OrderStatus.CANCELLED:
                raise CODCollectionError(f"Order {order.order_number} is cancelled")
            if order.payment_status == PaymentStatus.PAID:
                raise CODCollectionError(f"Cash for order {order.order_number} was already collected")

            now = self.clock()
            order.collected_amount = amount
            order.payment_id = cod_reference(now)
            order.payment_status = PaymentStatus.PAID
            order.updated_at = now
            order = self.orders.save(order)

            self.orders.append_history(StatusHistoryEntry(
                order_id=order.id,
                vendor_id=order.vendor_id,
                status=order.status,
                note=note or f"Cash collected: Rs. {amount}",
                actor=actor.value,
                created_at=now,
            ))

        if amount != order.total:
            logger.info("COD for %s collected %s against total %s (difference %s)",
                        order.order_number, amount, order.total, amount - order.total)
        else:
            logger.info("COD for %s collected in full (%s)", order.order_number, amount)
        return order
