"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines core data structures:
- VendorOrder (one vendor's slice of a checkout: totals, status, payment, delivery)
- OrderLineItem (frozen product snapshot at order time)
- StatusHistoryEntry (append-only audit trail)
- TrackingPoint (one GPS fix for an order/partner pair)
- PaymentTransaction (one gateway attempt)

Defines enums/constants:
- OrderStatus = pending | confirmed | processing | preparing | ready_for_pickup | shipped | out_for_delivery | delivered | cancelled
- PaymentMethod = cod | razorpay | phonepe
- PaymentStatus = pending | paid | failed | refund_required

Rule: No gateway calls, no state machine logic. Models only.
"""
from __future__ import annotations

import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from checkout.models import ZERO, CartLine, DeliveryMethod, to_money


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Linear lifecycle; cancelled sits outside it.
STATUS_SEQUENCE: List[OrderStatus] = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class PaymentMethod(str, Enum):
    COD = "cod"
    RAZORPAY = "razorpay"
    PHONEPE = "phonepe"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUND_REQUIRED = "refund_required"


_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    """
    ORD-<millis-timestamp>-<9 uppercase alnum>. Unique on a best-effort basis.
    """
    now = now or datetime.now()
    rng = rng or random.SystemRandom()
    millis = int(now.timestamp() * 1000)
    suffix = "".join(rng.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{millis}-{suffix}"


@dataclass(frozen=True)
class OrderLineItem:
    """
    A line within a VendorOrder. Name, image and price are copied from the cart
    at order time so later catalog edits never rewrite history.
    """
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_image: Optional[str] = None
    custom_weight: Optional[str] = None

    @classmethod
    def snapshot(cls, line: CartLine) -> OrderLineItem:
        unit_price = to_money(line.unit_price)
        return cls(
            product_id=line.product_id,
            product_name=line.product_name or "Unknown Product",
            quantity=line.quantity,
            unit_price=unit_price,
            total_price=unit_price * line.quantity,
            product_image=line.product_image,
            custom_weight=line.custom_weight,
        )


@dataclass
class VendorOrder:
    """
    One vendor's slice of a checkout. Evolves independently through the
    status state machine until delivered or cancelled.
    """
    id: str
    order_number: str
    vendor_id: str
    customer_id: str
    items: List[OrderLineItem]

    subtotal: Decimal
    shipping_cost: Decimal
    extra_charges: Decimal
    total: Decimal

    payment_method: PaymentMethod = PaymentMethod.COD
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None

    status: OrderStatus = OrderStatus.PENDING
    address_id: Optional[str] = None
    store_id: Optional[str] = None
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    delivery_slot: Optional[str] = None
    estimated_delivery_date: Optional[date] = None
    notes: Optional[str] = None

    delivery_partner_id: Optional[str] = None
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    courier_tracking_url: Optional[str] = None

    collected_amount: Optional[Decimal] = None

    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @staticmethod # Factory method: build an unsaved order from priced cart lines
    def new(
        *,
        order_number: str,
        vendor_id: str,
        customer_id: str,
        lines: List[CartLine],
        shipping_cost: Decimal,
        extra_charges: Decimal = ZERO,
        payment_method: PaymentMethod = PaymentMethod.COD,
        **extra,
    ) -> VendorOrder:
        items = [OrderLineItem.snapshot(line) for line in lines]
        subtotal = sum((item.total_price for item in items), ZERO)
        shipping_cost = to_money(shipping_cost)
        extra_charges = to_money(extra_charges)
        store_id = extra.pop("store_id", None) or next((line.store_id for line in lines if line.store_id), None)
        return VendorOrder(
            id=str(uuid.uuid4()),
            order_number=order_number,
            vendor_id=vendor_id,
            customer_id=customer_id,
            items=items,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            extra_charges=extra_charges,
            total=subtotal + shipping_cost + extra_charges,
            payment_method=payment_method,
            store_id=store_id,
            **extra,
        )


@dataclass(frozen=True)
class StatusHistoryEntry:
    order_id: str
    vendor_id: str
    status: OrderStatus
    note: Optional[str] = None
    actor: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TrackingPoint:
    order_id: str
    partner_id: str
    lat: float
    lon: float
    recorded_at: datetime


@dataclass
class PaymentTransaction:
    """
    One gateway attempt. amount always equals the total of the order it pays for.
    order_id stays None while a redirect payment is pending.
    """
    gateway: PaymentMethod
    external_id: str
    amount: Decimal
    vendor_id: str
    order_number: str
    order_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    verified: bool = False
    status: PaymentStatus = PaymentStatus.PENDING
    gateway_payment_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
