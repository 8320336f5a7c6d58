"""
Purpose: Domain models for the Checkout capability.
What it does:
- Defines the inputs of a checkout pass:
- CartLine (product, vendor, unit price snapshot, quantity)
- Address (delivery destination + optional map link)
- VendorSettings (shipping / payment / service-area / shop-type configuration)
- CheckoutRequest (what the customer submitted)

Defines enums/constants:
- PaymentChoice = cod | online
- DeliveryMethod = delivery | self_pickup
- ShopType = general | food

Rule: No gateway calls, no persistence. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from enum import Enum
from typing import Optional

from routing.geo import LatLon
from routing.geofence import ServiceArea

ZERO = Decimal("0")


def to_money(value) -> Decimal:
    """
    Normalize ints/floats/strings to a 2dp Decimal.
    Floats go through str() so 0.1 stays 0.1.
    """
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal("0.01"))


class PaymentChoice(str, Enum):
    COD = "cod"
    ONLINE = "online"


class DeliveryMethod(str, Enum):
    DELIVERY = "delivery"
    SELF_PICKUP = "self_pickup"


class ShopType(str, Enum):
    GENERAL = "general"
    FOOD = "food"


@dataclass(frozen=True)
class CartLine:
    """
    One product at a quantity in the customer's cart.
    unit_price / product_name / product_image are the catalog values at read time;
    they are copied onto the order line item when the order is written.
    """
    product_id: str
    vendor_id: str
    unit_price: Decimal
    quantity: int
    product_name: str = "Unknown Product"
    product_image: Optional[str] = None
    custom_weight: Optional[str] = None
    store_id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price) * self.quantity


@dataclass(frozen=True)
class Address:
    id: str
    full_name: str
    phone: str
    line1: str
    city: str
    state: str
    postal_code: str
    line2: Optional[str] = None
    location_link: Optional[str] = None


@dataclass(frozen=True)
class VendorSettings:
    """
    A vendor's fulfillment configuration.

    Defaults mirror what a freshly created store gets: COD only,
    no free-delivery threshold, no geofence, general shop.
    """
    vendor_id: str

    # --- Shipping ---
    shipping_cost_in_zone: Decimal = Decimal("40")
    shipping_cost_out_of_zone: Decimal = Decimal("80")
    # 0 disables the free-delivery override
    free_delivery_above: Decimal = ZERO
    delivery_days_in_zone: Optional[int] = None
    delivery_days_out_of_zone: Optional[int] = None

    # --- Payments ---
    cod_enabled: bool = True
    online_payment_enabled: bool = False
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    phonepe_enabled: bool = False
    phonepe_merchant_id: Optional[str] = None
    phonepe_salt_key: Optional[str] = None
    phonepe_salt_index: str = "1"

    # --- Service area / pickup ---
    service_area: ServiceArea = field(default_factory=ServiceArea)
    self_pickup_enabled: bool = False

    # --- Extra per-order charges ---
    shop_type: ShopType = ShopType.GENERAL
    cutting_charges: Decimal = ZERO
    extra_delivery_charges: Decimal = ZERO
    same_day_delivery_enabled: bool = False
    same_day_delivery_charge: Decimal = ZERO
    same_day_cutoff_time: Optional[time] = None

    @property
    def has_phonepe(self) -> bool:
        return bool(self.phonepe_enabled and self.phonepe_merchant_id and self.phonepe_salt_key)

    @property
    def has_razorpay(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @property
    def has_online_gateway(self) -> bool:
        return self.online_payment_enabled and (self.has_phonepe or self.has_razorpay)

    def validate(self) -> None:
        """
        Basic sanity checks. Stores call this when loading settings.
        """
        self.service_area.validate()

        if not self.cod_enabled and not self.has_online_gateway:
            raise ValueError(f"vendor {self.vendor_id} has no payment method enabled")

        for name in ("shipping_cost_in_zone", "shipping_cost_out_of_zone", "free_delivery_above",
                     "cutting_charges", "extra_delivery_charges", "same_day_delivery_charge"):
            if to_money(getattr(self, name)) < ZERO:
                raise ValueError(f"{name} must be >= 0")


@dataclass(frozen=True)
class CheckoutRequest:
    """
    One checkout submission. The cart itself is read server-side from the cart store.

    coordinate: the customer's captured location, if the client sent one.
    It wins over the address map link for the geofence check.
    """
    customer_id: str
    payment_method: PaymentChoice = PaymentChoice.COD
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    address_id: Optional[str] = None
    coordinate: Optional[LatLon] = None
    callback_url: Optional[str] = None
    idempotency_key: Optional[str] = None
    same_day: bool = False
    delivery_slot: Optional[str] = None
    notes: Optional[str] = None
