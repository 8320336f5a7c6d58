"""
Checkout domain package.

Public API:
- Models: CartLine, Address, VendorSettings, CheckoutRequest, PaymentChoice, DeliveryMethod, ShopType
- Cart: aggregate_cart, CartSummary, VendorPartition
- Shipping: resolve_zone, shipping_cost, quote_vendor_order, Zone
- Errors: CheckoutError, InvalidCheckoutState, ServiceAreaViolation

The orchestrator lives in checkout.engine (imports orders/payments, so it is not re-exported here).
"""
from .cart import CartSummary, VendorPartition, aggregate_cart
from .errors import CheckoutError, InvalidCheckoutState, ServiceAreaViolation
from .models import (
    Address,
    CartLine,
    CheckoutRequest,
    DeliveryMethod,
    PaymentChoice,
    ShopType,
    VendorSettings,
    to_money,
)
from .policy import CheckoutPolicy, default_policy
from .shipping import Zone, quote_vendor_order, resolve_zone, shipping_cost

__all__ = [
    "CartLine",
    "Address",
    "VendorSettings",
    "CheckoutRequest",
    "PaymentChoice",
    "DeliveryMethod",
    "ShopType",
    "to_money",
    "aggregate_cart",
    "CartSummary",
    "VendorPartition",
    "CheckoutError",
    "InvalidCheckoutState",
    "ServiceAreaViolation",
    "CheckoutPolicy",
    "default_policy",
    "Zone",
    "resolve_zone",
    "shipping_cost",
    "quote_vendor_order",
]
