"""
Purpose: Wire the domain services to the ORM-backed stores.
Views call these builders instead of constructing collaborators themselves.
"""

from typing import Dict, Optional

from django.conf import settings
from django.utils import timezone

from checkout.cart import aggregate_cart
from checkout.engine import OrderOrchestrator
from checkout.errors import InvalidCheckoutState
from checkout.models import DeliveryMethod, PaymentChoice
from checkout.policy import default_policy
from checkout.shipping import quote_vendor_order
from dispatch.cod import CODReconciler
from dispatch.fulfillment import FulfillmentService
from dispatch.tracking import TrackingIngest, TrackingRegistry
from orders.models import PaymentMethod
from payments.gateway import GatewayOrder, PaymentConfirmation
from payments.router import PaymentRouter, PrecollectedPayments, default_gateway_factory, select_payment_method

from .repositories import (
    DjangoAddressBook,
    DjangoCartStore,
    DjangoInventory,
    DjangoOrderStore,
    DjangoPartnerRoster,
    DjangoSessionStore,
    DjangoVendorDirectory,
)

# Open tracking channels live for the lifetime of the worker process.
_tracking_registry: Optional[TrackingRegistry] = None


def tracking_registry() -> TrackingRegistry:
    global _tracking_registry
    if _tracking_registry is None:
        _tracking_registry = TrackingRegistry(TrackingIngest(DjangoOrderStore(), clock=timezone.localtime))
    return _tracking_registry


def build_orchestrator(confirmations: Optional[Dict[str, PaymentConfirmation]] = None) -> OrderOrchestrator:
    policy = default_policy()
    router = PaymentRouter(collector=PrecollectedPayments(confirmations), currency=policy.currency)
    return OrderOrchestrator(
        carts=DjangoCartStore(),
        addresses=DjangoAddressBook(),
        vendors=DjangoVendorDirectory(),
        orders=DjangoOrderStore(),
        sessions=DjangoSessionStore(),
        payment_router=router,
        policy=policy,
        clock=timezone.localtime,
    )


def build_fulfillment() -> FulfillmentService:
    return FulfillmentService(
        orders=DjangoOrderStore(),
        inventory=DjangoInventory(),
        partners=DjangoPartnerRoster(),
        tracking=tracking_registry(),
        clock=timezone.localtime,
    )


def build_cod_reconciler() -> CODReconciler:
    return CODReconciler(DjangoOrderStore(), clock=timezone.localtime)


def checkout_callback_url() -> Optional[str]:
    return getattr(settings, 'CHECKOUT_CALLBACK_URL', None)


def open_razorpay_order(customer_id: str, vendor_id: str, *, address_id: Optional[str] = None,
                        delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY,
                        same_day: bool = False) -> GatewayOrder:
    """
    Create the Razorpay order the client modal pays into, for one vendor's
    share of the current cart. The confirmation it produces is submitted with
    the checkout request.
    """
    summary = aggregate_cart(DjangoCartStore().lines(customer_id))
    try:
        partition = summary.partition(vendor_id)
    except KeyError:
        raise InvalidCheckoutState(f"No items from vendor {vendor_id} in the cart")

    vendor = DjangoVendorDirectory().get(vendor_id)
    if select_payment_method(vendor, PaymentChoice.ONLINE) != PaymentMethod.RAZORPAY:
        raise InvalidCheckoutState(f"Vendor {vendor_id} does not take Razorpay payments")

    policy = default_policy()
    address = DjangoAddressBook().get(customer_id, address_id) if address_id else None
    quote = quote_vendor_order(
        vendor_id,
        partition.subtotal,
        vendor,
        address,
        delivery_method=delivery_method,
        same_day_requested=same_day,
        now=timezone.localtime(),
        policy=policy,
    )
    gateway = default_gateway_factory(PaymentMethod.RAZORPAY, vendor)
    receipt = f"cart-{customer_id}-{vendor_id}"
    return gateway.create_order(quote.total, policy.currency, vendor_id, receipt)
