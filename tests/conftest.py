import itertools
from datetime import datetime
from decimal import Decimal

import pytest

from checkout.engine import OrderOrchestrator
from checkout.models import Address, CartLine, VendorSettings
from checkout.session import InMemorySessionStore
from checkout.stores import InMemoryAddressBook, InMemoryCartStore, InMemoryInventory, InMemoryVendorDirectory
from dispatch.fulfillment import FulfillmentService
from dispatch.tracking import TrackingIngest, TrackingRegistry
from drivers.models import DeliveryPartner
from drivers.selection import InMemoryPartnerRoster
from orders.models import PaymentMethod
from orders.store import OrderStore
from payments.gateway import (
    GatewayOrder,
    PaymentVerificationFailure,
    RedirectGateway,
    RedirectSession,
    RedirectStatus,
    SyncVerifyGateway,
    to_minor_units,
)
from payments.router import PaymentRouter, PrecollectedPayments

FIXED_NOW = datetime(2026, 10, 19, 10, 30)


class FakeRazorpay(SyncVerifyGateway):
    name = "razorpay"

    def __init__(self, valid_signatures=True):
        self.valid_signatures = valid_signatures
        self.created = []
        self.orders = {}

    def create_order(self, amount, currency, vendor_id, receipt):
        self.created.append((amount, currency, vendor_id, receipt))
        gateway_order = GatewayOrder(order_id=f"order_{len(self.created)}", key_id="rzp_test",
                                     amount_minor=to_minor_units(amount), currency=currency)
        self.orders[gateway_order.order_id] = gateway_order
        return gateway_order

    def verify_payment(self, order_id, payment_id, signature):
        return self.valid_signatures and signature == "good"

    def fetch_order(self, order_id):
        if order_id not in self.orders:
            raise PaymentVerificationFailure(f"Unknown gateway order {order_id}")
        return self.orders[order_id]


class FakePhonePe(RedirectGateway):
    name = "phonepe"

    def __init__(self):
        self._ids = itertools.count(1)
        self.initiated = []
        # merchant_transaction_id -> verified
        self.outcomes = {}

    def initiate(self, amount, vendor_id, order_context, callback_url):
        mtid = f"MT{next(self._ids)}"
        self.initiated.append((amount, vendor_id, order_context, callback_url))
        return RedirectSession(redirect_url=f"https://pay.example/{mtid}", merchant_transaction_id=mtid)

    def check_status(self, merchant_transaction_id):
        verified = self.outcomes.get(merchant_transaction_id, True)
        return RedirectStatus(
            verified=verified,
            transaction_id=f"T-{merchant_transaction_id}" if verified else None,
            code="PAYMENT_SUCCESS" if verified else "PAYMENT_ERROR",
            message=None if verified else "Payment declined",
        )


def tamil_nadu_address(address_id="addr-1", location_link=None):
    return Address(
        id=address_id,
        full_name="Priya",
        phone="+919876543210",
        line1="12 Anna Salai",
        city="Chennai",
        state="Tamil Nadu",
        postal_code="600002",
        location_link=location_link,
    )


def line(vendor_id, product_id, price, quantity=1, **extra):
    return CartLine(product_id=product_id, vendor_id=vendor_id, unit_price=Decimal(str(price)), quantity=quantity,
                    product_name=f"Product {product_id}", **extra)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def carts():
    return InMemoryCartStore()


@pytest.fixture
def addresses():
    book = InMemoryAddressBook()
    book.add("cust-1", tamil_nadu_address())
    return book


@pytest.fixture
def vendors():
    directory = InMemoryVendorDirectory()
    directory.put(VendorSettings(vendor_id="v1", free_delivery_above=Decimal("500"),
                                 shipping_cost_in_zone=Decimal("40")))
    directory.put(VendorSettings(vendor_id="v2", shipping_cost_in_zone=Decimal("30")))
    return directory


@pytest.fixture
def orders():
    return OrderStore()


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def razorpay_gateway():
    return FakeRazorpay()


@pytest.fixture
def phonepe_gateway():
    return FakePhonePe()


@pytest.fixture
def collector():
    return PrecollectedPayments()


@pytest.fixture
def payment_router(razorpay_gateway, phonepe_gateway, collector):
    def factory(method, settings):
        return razorpay_gateway if method == PaymentMethod.RAZORPAY else phonepe_gateway

    return PaymentRouter(gateway_factory=factory, collector=collector)


@pytest.fixture
def orchestrator(carts, addresses, vendors, orders, sessions, payment_router, clock):
    return OrderOrchestrator(
        carts=carts,
        addresses=addresses,
        vendors=vendors,
        orders=orders,
        sessions=sessions,
        payment_router=payment_router,
        clock=clock,
    )


@pytest.fixture
def inventory():
    return InMemoryInventory()


@pytest.fixture
def partners():
    roster = InMemoryPartnerRoster()
    roster.add(DeliveryPartner.new("p1", vendor_id="v1", user_id="u-p1", name="Ravi"))
    roster.add(DeliveryPartner.new("p2", vendor_id="v1", user_id="u-p2", name="Kumar"))
    roster.add(DeliveryPartner.new("p-other", vendor_id="v2", user_id="u-p3"))
    roster.add(DeliveryPartner.new("p-off", vendor_id="v1", user_id="u-p4", is_active=False))
    return roster


@pytest.fixture
def tracking(orders, clock):
    return TrackingRegistry(TrackingIngest(orders, clock=clock))


@pytest.fixture
def fulfillment(orders, inventory, partners, tracking, clock):
    return FulfillmentService(orders, inventory, partners, tracking=tracking, clock=clock)
