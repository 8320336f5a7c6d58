from decimal import Decimal

import pytest

from checkout.models import PaymentChoice, VendorSettings
from orders.models import PaymentMethod, PaymentStatus
from payments.gateway import PaymentConfirmation, PaymentInitiationFailure, PaymentVerificationFailure, to_minor_units
from payments.router import ModalPaymentCollector, OutcomeKind, PaymentRouter, select_payment_method

COD_ONLY = VendorSettings(vendor_id="v1")
RAZORPAY = VendorSettings(vendor_id="v1", online_payment_enabled=True, razorpay_key_id="rzp_k",
                          razorpay_key_secret="secret")
PHONEPE = VendorSettings(vendor_id="v1", online_payment_enabled=True, phonepe_enabled=True,
                         phonepe_merchant_id="M1", phonepe_salt_key="salt", razorpay_key_id="rzp_k",
                         razorpay_key_secret="secret")


@pytest.mark.parametrize("settings, choice, expected", [
    (COD_ONLY, PaymentChoice.ONLINE, PaymentMethod.COD),
    (RAZORPAY, PaymentChoice.COD, PaymentMethod.COD),
    (RAZORPAY, PaymentChoice.ONLINE, PaymentMethod.RAZORPAY),
    (PHONEPE, PaymentChoice.ONLINE, PaymentMethod.PHONEPE),
    (None, PaymentChoice.ONLINE, PaymentMethod.COD),
])
def test_select_payment_method(settings, choice, expected):
    assert select_payment_method(settings, choice) == expected


def test_online_gateway_needs_online_payments_enabled():
    settings = VendorSettings(vendor_id="v1", razorpay_key_id="k", razorpay_key_secret="s")
    assert select_payment_method(settings, PaymentChoice.ONLINE) == PaymentMethod.COD


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("490")) == 49000
    assert to_minor_units(Decimal("10.005")) == 1001


def test_cod_route_makes_no_gateway_call(payment_router, razorpay_gateway, phonepe_gateway):
    outcome = payment_router.route(vendor_id="v1", settings=COD_ONLY, choice=PaymentChoice.COD,
                                   amount=Decimal("100"), order_number="ORD-1")

    assert outcome.kind == OutcomeKind.COD
    assert outcome.payment_status == PaymentStatus.PENDING
    assert outcome.transaction is None
    assert razorpay_gateway.created == []
    assert phonepe_gateway.initiated == []


def test_cod_refused_when_vendor_disabled_it(payment_router):
    settings = VendorSettings(vendor_id="v1", cod_enabled=False, online_payment_enabled=True,
                              razorpay_key_id="k", razorpay_key_secret="s")

    with pytest.raises(PaymentInitiationFailure) as exc:
        payment_router.route(vendor_id="v1", settings=settings, choice=PaymentChoice.COD,
                             amount=Decimal("100"), order_number="ORD-1")
    assert exc.value.vendor_id == "v1"


def test_razorpay_verified_payment(payment_router, collector, razorpay_gateway):
    gateway_order = razorpay_gateway.create_order(Decimal("490"), "INR", "v1", "cart-cust-1-v1")
    collector.confirmations["v1"] = PaymentConfirmation(order_id=gateway_order.order_id, payment_id="pay_1",
                                                        signature="good")

    outcome = payment_router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                                   amount=Decimal("490"), order_number="ORD-1")

    assert outcome.kind == OutcomeKind.PAID
    assert outcome.method == PaymentMethod.RAZORPAY
    assert outcome.payment_id == "pay_1"
    assert outcome.transaction.verified
    assert outcome.transaction.amount == Decimal("490")


def test_razorpay_bad_signature_or_dismissed_modal(payment_router, collector):
    # 1. No confirmation: the customer closed the modal
    with pytest.raises(PaymentVerificationFailure):
        payment_router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                             amount=Decimal("10"), order_number="ORD-1")

    # 2. Confirmation whose signature does not verify
    collector.confirmations["v1"] = PaymentConfirmation(order_id="order_x", payment_id="pay_1", signature="forged")
    with pytest.raises(PaymentVerificationFailure):
        payment_router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                             amount=Decimal("10"), order_number="ORD-1")


def test_razorpay_payment_for_a_different_amount_is_rejected(payment_router, collector, razorpay_gateway):
    """
    A valid signature on a gateway order opened for another amount (cart edited in between) is not a payment.
    """
    gateway_order = razorpay_gateway.create_order(Decimal("140"), "INR", "v1", "cart-cust-1-v1")
    collector.confirmations["v1"] = PaymentConfirmation(order_id=gateway_order.order_id, payment_id="pay_1",
                                                        signature="good")

    with pytest.raises(PaymentVerificationFailure) as exc:
        payment_router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                             amount=Decimal("1040"), order_number="ORD-1")
    assert exc.value.vendor_id == "v1"

    # Unknown gateway order
    collector.confirmations["v1"] = PaymentConfirmation(order_id="order_404", payment_id="pay_2", signature="good")
    with pytest.raises(PaymentVerificationFailure):
        payment_router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                             amount=Decimal("140"), order_number="ORD-2")


def test_modal_collector_opens_gateway_order(razorpay_gateway):
    seen = []

    def await_client_event(vendor_id, gateway_order):
        seen.append(gateway_order)
        return PaymentConfirmation(order_id=gateway_order.order_id, payment_id="pay_9", signature="good")

    router = PaymentRouter(gateway_factory=lambda method, settings: razorpay_gateway,
                           collector=ModalPaymentCollector(await_client_event))
    outcome = router.route(vendor_id="v1", settings=RAZORPAY, choice=PaymentChoice.ONLINE,
                           amount=Decimal("250"), order_number="ORD-7")

    assert razorpay_gateway.created == [(Decimal("250"), "INR", "v1", "ORD-7")]
    assert seen[0].amount_minor == 25000
    assert outcome.transaction.external_id == seen[0].order_id


def test_phonepe_route_returns_pending_redirect(payment_router):
    outcome = payment_router.route(vendor_id="v1", settings=PHONEPE, choice=PaymentChoice.ONLINE,
                                   amount=Decimal("300"), order_number="ORD-2",
                                   callback_url="https://shop.example/cb", checkout_session_id="s-1")

    assert outcome.kind == OutcomeKind.REDIRECT
    assert outcome.payment_status == PaymentStatus.PENDING
    assert outcome.redirect.redirect_url.startswith("https://pay.example/")
    assert outcome.transaction.external_id == outcome.redirect.merchant_transaction_id
    assert outcome.transaction.checkout_session_id == "s-1"
    assert not outcome.transaction.verified


def test_phonepe_requires_callback_url(payment_router):
    with pytest.raises(PaymentInitiationFailure):
        payment_router.route(vendor_id="v1", settings=PHONEPE, choice=PaymentChoice.ONLINE,
                             amount=Decimal("300"), order_number="ORD-2")


def test_confirm_redirect_without_gateway_credentials():
    """
    Settings changed between the redirect and the callback: no PhonePe client can be built.
    """
    router = PaymentRouter()

    with pytest.raises(PaymentVerificationFailure) as exc:
        router.confirm_redirect(VendorSettings(vendor_id="v1"), "MT1")
    assert exc.value.vendor_id == "v1"

    with pytest.raises(PaymentVerificationFailure) as exc:
        router.confirm_redirect(None, "MT1", vendor_id="v9")
    assert exc.value.vendor_id == "v9"
