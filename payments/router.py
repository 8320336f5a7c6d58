"""
Purpose: Choose and drive one payment path per vendor (the "which gateway" layer).
What it does:

- select_payment_method: COD / PhonePe / Razorpay from vendor settings + customer choice
- PaymentRouter.route: runs the chosen path for one vendor total and returns a PaymentOutcome
    COD      -> no external call, payment pending
    Razorpay -> collector obtains a client confirmation, server verifies the signature
                and that the gateway order was opened for this order's total
    PhonePe  -> hosted page initiated, pending transaction returned, caller must redirect
- PaymentRouter.confirm_redirect: status check when the redirect comes back

Each call is independent of every other vendor in the same checkout.
Rule: the router never writes orders; the checkout engine does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Optional

from checkout.models import PaymentChoice, VendorSettings
from orders.models import PaymentMethod, PaymentStatus, PaymentTransaction

from .gateway import (
    GatewayOrder,
    PaymentConfirmation,
    PaymentGateway,
    PaymentInitiationFailure,
    PaymentVerificationFailure,
    RedirectGateway,
    RedirectSession,
    RedirectStatus,
    SyncVerifyGateway,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    COD = "cod"
    PAID = "paid"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class PaymentOutcome:
    kind: OutcomeKind
    method: PaymentMethod
    payment_status: PaymentStatus
    transaction: Optional[PaymentTransaction] = None
    redirect: Optional[RedirectSession] = None

    @property
    def payment_id(self) -> Optional[str]:
        return self.transaction.gateway_payment_id if self.transaction else None


def select_payment_method(settings: Optional[VendorSettings], choice: PaymentChoice) -> PaymentMethod:
    """
    COD when the customer asked for it or the vendor has no online gateway.
    Otherwise PhonePe if configured, else Razorpay.
    """
    if choice == PaymentChoice.COD or settings is None or not settings.has_online_gateway:
        return PaymentMethod.COD
    if settings.has_phonepe:
        return PaymentMethod.PHONEPE
    return PaymentMethod.RAZORPAY


def default_gateway_factory(method: PaymentMethod, settings: VendorSettings) -> PaymentGateway:
    """
    Build a gateway client from the vendor's own credentials.
    """
    if method == PaymentMethod.RAZORPAY:
        from .razorpay_service import RazorpayService
        return RazorpayService(settings.razorpay_key_id, settings.razorpay_key_secret)
    if method == PaymentMethod.PHONEPE:
        from .phonepe_service import PhonePeService
        return PhonePeService(settings.phonepe_merchant_id, settings.phonepe_salt_key, settings.phonepe_salt_index)
    raise ValueError(f"No gateway for payment method {method}")


# --- Client-side collection for sync-verify gateways ---

class ModalPaymentCollector:
    """
    Opens a gateway order and waits for the client-side modal result.

    await_client_event(vendor_id, gateway_order) returns the confirmation,
    or None when the customer dismissed the modal.
    """

    def __init__(self, await_client_event: Callable[[str, GatewayOrder], Optional[PaymentConfirmation]]):
        self.await_client_event = await_client_event

    def collect(self, gateway: SyncVerifyGateway, *, vendor_id: str, amount: Decimal,
                currency: str, receipt: str) -> Optional[PaymentConfirmation]:
        gateway_order = gateway.create_order(amount, currency, vendor_id, receipt)
        return self.await_client_event(vendor_id, gateway_order)


class PrecollectedPayments:
    """
    Confirmations the client already obtained (gateway orders opened through a
    separate request before submitting checkout), keyed by vendor id.
    """

    def __init__(self, confirmations: Optional[Dict[str, PaymentConfirmation]] = None):
        self.confirmations = dict(confirmations or {})

    def collect(self, gateway: SyncVerifyGateway, *, vendor_id: str, amount: Decimal,
                currency: str, receipt: str) -> Optional[PaymentConfirmation]:
        return self.confirmations.get(vendor_id)


class PaymentRouter:
    """
    Coordinates one vendor's payment. Gateways are built per call from the
    vendor's settings through gateway_factory (swap it out in tests).
    """

    def __init__(self, gateway_factory=None, collector=None, currency: str = "INR"):
        self.gateway_factory = gateway_factory or default_gateway_factory
        self.collector = collector or PrecollectedPayments()
        self.currency = currency

    def route(
        self,
        *,
        vendor_id: str,
        settings: Optional[VendorSettings],
        choice: PaymentChoice,
        amount: Decimal,
        order_number: str,
        callback_url: Optional[str] = None,
        checkout_session_id: Optional[str] = None,
    ) -> PaymentOutcome:
        """
        Raises PaymentInitiationFailure / PaymentVerificationFailure; both mean
        "do not write this vendor's order".
        """
        method = select_payment_method(settings, choice)

        if method == PaymentMethod.COD:
            if settings is not None and not settings.cod_enabled:
                raise PaymentInitiationFailure("Cash on delivery is not accepted by this store", vendor_id=vendor_id)
            return PaymentOutcome(kind=OutcomeKind.COD, method=method, payment_status=PaymentStatus.PENDING)

        gateway = self.gateway_factory(method, settings)

        if isinstance(gateway, RedirectGateway):
            return self._start_redirect(gateway, method, vendor_id, amount, order_number,
                                        callback_url, checkout_session_id)
        return self._collect_and_verify(gateway, method, vendor_id, amount, order_number)

    def confirm_redirect(self, settings: Optional[VendorSettings], merchant_transaction_id: str,
                         vendor_id: Optional[str] = None) -> RedirectStatus:
        """
        Raises PaymentVerificationFailure when the vendor's gateway can no
        longer be reached (settings removed or credentials cleared).
        """
        if settings is None:
            raise PaymentVerificationFailure("Store payment settings are no longer available", vendor_id=vendor_id)
        try:
            gateway = self.gateway_factory(PaymentMethod.PHONEPE, settings)
        except ValueError as e:
            logger.error(f"PhonePe gateway unavailable for vendor {settings.vendor_id}: {e}")
            raise PaymentVerificationFailure(f"Payment could not be verified: {e}",
                                             vendor_id=settings.vendor_id) from e
        return gateway.check_status(merchant_transaction_id)

    # --- Internal helpers ---

    def _start_redirect(self, gateway: RedirectGateway, method: PaymentMethod, vendor_id: str,
                        amount: Decimal, order_number: str, callback_url: Optional[str],
                        checkout_session_id: Optional[str]) -> PaymentOutcome:
        if not callback_url:
            raise PaymentInitiationFailure("A callback URL is required for redirect payments", vendor_id=vendor_id)

        session = gateway.initiate(amount, vendor_id, order_number, callback_url)
        logger.info("Redirect payment %s started for vendor %s (%s)",
                    session.merchant_transaction_id, vendor_id, order_number)

        transaction = PaymentTransaction(
            gateway=method,
            external_id=session.merchant_transaction_id,
            amount=amount,
            vendor_id=vendor_id,
            order_number=order_number,
            checkout_session_id=checkout_session_id,
        )
        return PaymentOutcome(
            kind=OutcomeKind.REDIRECT,
            method=method,
            payment_status=PaymentStatus.PENDING,
            transaction=transaction,
            redirect=session,
        )

    def _collect_and_verify(self, gateway: SyncVerifyGateway, method: PaymentMethod, vendor_id: str,
                            amount: Decimal, order_number: str) -> PaymentOutcome:
        confirmation = self.collector.collect(
            gateway, vendor_id=vendor_id, amount=amount, currency=self.currency, receipt=order_number
        )
        if confirmation is None:
            raise PaymentVerificationFailure("Payment was cancelled", vendor_id=vendor_id)

        if not gateway.verify_payment(confirmation.order_id, confirmation.payment_id, confirmation.signature):
            raise PaymentVerificationFailure("Payment verification failed", vendor_id=vendor_id)

        # Gateway order amount must equal this order total
        gateway_order = gateway.fetch_order(confirmation.order_id)
        if gateway_order.amount_minor != to_minor_units(amount):
            logger.error("Gateway order %s (payment %s) was for %s minor units, order %s totals %s: refund required",
                         confirmation.order_id, confirmation.payment_id, gateway_order.amount_minor,
                         order_number, amount)
            raise PaymentVerificationFailure("Paid amount does not match the order total", vendor_id=vendor_id)

        transaction = PaymentTransaction(
            gateway=method,
            external_id=confirmation.order_id,
            amount=amount,
            vendor_id=vendor_id,
            order_number=order_number,
            verified=True,
            status=PaymentStatus.PAID,
            gateway_payment_id=confirmation.payment_id,
        )
        return PaymentOutcome(kind=OutcomeKind.PAID, method=method, payment_status=PaymentStatus.PAID,
                              transaction=transaction)
