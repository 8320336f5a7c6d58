"""
Purpose: The checkout "orchestrator" (single entry point).
What it does:

Runs one checkout submission end-to-end as a saga of per-vendor steps:

- validates the submission (address or self-pickup, non-empty cart)
- splits the cart per vendor (cart.py)
- runs every vendor's geofence check before anything is written (routing.geofence)
- for each vendor, in cart order:
    price the order (shipping.py) -> number it -> pay (payments.router) -> write it
- stops the pass at the first redirect payment; resume_checkout() picks it up
  from the callback and carries on with the remaining vendors
- clears the cart once every vendor was handled

Vendor steps commit independently. A failure for one vendor is recorded on the
session and returned next to the orders that did get written.

Rule: Engine is the only file other modules should call directly for checkout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional
from urllib.parse import urlencode

from orders.models import (
    OrderStatus,
    PaymentStatus,
    PaymentTransaction,
    StatusHistoryEntry,
    VendorOrder,
    generate_order_number,
)
from orders.store import OrderWriteError
from payments.gateway import PaymentError, PaymentVerificationFailure
from payments.router import OutcomeKind, PaymentRouter
from routing.geofence import check_service_area, parse_coordinates

from .cart import CartSummary, VendorPartition, aggregate_cart
from .errors import InvalidCheckoutState, ServiceAreaViolation, ServiceAreaViolationDetail
from .models import Address, CheckoutRequest, DeliveryMethod, VendorSettings
from .policy import CheckoutPolicy, default_policy
from .session import CheckoutSession, PendingRedirect, SessionState, VendorFailure
from .shipping import quote_vendor_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectPending:
    """
    The pass stopped to hand the customer to an external payment page.
    """
    session_id: str
    vendor_id: str
    order_number: str
    redirect_url: str
    merchant_transaction_id: str


@dataclass
class CheckoutResult:
    session_id: str
    state: SessionState
    created_orders: List[VendorOrder] = field(default_factory=list)
    failures: List[VendorFailure] = field(default_factory=list)
    redirect: Optional[RedirectPending] = None

    @property
    def created_order_numbers(self) -> List[str]:
        return [order.order_number for order in self.created_orders]

    @property
    def is_partial(self) -> bool:
        return bool(self.created_orders) and bool(self.failures)


class OrderOrchestrator:
    """
    Coordinates cart, vendor settings, payments and order writes for one customer checkout.

    Collaborators are duck-typed stores (in-memory ones live in checkout/stores.py,
    Django ones in backend/logistics/repositories.py).
    """

    def __init__(
        self,
        *,
        carts,
        addresses,
        vendors,
        orders,
        sessions,
        payment_router: Optional[PaymentRouter] = None,
        policy: Optional[CheckoutPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.carts = carts
        self.addresses = addresses
        self.vendors = vendors
        self.orders = orders
        self.sessions = sessions
        self.policy = policy or default_policy()
        self.payment_router = payment_router or PaymentRouter(currency=self.policy.currency)
        self.clock = clock or datetime.now

    # --- Public API ---

    def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """
        Run one checkout submission.

        Raises InvalidCheckoutState / ServiceAreaViolation before any write.
        Per-vendor payment and write failures come back in CheckoutResult.failures.
        """
        if request.idempotency_key:
            previous = self.sessions.find_by_idempotency_key(request.customer_id, request.idempotency_key)
            if previous is not None:
                logger.info("Replaying checkout session %s for idempotency key %s",
                            previous.id, request.idempotency_key)
                return self._result(previous)

        address = self._validate_request(request)
        summary = aggregate_cart(self.carts.lines(request.customer_id))
        settings = {vendor_id: self.vendors.get(vendor_id) for vendor_id in summary.vendor_ids}

        self._check_self_pickup(request, settings)
        self._check_service_areas(request, address, summary, settings)

        session = CheckoutSession.new(request, summary.vendor_ids)
        self.sessions.save(session)
        logger.info("Checkout %s started for customer %s: %d vendor(s), subtotal %s",
                    session.id, request.customer_id, len(summary.partitions), summary.grand_subtotal)

        self._process_vendors(session, summary, address, settings)
        return self._result(session)

    def resume_checkout(self, session_id: str, merchant_transaction_id: str) -> CheckoutResult:
        """
        Callback-driven continuation after a redirect payment.

        Verifies the pending transaction, writes (or fails) the suspended vendor
        order, then processes the vendors that were never reached. Replaying a
        callback that was already handled returns the recorded result.

        Runs under the session lock: concurrent callbacks for one session are
        handled one after the other, and the later ones see the recorded result.
        """
        with self.sessions.lock(session_id):
            session = self.sessions.get(session_id)
            if session is None:
                raise InvalidCheckoutState(f"Unknown checkout session {session_id}")

            pending = session.pending
            if pending is None or pending.merchant_transaction_id != merchant_transaction_id:
                if (session.state != SessionState.REDIRECT_PENDING
                        or self._already_settled(session, merchant_transaction_id)):
                    logger.info("Callback %s for checkout %s was already handled", merchant_transaction_id, session.id)
                    return self._result(session)
                raise InvalidCheckoutState(
                    f"Transaction {merchant_transaction_id} does not belong to checkout session {session_id}"
                )

            transaction = self.orders.get_transaction(merchant_transaction_id)
            if transaction is None:
                raise InvalidCheckoutState(f"No pending payment recorded for {merchant_transaction_id}")

            settings = self.vendors.get(pending.vendor_id)
            status = self.payment_router.confirm_redirect(settings, merchant_transaction_id,
                                                          vendor_id=pending.vendor_id)

            session.pending = None
            session.state = SessionState.IN_PROGRESS

            if status.verified:
                transaction.verified = True
                transaction.status = PaymentStatus.PAID
                transaction.gateway_payment_id = status.transaction_id
                order = pending.order
                order.payment_status = PaymentStatus.PAID
                order.payment_id = status.transaction_id
                self._write_order(session, order, transaction)
            else:
                transaction.status = PaymentStatus.FAILED
                self.orders.record_transaction(transaction)
                reason = status.message or status.code or "Payment not successful"
                self._record_failure(session, pending.vendor_id, PaymentVerificationFailure.__name__,
                                     reason, pending.order.order_number)
            self.sessions.save(session)

            request = session.request
            address = self.addresses.get(request.customer_id, request.address_id) if request.address_id else None
            summary = aggregate_cart(self.carts.lines(request.customer_id))
            settings_by_vendor = {vendor_id: self.vendors.get(vendor_id) for vendor_id in session.remaining_vendor_ids}

            self._process_vendors(session, summary, address, settings_by_vendor)
            return self._result(session)

    # --- Validation (runs before any write) ---

    def _validate_request(self, request: CheckoutRequest) -> Optional[Address]:
        if not self.carts.lines(request.customer_id):
            raise InvalidCheckoutState("Cart is empty")

        if request.delivery_method == DeliveryMethod.SELF_PICKUP:
            if request.address_id:
                return self.addresses.get(request.customer_id, request.address_id)
            return None

        if not request.address_id:
            raise InvalidCheckoutState("Please select a delivery address")
        address = self.addresses.get(request.customer_id, request.address_id)
        if address is None:
            raise InvalidCheckoutState(f"Address {request.address_id} not found")
        return address

    def _check_self_pickup(self, request: CheckoutRequest, settings: Dict[str, Optional[VendorSettings]]) -> None:
        if request.delivery_method != DeliveryMethod.SELF_PICKUP:
            return
        refusing = [vid for vid, vendor in settings.items() if vendor is None or not vendor.self_pickup_enabled]
        if refusing:
            raise InvalidCheckoutState("Self pickup is not available for: " + ", ".join(refusing))

    def _check_service_areas(self, request: CheckoutRequest, address: Optional[Address],
                             summary: CartSummary, settings: Dict[str, Optional[VendorSettings]]) -> None:
        if request.delivery_method == DeliveryMethod.SELF_PICKUP:
            return

        coordinate = request.coordinate or parse_coordinates(address.location_link if address else None)
        violations = []
        for partition in summary.partitions:
            vendor = settings.get(partition.vendor_id)
            result = check_service_area(vendor.service_area if vendor else None, coordinate)
            if not result.allowed:
                violations.append(
                    ServiceAreaViolationDetail(partition.vendor_id, result.distance_km, result.radius_km)
                )
        if violations:
            logger.info("Checkout rejected for customer %s: outside service area of %s",
                        request.customer_id, [v.vendor_id for v in violations])
            raise ServiceAreaViolation(violations)

    # --- Per-vendor saga steps ---

    def _process_vendors(self, session: CheckoutSession, summary: CartSummary, address: Optional[Address],
                         settings: Dict[str, Optional[VendorSettings]]) -> None:
        partitions = {partition.vendor_id: partition for partition in summary.partitions}

        while session.remaining_vendor_ids:
            vendor_id = session.remaining_vendor_ids[0]
            partition = partitions.get(vendor_id)

            if partition is None:
                session.remaining_vendor_ids.pop(0)
                self._record_failure(session, vendor_id, InvalidCheckoutState.__name__,
                                     "Items from this store are no longer in the cart")
                self.sessions.save(session)
                continue

            pending = self._process_vendor(session, partition, address, settings.get(vendor_id))
            session.remaining_vendor_ids.pop(0)
            if pending is not None:
                # Hard cutoff: nothing after a redirect payment runs in this pass.
                session.pending = pending
                session.state = SessionState.REDIRECT_PENDING
                self.sessions.save(session)
                logger.info("Checkout %s suspended for redirect payment of vendor %s (%d vendor(s) left)",
                            session.id, vendor_id, len(session.remaining_vendor_ids))
                return
            self.sessions.save(session)

        self._finish(session)

    def _process_vendor(self, session: CheckoutSession, partition: VendorPartition,
                        address: Optional[Address], settings: Optional[VendorSettings]) -> Optional[PendingRedirect]:
        request = session.request
        now = self.clock()

        quote = quote_vendor_order(
            partition.vendor_id,
            partition.subtotal,
            settings,
            address,
            delivery_method=request.delivery_method,
            same_day_requested=request.same_day,
            now=now,
            policy=self.policy,
        )
        order = VendorOrder.new(
            order_number=generate_order_number(now),
            vendor_id=partition.vendor_id,
            customer_id=request.customer_id,
            lines=partition.lines,
            shipping_cost=quote.shipping_cost,
            extra_charges=quote.extra_charges,
            address_id=request.address_id,
            delivery_method=request.delivery_method,
            delivery_slot=request.delivery_slot,
            estimated_delivery_date=quote.estimated_delivery_date,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

        try:
            outcome = self.payment_router.route(
                vendor_id=partition.vendor_id,
                settings=settings,
                choice=request.payment_method,
                amount=order.total,
                order_number=order.order_number,
                callback_url=self._callback_url(session),
                checkout_session_id=session.id,
            )
        except PaymentError as e:
            logger.warning("Payment failed for vendor %s in checkout %s: %s", partition.vendor_id, session.id, e)
            self._record_failure(session, partition.vendor_id, type(e).__name__, str(e), order.order_number)
            return None

        if outcome.kind == OutcomeKind.REDIRECT:
            order.payment_method = outcome.method
            self.orders.record_transaction(outcome.transaction)
            return PendingRedirect(
                vendor_id=partition.vendor_id,
                order=order,
                merchant_transaction_id=outcome.redirect.merchant_transaction_id,
                redirect_url=outcome.redirect.redirect_url,
            )

        if outcome.transaction is not None and self._payment_already_used(outcome.transaction):
            logger.error("Payment %s for vendor %s was already used by another order",
                         outcome.transaction.external_id, partition.vendor_id)
            self._record_failure(session, partition.vendor_id, PaymentVerificationFailure.__name__,
                                 "This payment was already used for another order", order.order_number)
            return None

        order.payment_method = outcome.method
        order.payment_status = outcome.payment_status
        order.payment_id = outcome.payment_id
        self._write_order(session, order, outcome.transaction)
        return None

    def _write_order(self, session: CheckoutSession, order: VendorOrder,
                     transaction: Optional[PaymentTransaction]) -> None:
        try:
            saved = self.orders.insert_order(order)
        except OrderWriteError as e:
            if transaction is not None and self._already_settled(session, transaction.external_id):
                # Duplicate write of an order this payment already produced
                logger.warning("Order %s for payment %s was already written; ignoring duplicate write",
                               order.order_number, transaction.external_id)
                return
            logger.error("Could not write order %s for vendor %s: %s", order.order_number, order.vendor_id, e)
            if transaction is not None and transaction.verified:
                # Money was taken but no order exists: keep the trail for a refund.
                transaction.status = PaymentStatus.REFUND_REQUIRED
                self.orders.record_transaction(transaction)
                logger.error("Payment %s for %s flagged refund_required", transaction.external_id, order.order_number)
            self._record_failure(session, order.vendor_id, type(e).__name__, str(e), order.order_number)
            return

        self.orders.append_history(StatusHistoryEntry(
            order_id=saved.id,
            vendor_id=saved.vendor_id,
            status=OrderStatus.PENDING,
            note=f"Order placed ({saved.payment_method.value})",
            actor="customer",
            created_at=saved.created_at,
        ))
        if transaction is not None:
            self.orders.record_transaction(replace(transaction, order_id=saved.id))

        session.created_order_numbers.append(saved.order_number)
        session.created_vendor_ids.append(saved.vendor_id)
        logger.info("Order %s written for vendor %s: total %s (%s, %s)", saved.order_number, saved.vendor_id,
                    saved.total, saved.payment_method.value, saved.payment_status.value)

    def _finish(self, session: CheckoutSession) -> None:
        customer_id = session.customer_id
        if not session.failures:
            self.carts.clear(customer_id)
            session.state = SessionState.COMPLETED
        elif session.created_vendor_ids:
            # Keep the failed vendors' items so the customer can retry just those.
            self.carts.remove_vendor_lines(customer_id, session.created_vendor_ids)
            session.state = SessionState.PARTIAL
        else:
            session.state = SessionState.FAILED
        self.sessions.save(session)
        logger.info("Checkout %s finished: %s, %d order(s), %d failure(s)", session.id, session.state.value,
                    len(session.created_order_numbers), len(session.failures))

    # --- Helpers ---

    def _record_failure(self, session: CheckoutSession, vendor_id: str, error: str, reason: str,
                        order_number: Optional[str] = None) -> None:
        session.failures.append(VendorFailure(vendor_id=vendor_id, error=error, reason=reason,
                                              order_number=order_number))

    def _already_settled(self, session: CheckoutSession, external_id: str) -> bool:
        """
        True when the transaction is PAID and attached to a written order of this session.
        """
        recorded = self.orders.get_transaction(external_id)
        return (
            recorded is not None
            and recorded.checkout_session_id in (None, session.id)
            and recorded.status == PaymentStatus.PAID
            and recorded.order_id is not None
        )

    def _payment_already_used(self, transaction: PaymentTransaction) -> bool:
        recorded = self.orders.get_transaction(transaction.external_id)
        return recorded is not None and recorded.order_id is not None

    def _callback_url(self, session: CheckoutSession) -> Optional[str]:
        base = session.request.callback_url
        if not base:
            return None
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode({'session_id': session.id})}"

    def _result(self, session: CheckoutSession) -> CheckoutResult:
        created = [self.orders.get_by_number(number) for number in session.created_order_numbers]
        redirect = None
        if session.pending is not None:
            redirect = RedirectPending(
                session_id=session.id,
                vendor_id=session.pending.vendor_id,
                order_number=session.pending.order.order_number,
                redirect_url=session.pending.redirect_url,
                merchant_transaction_id=session.pending.merchant_transaction_id,
            )
        return CheckoutResult(
            session_id=session.id,
            state=session.state,
            created_orders=[order for order in created if order is not None],
            failures=list(session.failures),
            redirect=redirect,
        )
