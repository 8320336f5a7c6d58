"""
Purpose: The PaymentGateway interface and payment errors.
What it does:

Two gateway variants, so the orchestrator never special-cases a provider:

- SyncVerifyGateway: create a gateway order, the client collects payment in a
  modal, the server verifies the signature synchronously (Razorpay).
- RedirectGateway: initiate a hosted payment page, hand control to a redirect,
  verify later from a callback-driven request (PhonePe).

Rule: Interface + value objects only. Provider specifics live in *_service.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


class PaymentError(Exception):
    """Base for payment failures scoped to one vendor order."""

    def __init__(self, message: str, vendor_id: Optional[str] = None):
        super().__init__(message)
        self.vendor_id = vendor_id


class PaymentInitiationFailure(PaymentError):
    """The gateway could not start a payment. No order is written for the vendor."""
    pass


class PaymentVerificationFailure(PaymentError):
    """Payment was cancelled or could not be verified. No order is written for the vendor."""
    pass


@dataclass(frozen=True)
class GatewayOrder:
    """Returned by a sync-verify gateway: what the client modal needs to collect payment."""
    order_id: str
    key_id: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class PaymentConfirmation:
    """What the client modal hands back after a successful collection."""
    order_id: str
    payment_id: str
    signature: str


@dataclass(frozen=True)
class RedirectSession:
    """Returned by a redirect gateway: where to send the customer, and the id to verify later."""
    redirect_url: str
    merchant_transaction_id: str


@dataclass(frozen=True)
class RedirectStatus:
    verified: bool
    transaction_id: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


def to_minor_units(amount: Decimal) -> int:
    """Rupees -> paise, rounded half up like the gateways expect."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway(ABC):
    name: str = ""


class SyncVerifyGateway(PaymentGateway):

    @abstractmethod
    def create_order(self, amount: Decimal, currency: str, vendor_id: str, receipt: str) -> GatewayOrder:
        ...

    @abstractmethod
    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        ...

    @abstractmethod
    def fetch_order(self, order_id: str) -> GatewayOrder:
        """The gateway's own record of an order, used to check what was actually paid for."""
        ...


class RedirectGateway(PaymentGateway):

    @abstractmethod
    def initiate(self, amount: Decimal, vendor_id: str, order_context: str, callback_url: str) -> RedirectSession:
        ...

    @abstractmethod
    def check_status(self, merchant_transaction_id: str) -> RedirectStatus:
        ...
