import logging
from decimal import Decimal

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from .gateway import (
    GatewayOrder,
    PaymentInitiationFailure,
    PaymentVerificationFailure,
    SyncVerifyGateway,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class RazorpayService(SyncVerifyGateway):
    """
    Razorpay adapter. Credentials are per vendor; each vendor gets its own client.
    """
    name = "razorpay"

    def __init__(self, key_id: str, key_secret: str, client=None):
        if not key_id or not key_secret:
            raise ValueError("Razorpay key id and secret are required")
        self.key_id = key_id
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount: Decimal, currency: str, vendor_id: str, receipt: str) -> GatewayOrder:
        """
        Create a Razorpay order the checkout modal can collect against.
        """
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": {"vendor_id": vendor_id},
        }
        try:
            order = self.client.order.create(data=payload)
        except (BadRequestError, GatewayError, ServerError, requests.RequestException) as e:
            logger.error(f"Razorpay Exception: {e}")
            raise PaymentInitiationFailure(f"Razorpay order creation failed: {e}", vendor_id=vendor_id) from e

        return GatewayOrder(
            order_id=order["id"],
            key_id=self.key_id,
            amount_minor=order.get("amount", payload["amount"]),
            currency=order.get("currency", currency),
        )

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        HMAC-SHA256 check of "order_id|payment_id" against the key secret.
        """
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except SignatureVerificationError:
            logger.warning("Razorpay signature mismatch for order %s payment %s", order_id, payment_id)
            return False
        return True

    def fetch_order(self, order_id: str) -> GatewayOrder:
        try:
            order = self.client.order.fetch(order_id)
        except (BadRequestError, GatewayError, ServerError, requests.RequestException) as e:
            logger.error(f"Razorpay Exception: {e}")
            raise PaymentVerificationFailure(f"Razorpay order lookup failed: {e}") from e

        return GatewayOrder(
            order_id=order["id"],
            key_id=self.key_id,
            amount_minor=order["amount"],
            currency=order.get("currency", ""),
        )
