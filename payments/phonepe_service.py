#Purpose: The PhonePe "adapter/client".
#Sole responsibility: talk to the PhonePe PG API via HTTP and return normalized outputs.
#Encapsulates PhonePe-specific details:
#base64 payload + X-VERIFY checksum (sha256(payload + path + salt) ### salt_index)
#amounts in paise
#parsing response JSON into RedirectSession / RedirectStatus
#It should not contain checkout rules.

import base64
import hashlib
import json
import logging
import os
import random
import string
import time
from decimal import Decimal

import requests
from dotenv import load_dotenv

from .gateway import (
    PaymentInitiationFailure,
    PaymentVerificationFailure,
    RedirectGateway,
    RedirectSession,
    RedirectStatus,
    to_minor_units,
)

# Example in .env:
# PHONEPE_BASE_URL=https://api-preprod.phonepe.com/apis/pg-sandbox
load_dotenv()
PHONEPE_BASE_URL = os.getenv("PHONEPE_BASE_URL", "https://api.phonepe.com/apis/hermes")

PAY_PATH = "/pg/v1/pay"

logger = logging.getLogger(__name__)


def build_checksum(payload: str, path: str, salt_key: str, salt_index: str) -> str:
    digest = hashlib.sha256((payload + path + salt_key).encode("utf-8")).hexdigest()
    return f"{digest}###{salt_index}"


def new_merchant_transaction_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"MT{int(time.time() * 1000)}{suffix}"


class PhonePeService(RedirectGateway):
    """
    PhonePe Adapter / Client

    - initiate(): POST /pg/v1/pay, returns the hosted page URL
    - check_status(): GET /pg/v1/status/{merchant}/{txn}
    """
    name = "phonepe"

    def __init__(self, merchant_id: str, salt_key: str, salt_index: str = "1",
                 base_url: str = None, timeout: int = 10):
        if not merchant_id or not salt_key:
            raise ValueError("PhonePe merchant id and salt key are required")
        self.merchant_id = merchant_id
        self.salt_key = salt_key
        self.salt_index = salt_index or "1"
        self.base_url = (base_url or PHONEPE_BASE_URL).rstrip("/")
        self.timeout = timeout

    def initiate(self, amount: Decimal, vendor_id: str, order_context: str, callback_url: str) -> RedirectSession:
        merchant_transaction_id = new_merchant_transaction_id()
        payload = {
            "merchantId": self.merchant_id,
            "merchantTransactionId": merchant_transaction_id,
            "merchantUserId": f"MUID{int(time.time() * 1000)}",
            "merchantOrderId": order_context,
            "amount": to_minor_units(amount),
            "redirectUrl": callback_url,
            "redirectMode": "REDIRECT",
            "callbackUrl": callback_url,
            "paymentInstrument": {"type": "PAY_PAGE"},
        }
        encoded = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")

        try:
            response = requests.post(
                f"{self.base_url}{PAY_PATH}",
                json={"request": encoded},
                headers={
                    "Content-Type": "application/json",
                    "X-VERIFY": build_checksum(encoded, PAY_PATH, self.salt_key, self.salt_index),
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"PhonePe Exception: {e}")
            raise PaymentInitiationFailure(f"PhonePe initiation failed: {e}", vendor_id=vendor_id) from e

        redirect_url = (
            (data.get("data") or {}).get("instrumentResponse", {}).get("redirectInfo", {}).get("url")
        )
        if not data.get("success") or not redirect_url:
            message = data.get("message") or "PhonePe payment initiation failed"
            logger.error("PhonePe initiation rejected for vendor %s: %s", vendor_id, message)
            raise PaymentInitiationFailure(message, vendor_id=vendor_id)

        return RedirectSession(redirect_url=redirect_url, merchant_transaction_id=merchant_transaction_id)

    def check_status(self, merchant_transaction_id: str) -> RedirectStatus:
        status_path = f"/pg/v1/status/{self.merchant_id}/{merchant_transaction_id}"
        try:
            response = requests.get(
                f"{self.base_url}{status_path}",
                headers={
                    "Content-Type": "application/json",
                    "X-VERIFY": build_checksum("", status_path, self.salt_key, self.salt_index),
                    "X-MERCHANT-ID": self.merchant_id,
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"PhonePe Exception: {e}")
            raise PaymentVerificationFailure(f"PhonePe status check failed: {e}") from e

        verified = bool(data.get("success")) and data.get("code") == "PAYMENT_SUCCESS"
        return RedirectStatus(
            verified=verified,
            transaction_id=(data.get("data") or {}).get("transactionId"),
            code=data.get("code"),
            message=data.get("message"),
        )
