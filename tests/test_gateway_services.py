import base64
import hashlib
import json
from decimal import Decimal
from unittest import mock

import pytest
import requests
from razorpay.errors import BadRequestError, SignatureVerificationError

from payments import phonepe_service
from payments.gateway import PaymentInitiationFailure, PaymentVerificationFailure
from payments.phonepe_service import PhonePeService, build_checksum
from payments.razorpay_service import RazorpayService


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def json(self):
        return self.payload


# --- PhonePe ---

@pytest.fixture
def phonepe():
    return PhonePeService("MERCHANT1", "salt-key", "1", base_url="https://phonepe.test/apis")


def test_build_checksum():
    expected = hashlib.sha256(b"abc/pg/v1/paysalt").hexdigest() + "###2"
    assert build_checksum("abc", "/pg/v1/pay", "salt", "2") == expected


def test_phonepe_initiate(phonepe, monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers))
        return FakeResponse({
            "success": True,
            "code": "PAYMENT_INITIATED",
            "data": {"instrumentResponse": {"redirectInfo": {"url": "https://mercury.phonepe.test/pay/abc"}}},
        })

    monkeypatch.setattr(phonepe_service.requests, "post", fake_post)

    session = phonepe.initiate(Decimal("490"), "v1", "ORD-1", "https://shop.example/cb?session_id=s1")

    assert session.redirect_url == "https://mercury.phonepe.test/pay/abc"
    assert session.merchant_transaction_id.startswith("MT")

    url, body, headers = calls[0]
    payload = json.loads(base64.b64decode(body["request"]))
    assert url == "https://phonepe.test/apis/pg/v1/pay"
    assert payload["amount"] == 49000
    assert payload["merchantId"] == "MERCHANT1"
    assert payload["merchantTransactionId"] == session.merchant_transaction_id
    assert headers["X-VERIFY"] == build_checksum(body["request"], "/pg/v1/pay", "salt-key", "1")


def test_phonepe_initiate_failures(phonepe, monkeypatch):
    # 1. Gateway says no
    monkeypatch.setattr(phonepe_service.requests, "post",
                        lambda *a, **kw: FakeResponse({"success": False, "message": "Bad merchant"}))
    with pytest.raises(PaymentInitiationFailure, match="Bad merchant"):
        phonepe.initiate(Decimal("10"), "v1", "ORD-1", "https://shop.example/cb")

    # 2. Network error
    def boom(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(phonepe_service.requests, "post", boom)
    with pytest.raises(PaymentInitiationFailure) as exc:
        phonepe.initiate(Decimal("10"), "v1", "ORD-1", "https://shop.example/cb")
    assert exc.value.vendor_id == "v1"


@pytest.mark.parametrize("payload, verified", [
    ({"success": True, "code": "PAYMENT_SUCCESS", "data": {"transactionId": "T1"}}, True),
    ({"success": True, "code": "PAYMENT_PENDING", "data": {"transactionId": "T1"}}, False),
    ({"success": False, "code": "PAYMENT_ERROR", "message": "Declined"}, False),
])
def test_phonepe_check_status(phonepe, monkeypatch, payload, verified):
    seen = {}

    def fake_get(url, headers=None, timeout=None):
        seen["url"], seen["headers"] = url, headers
        return FakeResponse(payload)

    monkeypatch.setattr(phonepe_service.requests, "get", fake_get)

    status = phonepe.check_status("MT1")

    assert status.verified is verified
    assert status.code == payload["code"]
    assert seen["url"] == "https://phonepe.test/apis/pg/v1/status/MERCHANT1/MT1"
    assert seen["headers"]["X-MERCHANT-ID"] == "MERCHANT1"


def test_phonepe_status_network_error(phonepe, monkeypatch):
    def boom(*a, **kw):
        raise requests.Timeout("slow")

    monkeypatch.setattr(phonepe_service.requests, "get", boom)
    with pytest.raises(PaymentVerificationFailure):
        phonepe.check_status("MT1")


def test_phonepe_requires_credentials():
    with pytest.raises(ValueError):
        PhonePeService("", "salt")


# --- Razorpay ---

@pytest.fixture
def razorpay_client():
    return mock.Mock()


def test_razorpay_create_order(razorpay_client):
    razorpay_client.order.create.return_value = {"id": "order_ABC", "amount": 49000, "currency": "INR"}
    service = RazorpayService("rzp_key", "secret", client=razorpay_client)

    gateway_order = service.create_order(Decimal("490"), "INR", "v1", "ORD-1")

    assert gateway_order.order_id == "order_ABC"
    assert gateway_order.key_id == "rzp_key"
    assert gateway_order.amount_minor == 49000
    razorpay_client.order.create.assert_called_once_with(data={
        "amount": 49000,
        "currency": "INR",
        "receipt": "ORD-1",
        "notes": {"vendor_id": "v1"},
    })


def test_razorpay_create_order_failure(razorpay_client):
    razorpay_client.order.create.side_effect = BadRequestError("Authentication failed")
    service = RazorpayService("rzp_key", "secret", client=razorpay_client)

    with pytest.raises(PaymentInitiationFailure):
        service.create_order(Decimal("490"), "INR", "v1", "ORD-1")


def test_razorpay_verify_payment(razorpay_client):
    service = RazorpayService("rzp_key", "secret", client=razorpay_client)

    assert service.verify_payment("order_ABC", "pay_1", "sig") is True

    razorpay_client.utility.verify_payment_signature.side_effect = SignatureVerificationError("mismatch")
    assert service.verify_payment("order_ABC", "pay_1", "bad") is False


def test_razorpay_fetch_order(razorpay_client):
    razorpay_client.order.fetch.return_value = {"id": "order_ABC", "amount": 14000, "currency": "INR",
                                                "status": "paid"}
    service = RazorpayService("rzp_key", "secret", client=razorpay_client)

    gateway_order = service.fetch_order("order_ABC")

    assert gateway_order.amount_minor == 14000
    assert gateway_order.currency == "INR"
    razorpay_client.order.fetch.assert_called_once_with("order_ABC")


def test_razorpay_fetch_order_failure(razorpay_client):
    razorpay_client.order.fetch.side_effect = BadRequestError("The id provided does not exist")
    service = RazorpayService("rzp_key", "secret", client=razorpay_client)

    with pytest.raises(PaymentVerificationFailure):
        service.fetch_order("order_missing")
