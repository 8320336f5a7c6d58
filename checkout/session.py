"""
Purpose: Persisted record of one checkout pass.
What it does:

A CheckoutSession is written before the first vendor is processed and after
every vendor, so a pass that stops (redirect, crash) can be resumed from
exactly the next vendor, and a repeated submission with the same idempotency
key replays the recorded result instead of creating orders again.

Lifecycle: in_progress -> redirect_pending -> in_progress -> completed | partial | failed
"""

from __future__ import annotations

import dataclasses
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from orders.models import OrderLineItem, OrderStatus, PaymentMethod, PaymentStatus, VendorOrder

from .models import CheckoutRequest, DeliveryMethod, PaymentChoice


class SessionState(str, Enum):
    IN_PROGRESS = "in_progress"
    REDIRECT_PENDING = "redirect_pending"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class VendorFailure:
    """
    Why one vendor's order was not written. error is the exception class name
    (PaymentInitiationFailure, PaymentVerificationFailure, OrderWriteError, ...).
    """
    vendor_id: str
    error: str
    reason: str
    order_number: Optional[str] = None


@dataclass
class PendingRedirect:
    """
    A priced, unwritten order waiting for its redirect payment to come back.
    The draft keeps the line-item snapshot taken during the original pass.
    """
    vendor_id: str
    order: VendorOrder
    merchant_transaction_id: str
    redirect_url: str


@dataclass
class CheckoutSession:
    id: str
    request: CheckoutRequest
    remaining_vendor_ids: List[str]
    state: SessionState = SessionState.IN_PROGRESS
    created_order_numbers: List[str] = field(default_factory=list)
    created_vendor_ids: List[str] = field(default_factory=list)
    failures: List[VendorFailure] = field(default_factory=list)
    pending: Optional[PendingRedirect] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def customer_id(self) -> str:
        return self.request.customer_id

    @property
    def is_finished(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.PARTIAL, SessionState.FAILED)

    @staticmethod
    def new(request: CheckoutRequest, vendor_ids: List[str]) -> CheckoutSession:
        return CheckoutSession(id=str(uuid.uuid4()), request=request, remaining_vendor_ids=list(vendor_ids))


@dataclass
class InMemorySessionStore:
    _sessions: Dict[str, CheckoutSession] = field(default_factory=dict)
    _by_key: Dict[Tuple[str, str], str] = field(default_factory=dict)

    _locks: Dict[str, threading.RLock] = field(default_factory=dict)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock)

    def save(self, session: CheckoutSession) -> None:
        session.updated_at = datetime.now()
        self._sessions[session.id] = session
        if session.request.idempotency_key:
            self._by_key[(session.customer_id, session.request.idempotency_key)] = session.id

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        return self._sessions.get(session_id)

    def find_by_idempotency_key(self, customer_id: str, key: str) -> Optional[CheckoutSession]:
        session_id = self._by_key.get((customer_id, key))
        return self._sessions.get(session_id) if session_id else None

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """
        Serialize resumes of one session. Re-entrant for the same thread.
        """
        with self._locks_guard:
            session_lock = self._locks.setdefault(session_id, threading.RLock())
        with session_lock:
            yield


# --- JSON form (the Django store keeps sessions in a JSONField) ---

def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


def _order_from_json(data: dict) -> VendorOrder:
    data = dict(data)
    data['items'] = [
        OrderLineItem(**{**item, 'unit_price': Decimal(item['unit_price']), 'total_price': Decimal(item['total_price'])})
        for item in data['items']
    ]
    for name in ('subtotal', 'shipping_cost', 'extra_charges', 'total', 'collected_amount'):
        if data.get(name) is not None:
            data[name] = Decimal(data[name])
    for name in ('created_at', 'updated_at', 'shipped_at', 'delivered_at'):
        if data.get(name):
            data[name] = datetime.fromisoformat(data[name])
    if data.get('estimated_delivery_date'):
        data['estimated_delivery_date'] = date.fromisoformat(data['estimated_delivery_date'])
    data['status'] = OrderStatus(data['status'])
    data['payment_method'] = PaymentMethod(data['payment_method'])
    data['payment_status'] = PaymentStatus(data['payment_status'])
    data['delivery_method'] = DeliveryMethod(data['delivery_method'])
    return VendorOrder(**data)


def session_to_json(session: CheckoutSession) -> dict:
    return _jsonable(dataclasses.asdict(session))


def session_from_json(data: dict) -> CheckoutSession:
    request = dict(data['request'])
    request['payment_method'] = PaymentChoice(request['payment_method'])
    request['delivery_method'] = DeliveryMethod(request['delivery_method'])
    if request.get('coordinate'):
        request['coordinate'] = tuple(request['coordinate'])

    pending = None
    if data.get('pending'):
        pending = PendingRedirect(
            vendor_id=data['pending']['vendor_id'],
            order=_order_from_json(data['pending']['order']),
            merchant_transaction_id=data['pending']['merchant_transaction_id'],
            redirect_url=data['pending']['redirect_url'],
        )

    return CheckoutSession(
        id=data['id'],
        request=CheckoutRequest(**request),
        remaining_vendor_ids=list(data['remaining_vendor_ids']),
        state=SessionState(data['state']),
        created_order_numbers=list(data['created_order_numbers']),
        created_vendor_ids=list(data['created_vendor_ids']),
        failures=[VendorFailure(**failure) for failure in data['failures']],
        pending=pending,
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=datetime.fromisoformat(data['updated_at']),
    )
