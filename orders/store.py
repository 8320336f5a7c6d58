"""
Purpose: In-memory order storage with per-order locking.
What it does:
- Owns the order records and their append-only side tables:
   - orders (by id and by order number)
   - status history
   - tracking points
   - payment transactions

Provides operations:
   - insert_order(order) / get(order_id) / get_by_number(number) / save(order)
   - append_history(entry) / history(order_id)
   - append_tracking(point) / tracking_points(order_id)
   - record_transaction(tx) / get_transaction(external_id)
   - lock(key): serialize read-check-write sequences on one order

The Django backend provides the same surface over the ORM
(backend/logistics/repositories.py).
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .models import (
    OrderStatus,
    PaymentTransaction,
    StatusHistoryEntry,
    TrackingPoint,
    VendorOrder,
)


class OrderWriteError(Exception):
    """Raised when an order (or its line items) cannot be persisted."""
    pass


@dataclass
class OrderStore:
    """
    In-memory order repository.

    Records are copied on the way in and out so callers cannot mutate stored
    state without going through save().
    """
    _orders: Dict[str, VendorOrder] = field(default_factory=dict)
    _ids_by_number: Dict[str, str] = field(default_factory=dict)
    _history: Dict[str, List[StatusHistoryEntry]] = field(default_factory=dict)
    _tracking: Dict[str, List[TrackingPoint]] = field(default_factory=dict)
    _transactions: Dict[str, PaymentTransaction] = field(default_factory=dict)

    _locks: Dict[str, threading.RLock] = field(default_factory=dict)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock)

    # --- Orders ---

    def insert_order(self, order: VendorOrder) -> VendorOrder:
        if order.order_number in self._ids_by_number:
            raise OrderWriteError(f"Order number {order.order_number} already exists")
        if not order.items:
            raise OrderWriteError(f"Order {order.order_number} has no line items")
        self._orders[order.id] = copy.deepcopy(order)
        self._ids_by_number[order.order_number] = order.id
        return copy.deepcopy(order)

    def get(self, order_id: str) -> Optional[VendorOrder]:
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def get_by_number(self, order_number: str) -> Optional[VendorOrder]:
        order_id = self._ids_by_number.get(order_number)
        return self.get(order_id) if order_id else None

    def save(self, order: VendorOrder) -> VendorOrder:
        if order.id not in self._orders:
            raise OrderWriteError(f"Order {order.id} does not exist")
        self._orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    def orders_for_partner(self, partner_id: str, statuses: Optional[List[OrderStatus]] = None) -> List[VendorOrder]:
        found = [
            order for order in self._orders.values()
            if order.delivery_partner_id == partner_id and (statuses is None or order.status in statuses)
        ]
        found.sort(key=lambda order: order.created_at, reverse=True)
        return [copy.deepcopy(order) for order in found]

    def count_delivered_since(self, partner_id: str, since: datetime) -> int:
        return sum(
            1 for order in self._orders.values()
            if order.delivery_partner_id == partner_id
            and order.status == OrderStatus.DELIVERED
            and order.delivered_at is not None
            and order.delivered_at >= since
        )

    # --- Append-only side tables ---

    def append_history(self, entry: StatusHistoryEntry) -> None:
        self._history.setdefault(entry.order_id, []).append(entry)

    def history(self, order_id: str) -> List[StatusHistoryEntry]:
        return list(self._history.get(order_id, []))

    def append_tracking(self, point: TrackingPoint) -> None:
        self._tracking.setdefault(point.order_id, []).append(point)

    def tracking_points(self, order_id: str) -> List[TrackingPoint]:
        return sorted(self._tracking.get(order_id, []), key=lambda point: point.recorded_at)

    # --- Payment transactions ---

    def record_transaction(self, transaction: PaymentTransaction) -> None:
        self._transactions[transaction.external_id] = copy.deepcopy(transaction)

    def get_transaction(self, external_id: str) -> Optional[PaymentTransaction]:
        transaction = self._transactions.get(external_id)
        return copy.deepcopy(transaction) if transaction else None

    # --- Locking ---

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """
        Serialize check-then-write sequences on one order (e.g. two concurrent
        "mark delivered" calls). Re-entrant for the same thread.
        """
        with self._locks_guard:
            order_lock = self._locks.setdefault(key, threading.RLock())
        with order_lock:
            yield


class OrderNotFound(LookupError):
    """Raised by services when an order id does not resolve."""
    pass
