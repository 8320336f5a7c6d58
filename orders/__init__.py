"""
Orders domain package.

Public API:
- Domain models: VendorOrder, OrderLineItem, StatusHistoryEntry, TrackingPoint, PaymentTransaction
- Enums: OrderStatus, PaymentMethod, PaymentStatus
- Storage: OrderStore
"""
from .models import (
    OrderLineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentTransaction,
    StatusHistoryEntry,
    TrackingPoint,
    VendorOrder,
    generate_order_number,
)
from .store import OrderNotFound, OrderStore, OrderWriteError

__all__ = [
    "VendorOrder",
    "OrderLineItem",
    "StatusHistoryEntry",
    "TrackingPoint",
    "PaymentTransaction",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "generate_order_number",
    "OrderStore",
    "OrderWriteError",
    "OrderNotFound",
]
