"""
Purpose: Split a multi-vendor cart into one partition per vendor.
What it does:
- groups cart lines by vendor id, keeping the order in which vendors first appear
- computes each partition's subtotal and the grand subtotal

Rule: no pricing rules beyond unit price x quantity; shipping lives in shipping.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Sequence

from .errors import InvalidCheckoutState
from .models import ZERO, CartLine


@dataclass(frozen=True)
class VendorPartition:
    vendor_id: str
    lines: List[CartLine]

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), ZERO)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class CartSummary:
    partitions: List[VendorPartition]

    @property
    def grand_subtotal(self) -> Decimal:
        return sum((p.subtotal for p in self.partitions), ZERO)

    @property
    def vendor_ids(self) -> List[str]:
        return [p.vendor_id for p in self.partitions]

    def partition(self, vendor_id: str) -> VendorPartition:
        for p in self.partitions:
            if p.vendor_id == vendor_id:
                return p
        raise KeyError(vendor_id)


def aggregate_cart(lines: Sequence[CartLine]) -> CartSummary:
    """
    Partition cart lines by vendor.

    Raises InvalidCheckoutState for a line without a vendor or with quantity < 1.
    """
    grouped: Dict[str, List[CartLine]] = {}

    for line in lines:
        if not line.vendor_id:
            raise InvalidCheckoutState(f"Cart line {line.product_id} has no vendor")
        if line.quantity < 1:
            raise InvalidCheckoutState(f"Cart line {line.product_id} has quantity {line.quantity}")
        #dict keeps insertion order, so vendors come out in first-seen order
        grouped.setdefault(line.vendor_id, []).append(line)

    return CartSummary(
        partitions=[VendorPartition(vendor_id=vid, lines=vendor_lines) for vid, vendor_lines in grouped.items()]
    )
