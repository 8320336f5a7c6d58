"""
Purpose: In-memory versions of the collaborators checkout reads from.
What it does:
- InMemoryCartStore: cart lines per customer, clear / remove-by-vendor
- InMemoryAddressBook: saved addresses per customer
- InMemoryVendorDirectory: VendorSettings per vendor
- checked_settings: validation applied to settings loaded from storage
- InMemoryInventory: on-hand stock per product, decremented on delivery

The Django backend implements the same method names over the ORM.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .errors import InvalidCheckoutState
from .models import Address, CartLine, VendorSettings

logger = logging.getLogger(__name__)


@dataclass
class InMemoryCartStore:
    _lines: Dict[str, List[CartLine]] = field(default_factory=dict)

    def add(self, customer_id: str, line: CartLine) -> None:
        self._lines.setdefault(customer_id, []).append(line)

    def lines(self, customer_id: str) -> List[CartLine]:
        return list(self._lines.get(customer_id, []))

    def clear(self, customer_id: str) -> None:
        self._lines.pop(customer_id, None)

    def remove_vendor_lines(self, customer_id: str, vendor_ids: Iterable[str]) -> None:
        drop = set(vendor_ids)
        self._lines[customer_id] = [line for line in self._lines.get(customer_id, []) if line.vendor_id not in drop]


@dataclass
class InMemoryAddressBook:
    _addresses: Dict[str, Dict[str, Address]] = field(default_factory=dict)

    def add(self, customer_id: str, address: Address) -> None:
        self._addresses.setdefault(customer_id, {})[address.id] = address

    def get(self, customer_id: str, address_id: str) -> Optional[Address]:
        return self._addresses.get(customer_id, {}).get(address_id)


def checked_settings(settings: VendorSettings) -> VendorSettings:
    """
    Settings read back from storage may never have gone through validate().
    A misconfigured store cannot take orders until the vendor fixes it.
    """
    try:
        settings.validate()
    except ValueError as e:
        logger.error(f"Vendor {settings.vendor_id} has invalid settings: {e}")
        raise InvalidCheckoutState(f"Store {settings.vendor_id} is not set up to take orders: {e}") from e
    return settings


@dataclass
class InMemoryVendorDirectory:
    _settings: Dict[str, VendorSettings] = field(default_factory=dict)

    def put(self, settings: VendorSettings) -> None:
        settings.validate()
        self._settings[settings.vendor_id] = settings

    def get(self, vendor_id: str) -> Optional[VendorSettings]:
        return self._settings.get(vendor_id)


@dataclass
class InMemoryInventory:
    _stock: Dict[str, int] = field(default_factory=dict)

    def set_stock(self, product_id: str, quantity: int) -> None:
        self._stock[product_id] = quantity

    def stock(self, product_id: str) -> int:
        return self._stock.get(product_id, 0)

    def decrement(self, product_id: str, quantity: int) -> int:
        """
        Subtract delivered quantity from on-hand stock, floored at zero.
        Returns the new stock level.
        """
        current = self._stock.get(product_id, 0)
        remaining = max(0, current - quantity)
        if current - quantity < 0:
            logger.warning("Stock for %s would go negative (%s - %s); flooring at 0", product_id, current, quantity)
        self._stock[product_id] = remaining
        return remaining
