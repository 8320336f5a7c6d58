"""
Purpose: Core data models for the delivery-partner domain.
What it does:
Defines the structure of a DeliveryPartner (a courier account scoped to one vendor)
without relying on Django ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class DeliveryPartner:
    """
    A courier account. Belongs to exactly one vendor; inactive partners
    keep their history but cannot receive new assignments.
    """
    id: str
    vendor_id: str
    user_id: str
    is_active: bool = True
    name: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        partner_id: str,
        vendor_id: str,
        user_id: str,
        is_active: bool = True,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> DeliveryPartner:
        return cls(
            id=partner_id,
            vendor_id=vendor_id,
            user_id=user_id,
            is_active=is_active,
            name=name,
            phone=phone,
            created_at=datetime.now(),
        )
