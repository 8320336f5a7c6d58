"""
Purpose: Which delivery partners a vendor can hand an order to.
What it does:
Filters a vendor's partners down to the ones allowed to take new assignments,
and keeps an in-memory roster with the same surface as the Django adapter.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import DeliveryPartner


def filter_eligible_partners(partners: List[DeliveryPartner], vendor_id: str) -> List[DeliveryPartner]:
    """
    Returns only active partners that belong to the vendor.
    """
    eligible = []

    for partner in partners:
        if not partner.is_active:
            continue

        if partner.vendor_id != vendor_id:
            continue

        eligible.append(partner)

    return eligible


@dataclass
class InMemoryPartnerRoster:
    _partners: Dict[str, DeliveryPartner] = field(default_factory=dict)

    def add(self, partner: DeliveryPartner) -> None:
        self._partners[partner.id] = partner

    def get(self, partner_id: str) -> Optional[DeliveryPartner]:
        return self._partners.get(partner_id)

    def get_by_user(self, user_id: str) -> Optional[DeliveryPartner]:
        for partner in self._partners.values():
            if partner.user_id == user_id and partner.is_active:
                return partner
        return None

    def for_vendor(self, vendor_id: str) -> List[DeliveryPartner]:
        return filter_eligible_partners(list(self._partners.values()), vendor_id)
