from .models import DeliveryPartner
from .selection import InMemoryPartnerRoster, filter_eligible_partners

__all__ = ["DeliveryPartner", "InMemoryPartnerRoster", "filter_eligible_partners"]
