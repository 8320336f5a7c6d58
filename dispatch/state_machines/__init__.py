from .order_state import Actor, TrackingInfo, TransitionError, apply_transition, validate_transition
from .partner_state import AssignmentError, assign_partner

__all__ = [
    "Actor",
    "TrackingInfo",
    "TransitionError",
    "apply_transition",
    "validate_transition",
    "AssignmentError",
    "assign_partner",
]
