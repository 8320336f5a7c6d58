#Expose the post-checkout pipeline pieces:
#State machine rules (who may move an order where)
#Fulfillment service (status changes, partner assignment)
#Live tracking ingest and COD reconciliation

from .cod import CODCollectionError, CODReconciler
from .fulfillment import FulfillmentService
from .state_machines import Actor, AssignmentError, TrackingInfo, TransitionError
from .tracking import GpsFix, IngestResult, TrackingChannel, TrackingIngest, TrackingRegistry

__all__ = [
    "Actor",
    "AssignmentError",
    "TrackingInfo",
    "TransitionError",
    "FulfillmentService",
    "CODCollectionError",
    "CODReconciler",
    "GpsFix",
    "IngestResult",
    "TrackingChannel",
    "TrackingIngest",
    "TrackingRegistry",
]
