#Expose the payment pipeline pieces:
#Gateway interface + errors
#Router (the "one call" entry point per vendor)
#Client-side collectors for sync-verify gateways

from .gateway import (
    GatewayOrder,
    PaymentConfirmation,
    PaymentError,
    PaymentInitiationFailure,
    PaymentVerificationFailure,
    RedirectGateway,
    RedirectSession,
    RedirectStatus,
    SyncVerifyGateway,
)
from .router import (
    ModalPaymentCollector,
    OutcomeKind,
    PaymentOutcome,
    PaymentRouter,
    PrecollectedPayments,
    select_payment_method,
)

__all__ = [
    "GatewayOrder",
    "PaymentConfirmation",
    "PaymentError",
    "PaymentInitiationFailure",
    "PaymentVerificationFailure",
    "RedirectGateway",
    "RedirectSession",
    "RedirectStatus",
    "SyncVerifyGateway",
    "ModalPaymentCollector",
    "OutcomeKind",
    "PaymentOutcome",
    "PaymentRouter",
    "PrecollectedPayments",
    "select_payment_method",
]
