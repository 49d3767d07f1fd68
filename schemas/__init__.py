from schemas.application import ApplicationCreate, ApplicationResponse
from schemas.payment import (
    CallbackAck,
    CallbackMetadata,
    CallbackMetadataItem,
    PaymentStatusResponse,
    StkCallback,
    StkCallbackBody,
    StkCallbackEnvelope,
    StkPushRequest,
    StkPushResponse,
    WaitResponse,
)

__all__ = [
    "ApplicationCreate",
    "ApplicationResponse",
    "CallbackAck",
    "CallbackMetadata",
    "CallbackMetadataItem",
    "PaymentStatusResponse",
    "StkCallback",
    "StkCallbackBody",
    "StkCallbackEnvelope",
    "StkPushRequest",
    "StkPushResponse",
    "WaitResponse",
]
