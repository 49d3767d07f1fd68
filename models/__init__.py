from models.application import ApplicationStatus, LoanApplication
from models.callback_event import CallbackEvent, CallbackOutcome

__all__ = [
    "ApplicationStatus",
    "LoanApplication",
    "CallbackEvent",
    "CallbackOutcome",
]
