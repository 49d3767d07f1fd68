"""Error taxonomy for payment initiation and reconciliation.

Each error carries the HTTP status the initiation endpoint answers with.
Callback-path errors are never turned into HTTP errors; the webhook always
acknowledges and the detail goes to the logs and the callback_events table.
"""


class PaymentError(Exception):
    """Base exception for all payment errors."""

    status_code = 400

    def __init__(self, message: str = "") -> None:
        message = message or (self.__class__.__doc__ or "").strip()
        super().__init__(message)
        self.message = message


class ConfigurationError(PaymentError):
    """Gateway configuration is missing or invalid."""

    status_code = 500


class CredentialError(PaymentError):
    """Could not obtain an access token from the gateway."""

    status_code = 502


class InvalidPhoneNumber(PaymentError):
    """Phone number is not a valid M-Pesa subscriber number."""

    status_code = 400


class ApplicationNotFound(PaymentError):
    """Loan application not found."""

    status_code = 404


class AlreadyInitiated(PaymentError):
    """A payment has already been initiated for this application."""

    status_code = 409


class GatewayUnreachable(PaymentError):
    """Payment gateway could not be reached. Please try again."""

    status_code = 503


class GatewayRejected(PaymentError):
    """The gateway understood the request and declined it."""

    status_code = 400

    def __init__(self, code: str | None, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.http_status = http_status


class PersistenceError(PaymentError):
    """Payment was sent but the application could not be updated."""

    status_code = 500

    def __init__(self, message: str = "", checkout_reference: str | None = None) -> None:
        super().__init__(message)
        self.checkout_reference = checkout_reference


class ReconciliationMiss(PaymentError):
    """Callback references a checkout id that matches no application."""

    def __init__(self, checkout_reference: str | None) -> None:
        super().__init__(f"No application for checkout reference {checkout_reference!r}")
        self.checkout_reference = checkout_reference


class AmountMismatch(PaymentError):
    """Requested amount does not match the application fee."""

    status_code = 400
