from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for every expected failure of the booking core."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.fields:
            payload["fields"] = self.fields
        return payload


class ConflictError(BookingError):
    """The requested slot is already taken for the provider."""

    code = "conflict"
    status_code = 400


class ValidationError(BookingError):
    """Malformed booking fields or payment input. Raised before any write."""

    code = "validation_error"
    status_code = 400


class SettlementError(BookingError):
    """The payment backend declined, errored or timed out."""

    code = "payment_failed"
    status_code = 402


class CompensationError(BookingError):
    """
    Rolling back a booking after a failed settlement did not complete.

    The appointment/payment pair may be inconsistent and needs manual
    reconciliation.
    """

    code = "manual_intervention_required"
    status_code = 500

    def __init__(
        self,
        message: str,
        appointment_id: Optional[int] = None,
        payment_id: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.appointment_id = appointment_id
        self.payment_id = payment_id
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["appointment_id"] = self.appointment_id
        payload["payment_id"] = self.payment_id
        return payload


class RefundStateError(BookingError):
    code = "invalid_state"
    status_code = 400


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404


class PermissionDeniedError(BookingError):
    code = "forbidden"
    status_code = 403
