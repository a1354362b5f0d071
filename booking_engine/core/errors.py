"""
Error taxonomy for availability and admission.

Every ``BookingError`` is a recoverable, caller-facing outcome. The HTTP layer
turns it into a structured ``{"error": code, "message": ...}`` body.
"""


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidService(BookingError):
    """Unknown or inactive service."""
    code = "invalid_service"
    status_code = 400


class DayClosed(BookingError):
    """The business is closed on the requested day."""
    code = "day_closed"
    status_code = 409


class SlotUnavailable(BookingError):
    """The requested time is no longer available."""
    code = "slot_unavailable"
    status_code = 409


class DailyCapReached(BookingError):
    """No more bookings can be accepted for this date."""
    code = "daily_cap_reached"
    status_code = 409


class NotFound(BookingError):
    """Booking not found."""
    code = "not_found"
    status_code = 404


class StoreConflictError(Exception):
    """
    Transient write conflict raised by a store (lock contention, unique index hit).
    Never leaves the admission path: it is retried, then reported as SlotUnavailable.
    """
