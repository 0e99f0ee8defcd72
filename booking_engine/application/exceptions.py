class BookingEngineError(RuntimeError):
    """Base class for every failure the booking engine reports to callers."""
    pass


class ValidationError(BookingEngineError):
    """Raised when input is malformed (missing references, inverted or past windows)."""
    pass


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not allowed from the booking's current status."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move booking from {current} to {target}")
        self.current = current
        self.target = target


class ConflictError(BookingEngineError):
    """Raised when the requested window overlaps an active booking."""

    def __init__(self, message: str = "Requested slot is not available", conflict_count: int = 0) -> None:
        super().__init__(message)
        self.conflict_count = conflict_count


class NotFoundError(BookingEngineError):
    """Raised when a booking, client or service reference does not exist."""
    pass


class StaleBookingError(NotFoundError):
    """Raised when a conditional write finds the booking no longer in the expected status."""

    def __init__(self, booking_id: int, expected_status: str) -> None:
        super().__init__(f"Booking {booking_id} not found in expected state {expected_status}")
        self.booking_id = booking_id
        self.expected_status = expected_status


class CollaboratorError(BookingEngineError):
    """Raised by calendar and messaging adapters (timeouts, network errors, bad responses)."""
    pass


class PersistenceError(BookingEngineError):
    """Raised when the store itself fails; the operation did not happen."""
    pass


class DuplicateBookingCodeError(PersistenceError):
    """Raised when a generated booking number or confirmation code collides."""
    pass
