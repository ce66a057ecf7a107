"""Error kinds raised by the booking engine.

Every rejected operation raises a distinct subclass so the HTTP layer can
render a specific message and status code.
"""


class BookingError(Exception):
    code = "BOOKING_ERROR"
    status_code = 400
    message = "Booking operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class NotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Appointment not found"


class AlreadyBooked(BookingError):
    code = "ALREADY_BOOKED"
    status_code = 409
    message = "This slot is already booked"


class SlotTaken(BookingError):
    code = "SLOT_TAKEN"
    status_code = 409
    message = "Failed to book appointment - slot may have been taken"


class SlotInPast(BookingError):
    code = "SLOT_IN_PAST"
    status_code = 400
    message = "Cannot book appointments in the past"


class DuplicateBookingSameDay(BookingError):
    code = "DUPLICATE_BOOKING_SAME_DAY"
    status_code = 409
    message = "You already have an appointment on this date"


class NotOwner(BookingError):
    code = "NOT_OWNER"
    status_code = 403
    message = "You can only cancel your own appointments"


class NotBooked(BookingError):
    code = "NOT_BOOKED"
    status_code = 409
    message = "This appointment is not booked"


class TooLateToCancel(BookingError):
    code = "TOO_LATE_TO_CANCEL"
    status_code = 400
    message = "Cannot cancel appointments less than 24 hours before the start time"


class StorageFailure(BookingError):
    """Transaction or connectivity problem. Callers decide whether to retry."""

    code = "STORAGE_FAILURE"
    status_code = 503
    message = "Storage is temporarily unavailable"
