"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    code = "application_error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class SchedulingError(AppException):
    """Expected, caller-recoverable scheduling failure identified by a code."""

    def __init__(self, code: str, status_code: int, message: str | None = None):
        """Initialize with a machine-readable code and suggested status."""
        self.code = code
        super().__init__(message or code, status_code=status_code)


class InvalidDateTimeError(SchedulingError):
    """Instant could not be parsed or carries no timezone information."""

    def __init__(self, value: object):
        """Initialize with 422 status code."""
        super().__init__("invalid_datetime", 422, f"Invalid date-time: {value!r}")
        self.value = value


class InvalidRangeError(SchedulingError):
    """Listing range end is not after its start."""

    def __init__(self, message: str = "Range end must be after range start"):
        """Initialize with 422 status code."""
        super().__init__("invalid_range", 422, message)


class ReferenceNotFoundError(SchedulingError):
    """Provider, room, patient or appointment does not exist."""

    def __init__(self, resource: str, resource_id: object):
        """Initialize with 404 status code."""
        super().__init__(
            f"{resource}_not_found",
            404,
            f"{resource.capitalize()} {resource_id} not found",
        )
        self.resource = resource
        self.resource_id = resource_id


class InvalidSlotAlignmentError(SchedulingError):
    """Start instant does not fall on a slot boundary."""

    def __init__(self, slot_minutes: int):
        """Initialize with 422 status code."""
        super().__init__(
            "invalid_slot_alignment",
            422,
            f"Start must be aligned to {slot_minutes}-minute slots",
        )


class InvalidSlotDurationError(SchedulingError):
    """Duration is not a multiple of the slot granularity."""

    def __init__(self, duration_minutes: int, slot_minutes: int):
        """Initialize with 422 status code."""
        super().__init__(
            "invalid_slot_duration",
            422,
            f"Duration {duration_minutes} is not a multiple of {slot_minutes} minutes",
        )


class DoubleBookingError(SchedulingError):
    """Provider or room already has a scheduled appointment in the interval."""

    def __init__(self, message: str = "Provider or room is already booked for this slot"):
        """Initialize with 409 status code."""
        super().__init__("double_booking", 409, message)
