"""
This file contains custom, application-specific exceptions.
"""


class BookingValidationError(Exception):
    """Raised when user input fails a precondition (missing field, past date...)."""
    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class SlotConflictError(BookingValidationError):
    """Raised when a proposed availability rule overlaps another rule."""
    pass


class InvalidWizardTransition(Exception):
    """Raised when the booking wizard receives an event its current state does not accept."""
    pass


class InvalidStatusTransition(Exception):
    """Raised when a booking status change is not allowed from the current status."""
    pass


class StoreError(Exception):
    """Raised when the Store rejects a read or write."""
    pass


class BookingConflictError(StoreError):
    """Raised when the requested slot is already taken by another booking."""
    pass


class AvailabilityResolutionError(Exception):
    """Raised when available slots could not be computed because a read failed."""
    pass


class EmailDispatchError(Exception):
    """Raised when the transactional email provider rejects a message."""
    pass
