from rentals.core.config import settings
from rentals.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NoEligibleDatesError,
    TransportError,
    ValidationError,
)


class Messages:
    """
    Centralized store for user-facing messages.
    Uses settings for dynamic content.
    """

    @property
    def VALIDATION_FAILED(self) -> str:
        return "Please check the highlighted fields and try again."

    @property
    def NO_ELIGIBLE_DATES(self) -> str:
        return "None of the selected dates can be changed."

    @property
    def TRANSITION_NOT_ALLOWED(self) -> str:
        return (
            "This action is no longer available for this booking. "
            "Refresh the booking to see its current status."
        )

    @property
    def CONFLICT(self) -> str:
        return (
            "Someone else changed this item in the meantime. "
            "Refresh and try again."
        )

    @property
    def TRANSPORT(self) -> str:
        return "We could not reach the server. Check your connection and retry."

    @property
    def UNEXPECTED(self) -> str:
        return "Something went wrong. Please try again."

    def cancellation_reason_too_short(self) -> str:
        return (
            "Please provide a detailed reason "
            f"(at least {settings.min_cancellation_reason_length} characters)."
        )

    def dates_partially_applied(self, action: str, accepted: int, rejected: int) -> str:
        if rejected == 0:
            return f"{accepted} date(s) {action}."
        return f"{accepted} date(s) {action}, {rejected} skipped."

    def no_eligible_dates(self, action: str, rejected: int) -> str:
        return (
            f"{self.NO_ELIGIBLE_DATES} "
            f"{rejected} date(s) are booked, blocked or in the past and cannot be {action}."
        )


messages = Messages()


def describe_error(exc: Exception) -> str:
    """Map an error to a distinct, actionable message."""
    if isinstance(exc, ValidationError):
        return exc.message or messages.VALIDATION_FAILED
    if isinstance(exc, NoEligibleDatesError):
        return messages.no_eligible_dates(exc.action, len(exc.rejected))
    if isinstance(exc, InvalidTransitionError):
        return messages.TRANSITION_NOT_ALLOWED
    if isinstance(exc, ConflictError):
        return messages.CONFLICT
    if isinstance(exc, TransportError):
        return messages.TRANSPORT
    return messages.UNEXPECTED


def needs_refresh(exc: Exception) -> bool:
    """True when the caller should offer a refresh action with the message."""
    return isinstance(exc, (ConflictError, TransportError, InvalidTransitionError))
