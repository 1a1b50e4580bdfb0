"""
Error taxonomy of the booking core.

Every operation reports failures with one of these exceptions; callers map
them to user-facing text with :func:`rentals.core.messages.describe_error`.
"""
from datetime import date
from typing import Dict, Optional


class RentalsError(Exception):
    """Base class for all booking core errors."""


class ValidationError(RentalsError):
    """Malformed input caught before any store access. Never retried."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class NoEligibleDatesError(RentalsError):
    """A withdraw/restore batch contained zero actionable dates."""

    def __init__(self, action: str, rejected: Dict[date, str]):
        self.action = action
        self.rejected = dict(rejected)
        super().__init__(
            f"No eligible dates to {action}: {len(self.rejected)} rejected"
        )


class InvalidTransitionError(RentalsError):
    """A booking transition not permitted for the current (status, role)."""

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        target: Optional[str] = None,
        role: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.current = current
        self.target = target
        self.role = role


class ConflictError(RentalsError):
    """The backing store rejected a write because its state moved on."""


class TransportError(RentalsError):
    """Network, timeout or server failure. Safe to retry manually."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
