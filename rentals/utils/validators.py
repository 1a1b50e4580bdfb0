"""
Input validation helpers
"""

from datetime import date
from typing import Optional, Tuple

from rentals.models import FulfillmentMethod


def validate_rental_dates(
    start_date: Optional[date], end_date: Optional[date]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a rental window.
    Returns (is_valid, error_message)
    """
    if start_date is None or end_date is None:
        return False, "Start and end dates are required"

    if end_date <= start_date:
        return False, "End date must be after start date"

    return True, None


def validate_fulfillment(
    method: FulfillmentMethod,
    address: Optional[str],
    meet_location: Optional[str],
) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Delivery needs an address, meeting in public needs a location.
    Returns (is_valid, error_message, field)
    """
    if method == FulfillmentMethod.DELIVERY and not (address or "").strip():
        return False, "Delivery address is required", "fulfillment_address"

    if method == FulfillmentMethod.MEET_PUBLIC and not (meet_location or "").strip():
        return False, "Meeting location is required", "meet_location"

    return True, None, None


def validate_reason(reason: Optional[str], min_length: int = 1) -> Tuple[bool, Optional[str]]:
    """A free-text reason must be present and at least min_length characters."""
    text = (reason or "").strip()
    if not text:
        return False, "Please provide a reason"

    if len(text) < min_length:
        return False, f"Please provide a detailed reason (at least {min_length} characters)"

    return True, None
