"""
Role-gated booking transitions.

The table says who may ask for a move; ``check_transition`` adds the
date, payment and reason preconditions. Nothing here talks to the store.
"""
import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from rentals.core.config import settings
from rentals.core.errors import InvalidTransitionError, ValidationError
from rentals.core.messages import messages
from rentals.models import (
    TERMINAL_STATUSES,
    BookingStatus,
    OwnerConfirmationStatus,
    PaymentStatus,
    Role,
)
from rentals.schemas.booking import BookingRecord
from rentals.utils.validators import validate_reason

OWNER = frozenset({Role.OWNER})
RENTER = frozenset({Role.RENTER})
EITHER = frozenset({Role.OWNER, Role.RENTER})

ALLOWED_TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], FrozenSet[Role]] = {
    (BookingStatus.PENDING, BookingStatus.CONFIRMED): OWNER,
    (BookingStatus.PENDING, BookingStatus.CANCELLED): EITHER,
    (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS): EITHER,
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLATION_REQUESTED): RENTER,
    (BookingStatus.CANCELLATION_REQUESTED, BookingStatus.CANCELLED): OWNER,
    (BookingStatus.CANCELLATION_REQUESTED, BookingStatus.CONFIRMED): OWNER,
    (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED): EITHER,
}

# Any non-terminal status may escalate to a dispute.
for _status in BookingStatus:
    if _status not in TERMINAL_STATUSES and _status != BookingStatus.DISPUTED:
        ALLOWED_TRANSITIONS[(_status, BookingStatus.DISPUTED)] = EITHER


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_roles(current: BookingStatus, target: BookingStatus) -> FrozenSet[Role]:
    return ALLOWED_TRANSITIONS.get((current, target), frozenset())


def _require_reason(
    reason: Optional[str],
    min_length: int = 1,
    enabled: bool = True,
    message: Optional[str] = None,
) -> None:
    if not enabled:
        return
    ok, error = validate_reason(reason, min_length)
    if not ok:
        raise ValidationError(message or error, field="reason")


def check_transition(
    booking: BookingRecord,
    target: BookingStatus,
    role: Optional[Role],
    today: datetime.date,
    reason: Optional[str] = None,
    check_reason: bool = True,
) -> None:
    """
    Raise if ``role`` may not move ``booking`` to ``target`` today.

    InvalidTransitionError for table and state preconditions,
    ValidationError for a missing or too short reason.
    """
    current = booking.status

    def reject(message: str) -> InvalidTransitionError:
        return InvalidTransitionError(
            message,
            current=current.value,
            target=target.value,
            role=role.value if role else None,
        )

    if role is None:
        raise reject("Only the renter or the owner of a booking can change it")

    if role not in allowed_roles(current, target):
        raise reject(f"{role.value} cannot move a {current.value} booking to {target.value}")

    if target == BookingStatus.DISPUTED:
        _require_reason(reason, enabled=check_reason)
        return

    if current == BookingStatus.PENDING and target == BookingStatus.CONFIRMED:
        if booking.owner_confirmation_status == OwnerConfirmationStatus.CONFIRMED:
            raise reject("Booking is already confirmed by the owner")

    elif current == BookingStatus.PENDING and target == BookingStatus.CANCELLED:
        if role == Role.OWNER:
            _require_reason(reason, enabled=check_reason)
        elif booking.payment_status == PaymentStatus.COMPLETED:
            raise reject("A paid booking must go through a cancellation request")

    elif target == BookingStatus.IN_PROGRESS:
        if today < booking.start_date:
            raise reject("Check-in is not possible before the start date")
        if role == Role.RENTER and booking.payment_status != PaymentStatus.COMPLETED:
            raise reject("Payment must be completed before check-in")

    elif target == BookingStatus.CANCELLATION_REQUESTED:
        if today >= booking.start_date:
            raise reject("Cancellation can only be requested before the rental starts")
        _require_reason(
            reason,
            settings.min_cancellation_reason_length,
            check_reason,
            messages.cancellation_reason_too_short(),
        )

    elif current == BookingStatus.CANCELLATION_REQUESTED and target == BookingStatus.CONFIRMED:
        _require_reason(reason, enabled=check_reason)


def available_transitions(
    booking: BookingRecord,
    role: Optional[Role],
    today: datetime.date,
) -> List[BookingStatus]:
    """Targets ``role`` could request now, ignoring reason requirements."""
    targets: List[BookingStatus] = []
    for (current, target), roles in ALLOWED_TRANSITIONS.items():
        if current != booking.status or role not in roles:
            continue
        try:
            check_transition(booking, target, role, today, check_reason=False)
        except InvalidTransitionError:
            continue
        targets.append(target)
    return targets
