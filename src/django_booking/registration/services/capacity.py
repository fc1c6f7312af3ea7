"""Session seat capacity enforcement.

``Session.current_registrations`` is moved only by the functions in this
module. Reservation is a single conditional ``UPDATE`` that increments the
counter only when the result still fits within ``capacity``; it never reads
the counter first and writes it later, so two concurrent bookings cannot both
take the last seat. Callers run these functions inside the same
``transaction.atomic`` block that writes the order items, so the counter and
the items commit or roll back together.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest

from django_booking.catalog.models import Session
from django_booking.registration.errors import BookingValidationError, SessionNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """Outcome of a capacity check or reservation.

    ``remaining`` is the number of free seats after the reservation when
    ``ok`` is True, and the number of free seats left untouched when ``ok``
    is False.
    """

    ok: bool
    remaining: int


@dataclass(frozen=True)
class SessionAvailability:
    """Seat availability snapshot for a session."""

    session_id: int
    capacity: int
    registered: int
    available: int
    is_waitlist_only: bool


def _validate_seats(seats: int) -> None:
    if seats <= 0:
        raise BookingValidationError(f"Seat count must be positive, got {seats}.", {"seats": seats})


def reserve_seats(session_id: int, seats: int) -> Reservation:
    """Atomically take ``seats`` seats from a session.

    Args:
        session_id: Primary key of the session.
        seats: Number of seats to reserve (positive).

    Returns:
        A :class:`Reservation`. On failure nothing has been written.

    Raises:
        SessionNotFoundError: If the session does not exist.
        BookingValidationError: If ``seats`` is not positive.
    """
    _validate_seats(seats)
    updated = Session.objects.filter(
        pk=session_id,
        current_registrations__lte=F("capacity") - seats,
    ).update(current_registrations=F("current_registrations") + seats)

    row = Session.objects.filter(pk=session_id).values_list("capacity", "current_registrations").first()
    if row is None:
        raise SessionNotFoundError(session_id)
    capacity, current = row
    remaining = max(capacity - current, 0)

    if not updated:
        logger.warning(
            "Rejected reservation of %d seat(s) for session %s: %d remaining",
            seats,
            session_id,
            remaining,
        )
        return Reservation(ok=False, remaining=remaining)
    return Reservation(ok=True, remaining=remaining)


def check_capacity(session: Session, seats: int) -> Reservation:
    """Advisory, read-only capacity check against the stored counter.

    This does not hold any seat. The authoritative decision is made by
    :func:`reserve_seats` at persistence time.

    Args:
        session: The session to check.
        seats: Number of seats wanted.

    Returns:
        A :class:`Reservation` whose ``remaining`` is the current free count.
    """
    _validate_seats(seats)
    remaining = max(session.capacity - session.current_registrations, 0)
    return Reservation(ok=seats <= remaining, remaining=remaining)


@transaction.atomic
def release_seats(session_id: int, seats: int) -> None:
    """Return ``seats`` seats to a session, never going below zero.

    A release larger than the current count indicates counter drift. It is
    logged as an error and the counter is floored at zero.

    Args:
        session_id: Primary key of the session.
        seats: Number of seats to release (positive).

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    _validate_seats(seats)
    current = Session.objects.select_for_update().filter(pk=session_id).values_list(
        "current_registrations", flat=True
    ).first()
    if current is None:
        raise SessionNotFoundError(session_id)
    if current < seats:
        logger.error(
            "Capacity counter drift on session %s: releasing %d seat(s) with only %d registered",
            session_id,
            seats,
            current,
        )
    Session.objects.filter(pk=session_id).update(
        current_registrations=Greatest(F("current_registrations") - seats, Value(0)),
    )


def get_session_availability(session_id: int) -> SessionAvailability:
    """Return capacity, registered, available and waitlist-only for a session.

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    try:
        session = Session.objects.get(pk=session_id)
    except Session.DoesNotExist:
        raise SessionNotFoundError(session_id) from None
    available = max(session.capacity - session.current_registrations, 0)
    return SessionAvailability(
        session_id=session.pk,
        capacity=session.capacity,
        registered=session.current_registrations,
        available=available,
        is_waitlist_only=available == 0,
    )


def seats_by_session(items: Iterable[object]) -> dict[int, int]:
    """Group requested seats per session.

    Every item with a ``session_id`` counts as one seat. The result is ordered
    by session id so concurrent orders touching several sessions lock the rows
    in the same order.
    """
    counts = Counter(item.session_id for item in items)
    return dict(sorted(counts.items()))
