"""Character role validation and occupancy.

A session either has no roles (role selection does not apply) or a set of
roles, each with its own capacity. Role occupancy is never stored: it is
counted from order items of live orders, so cancelling an order frees its
role slots without any extra write.
"""

from dataclasses import dataclass

from django.db.models import Count, Q

from django_booking.catalog.models import CharacterRole, Session
from django_booking.registration.errors import InvalidRoleError, RoleFullError, SessionNotFoundError
from django_booking.registration.models import Order, OrderItem


@dataclass(frozen=True)
class RoleValidation:
    """Result of validating a role choice for a session."""

    valid: bool
    reason: str = ""
    code: str = ""


@dataclass(frozen=True)
class RoleAvailability:
    """Occupancy snapshot for a single character role."""

    role_id: str
    name: str
    name_en: str
    image_url: str
    capacity: int
    assigned: int
    available: int


def _get_session(session_id: int) -> Session:
    try:
        return Session.objects.get(pk=session_id)
    except Session.DoesNotExist:
        raise SessionNotFoundError(session_id) from None


def count_role_assignments(role: CharacterRole) -> int:
    """Return the number of live order items assigned to ``role``."""
    return OrderItem.objects.filter(role=role, order__status__in=Order.LIVE_STATUSES).count()


def role_exists_in_session(session_id: int, role_id: str) -> bool:
    """Return True when ``role_id`` is one of the session's roles. Capacity is not read."""
    return CharacterRole.objects.filter(session_id=session_id, key=role_id).exists()


def requires_role_selection(session_id: int) -> bool:
    """Return True when the session defines character roles.

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    return _get_session(session_id).has_roles


def assert_role_assignable(session: Session, role_id: str) -> CharacterRole:
    """Return the role for ``role_id`` if a new participant can take it.

    Args:
        session: The session being booked.
        role_id: The public role key submitted by the client.

    Returns:
        The matching :class:`CharacterRole`.

    Raises:
        InvalidRoleError: If the session has no roles or does not offer
            ``role_id``.
        RoleFullError: If the role has no free slot.
    """
    if not session.has_roles:
        raise InvalidRoleError.not_applicable(session.pk, session.title)
    role = session.roles.filter(key=role_id).first()
    if role is None:
        raise InvalidRoleError.unknown(session.pk, role_id)
    if count_role_assignments(role) >= role.capacity:
        raise RoleFullError(session.pk, role.key, role.display_name)
    return role


def validate_role_assignment(session_id: int, role_id: str) -> RoleValidation:
    """Check whether ``role_id`` can be selected for a session.

    Args:
        session_id: Primary key of the session.
        role_id: The public role key submitted by the client.

    Returns:
        A :class:`RoleValidation`; ``reason`` and ``code`` are set when
        ``valid`` is False.

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    session = _get_session(session_id)
    try:
        assert_role_assignable(session, role_id)
    except (InvalidRoleError, RoleFullError) as exc:
        return RoleValidation(valid=False, reason=exc.message, code=exc.code.value)
    return RoleValidation(valid=True)


def get_role_availability(session_id: int) -> list[RoleAvailability]:
    """Return per-role capacity and live occupancy for a session.

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    session = _get_session(session_id)
    roles = session.roles.annotate(
        assigned=Count("order_items", filter=Q(order_items__order__status__in=Order.LIVE_STATUSES)),
    )
    return [
        RoleAvailability(
            role_id=role.key,
            name=role.name,
            name_en=role.name_en,
            image_url=role.image_url,
            capacity=role.capacity,
            assigned=role.assigned,
            available=max(role.capacity - role.assigned, 0),
        )
        for role in roles
    ]


def find_overbooked_roles(session_id: int) -> list[CharacterRole]:
    """Return the session's roles whose live occupancy exceeds their capacity."""
    roles = CharacterRole.objects.filter(session_id=session_id).annotate(
        assigned=Count("order_items", filter=Q(order_items__order__status__in=Order.LIVE_STATUSES)),
    )
    return [role for role in roles if role.assigned > role.capacity]

