"""Order composition and persistence.

Placing an order is split in two steps. :meth:`CheckoutService.compose_order`
validates the request and computes prices without holding any seat; its
capacity and role checks are advisory and exist to fail fast with a precise
error. :meth:`CheckoutService.persist_order` writes the order and its items
and takes the seats with the atomic capacity guard, all in one transaction;
that is where the authoritative decision is made.
"""

import dataclasses
import logging
import secrets
import string
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from django_booking.catalog.models import CharacterRole, Session
from django_booking.registration.errors import (
    BookingValidationError,
    CapacityExceededError,
    DuplicateOrderNumberError,
    EmptyOrderError,
    InvalidRoleError,
    PersistenceError,
    RoleFullError,
    SessionClosedError,
    SessionNotFoundError,
    translate_database_errors,
)
from django_booking.registration.models import Child, Order, OrderItem
from django_booking.registration.services.capacity import check_capacity, reserve_seats, seats_by_session
from django_booking.registration.services.children import ChildService
from django_booking.registration.services.pricing import PricingSummary, calculate_pricing
from django_booking.registration.services.roles import (
    assert_role_assignable,
    count_role_assignments,
    find_overbooked_roles,
)
from django_booking.registration.signals import order_placed, send_on_commit
from django_booking.settings import get_config

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3


@dataclass(frozen=True)
class OrderItemRequest:
    """One requested seat: a session, a child (existing or new) and an optional role."""

    session_id: int
    child_id: int | None = None
    child_name: str = ""
    child_age: int | None = None
    role_id: str = ""


@dataclass
class ComposedItem:
    """A validated, priced seat ready to be written."""

    session: Session
    child: Child
    role: CharacterRole | None
    price: Decimal
    discount_amount: Decimal = Decimal("0")

    @property
    def session_id(self) -> int:
        return self.session.pk


@dataclass
class ComposedOrder:
    """A fully validated order that has not been written yet."""

    parent: object
    items: list[ComposedItem]
    pricing: PricingSummary
    payment_method: str
    order_number: str
    payment_deadline: datetime
    notes: str = ""
    group_code: str = ""
    created_at: datetime = field(default_factory=timezone.now)


def generate_order_number(now: datetime | None = None) -> str:
    """Return a new order number: prefix, UTC timestamp and a random suffix.

    For example ``SW20261019093015K7QF`` with the default ``"SW"`` prefix.
    """
    now = now or timezone.now()
    chars = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(chars) for _ in range(4))
    return f"{get_config().order_number_prefix}{now.astimezone(UTC):%Y%m%d%H%M%S}{suffix}"


def _load_sessions(session_ids: list[int]) -> dict[int, Session]:
    sessions = Session.objects.in_bulk(session_ids)
    for session_id in session_ids:
        session = sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != Session.Status.ACTIVE:
            raise SessionClosedError(session_id, session.status)
    return sessions


def _resolve_roles(items: list[OrderItemRequest], sessions: dict[int, Session]) -> list[CharacterRole | None]:
    """Validate each item's role choice, including seats taken by earlier items of the same order."""
    has_roles = {session_id: session.has_roles for session_id, session in sessions.items()}
    assigned: dict[int, int] = {}
    requested: Counter[int] = Counter()
    roles: list[CharacterRole | None] = []

    for item in items:
        session = sessions[item.session_id]
        if not item.role_id:
            if has_roles[item.session_id]:
                raise InvalidRoleError.missing(session.pk, session.title)
            roles.append(None)
            continue
        role = assert_role_assignable(session, item.role_id)
        if role.pk not in assigned:
            assigned[role.pk] = count_role_assignments(role)
        requested[role.pk] += 1
        if assigned[role.pk] + requested[role.pk] > role.capacity:
            raise RoleFullError(session.pk, role.key, role.display_name)
        roles.append(role)
    return roles


class CheckoutService:
    """Stateless service for placing orders.

    Composes, validates, prices and persists bookings.
    """

    @staticmethod
    def compose_order(
        parent: object,
        items: list[OrderItemRequest],
        payment_method: str = "",
        notes: str = "",
        group_code: str = "",
    ) -> ComposedOrder:
        """Validate an order request and compute its prices.

        Steps run in order and the first failure aborts: item presence,
        child resolution, session lookup, advisory capacity per session,
        role selection, pricing and finally order number and deadline.

        Children named in ``items`` may be created here, so callers that need
        them discarded on a later failure wrap this in a transaction (as
        :meth:`place_order` does).

        Args:
            parent: The parent user placing the order.
            items: The requested seats.
            payment_method: One of ``Order.PaymentMethod``; defaults to the
                configured ``default_payment_method``.
            notes: Free-form notes from the parent.
            group_code: Optional group booking code.

        Returns:
            A :class:`ComposedOrder` ready for :meth:`persist_order`.

        Raises:
            EmptyOrderError: If ``items`` is empty.
            BookingValidationError: If a child or the payment method is invalid.
            ChildLimitError: If a new child would exceed the per-parent limit.
            SessionNotFoundError: If a session does not exist.
            SessionClosedError: If a session is not active.
            CapacityExceededError: If a session lacks seats for this order.
            InvalidRoleError: If a role choice is unknown, not applicable or
                missing.
            RoleFullError: If a role has no free slot for this order.
        """
        if not items:
            raise EmptyOrderError

        config = get_config()
        payment_method = payment_method or config.default_payment_method
        if payment_method not in Order.PaymentMethod.values:
            raise BookingValidationError(
                f"Unsupported payment method: {payment_method}",
                {"field": "payment_method", "value": payment_method},
            )

        children = [
            ChildService.resolve_child(
                parent,
                child_id=item.child_id,
                name=item.child_name,
                age=item.child_age,
            )
            for item in items
        ]

        session_ids = list(dict.fromkeys(item.session_id for item in items))
        sessions = _load_sessions(session_ids)

        for session_id, seats in seats_by_session(items).items():
            check = check_capacity(sessions[session_id], seats)
            if not check.ok:
                raise CapacityExceededError(session_id, seats, check.remaining)

        roles = _resolve_roles(items, sessions)

        prices = [sessions[item.session_id].price for item in items]
        pricing = calculate_pricing(prices)

        now = timezone.now()
        composed_items = [
            ComposedItem(
                session=sessions[item.session_id],
                child=child,
                role=role,
                price=price,
                discount_amount=discount,
            )
            for item, child, role, price, discount in zip(
                items, children, roles, prices, pricing.item_discounts, strict=True
            )
        ]
        return ComposedOrder(
            parent=parent,
            items=composed_items,
            pricing=pricing,
            payment_method=payment_method,
            order_number=generate_order_number(now),
            payment_deadline=now + timedelta(hours=config.payment_deadline_hours),
            notes=notes,
            group_code=group_code,
            created_at=now,
        )

    @staticmethod
    @transaction.atomic
    def persist_order(composed: ComposedOrder) -> Order:
        """Write a composed order and take its seats in one transaction.

        The order row, its items and the seat counters commit together or not
        at all. Each session's seats are reserved as one unit with the
        conditional counter update; once that update has locked the session
        row, role occupancy for the session is recounted so two orders racing
        for the last slot of a role cannot both succeed.

        Args:
            composed: The result of :meth:`compose_order`.

        Returns:
            The persisted :class:`Order` in ``pending_payment`` status.

        Raises:
            DuplicateOrderNumberError: If the order number already exists.
            CapacityExceededError: If a session filled up since composition.
            RoleFullError: If a role filled up since composition.
            PersistenceError: If the store rejected a write.
        """
        try:
            with transaction.atomic():
                order = Order.objects.create(
                    order_number=composed.order_number,
                    parent=composed.parent,
                    status=Order.Status.PENDING_PAYMENT,
                    payment_method=composed.payment_method,
                    total_amount=composed.pricing.subtotal,
                    discount_amount=composed.pricing.discount_amount,
                    final_amount=composed.pricing.final_amount,
                    group_code=composed.group_code,
                    notes=composed.notes,
                    payment_deadline=composed.payment_deadline,
                )
        except IntegrityError as exc:
            if Order.objects.filter(order_number=composed.order_number).exists():
                raise DuplicateOrderNumberError(composed.order_number) from exc
            logger.exception("Integrity error creating order %s", composed.order_number)
            raise PersistenceError(details={"operation": "order insert"}) from exc

        with translate_database_errors("order item insert"):
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        session=item.session,
                        child=item.child,
                        role=item.role,
                        price=item.price,
                        discount_amount=item.discount_amount,
                    )
                    for item in composed.items
                ]
            )

        for session_id, seats in seats_by_session(composed.items).items():
            with translate_database_errors("seat reservation"):
                reservation = reserve_seats(session_id, seats)
            if not reservation.ok:
                raise CapacityExceededError(session_id, seats, reservation.remaining)
            overbooked = find_overbooked_roles(session_id)
            if overbooked:
                role = overbooked[0]
                logger.warning("Role %s in session %s filled up during checkout", role.key, session_id)
                raise RoleFullError(session_id, role.key, role.display_name)

        logger.info(
            "Order %s placed by parent %s: %d seat(s), final amount %s",
            order.order_number,
            order.parent_id,
            len(composed.items),
            order.final_amount,
        )
        send_on_commit(order_placed, Order, order=order)
        return order

    @staticmethod
    @transaction.atomic
    def place_order(
        parent: object,
        items: list[OrderItemRequest],
        payment_method: str = "",
        notes: str = "",
        group_code: str = "",
    ) -> Order:
        """Compose and persist an order in one transaction.

        Children created while composing are rolled back if persistence
        fails. An order number collision is retried with a fresh number.

        Returns:
            The persisted :class:`Order`.

        Raises:
            BookingError: Any error from :meth:`compose_order` or
                :meth:`persist_order`.
        """
        composed = CheckoutService.compose_order(parent, items, payment_method, notes=notes, group_code=group_code)
        attempt = 1
        while True:
            try:
                return CheckoutService.persist_order(composed)
            except DuplicateOrderNumberError:
                if attempt >= ORDER_NUMBER_ATTEMPTS:
                    raise
                attempt += 1
                logger.warning("Order number %s collided, retrying", composed.order_number)
                composed = dataclasses.replace(composed, order_number=generate_order_number())
