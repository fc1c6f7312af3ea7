"""Order status state machine.

Transitions::

    pending_payment ──submit proof──► payment_submitted ──confirm──► confirmed
          │                               │      ▲
          │                               │      └─ resubmit proof
          ├── cancel (parent/admin) ──────┼─ cancel (admin) ──► cancelled_manual
          └── timeout ────────────────────┴─ timeout ─────────► cancelled_timeout

``confirmed`` and both cancelled statuses are terminal. The table allows a
timeout from either unpaid status, but the deadline sweep in
:meth:`OrderStatusService.expire_overdue_orders` only cancels
``pending_payment`` orders; a submitted proof waits for an administrator.
Who may cancel is narrowed further by caller: parents only while
``pending_payment``, administrators from either unpaid status. Every transition
locks the order row, so a cancellation releases its seats exactly once even
when two requests race.
"""

import logging
from collections import Counter
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from django_booking.catalog.models import Session
from django_booking.registration.errors import (
    BookingValidationError,
    IllegalStateTransitionError,
    OrderNotFoundError,
)
from django_booking.registration.models import Order
from django_booking.registration.services.capacity import release_seats
from django_booking.registration.services.waitlist import WaitlistService
from django_booking.registration.signals import (
    order_cancelled,
    order_confirmed,
    payment_proof_submitted,
    seats_released,
    send_on_commit,
)
from django_booking.settings import get_config

logger = logging.getLogger(__name__)

Status = Order.Status

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    Status.PENDING_PAYMENT: frozenset(
        {Status.PAYMENT_SUBMITTED, Status.CANCELLED_MANUAL, Status.CANCELLED_TIMEOUT},
    ),
    Status.PAYMENT_SUBMITTED: frozenset(
        {Status.PAYMENT_SUBMITTED, Status.CONFIRMED, Status.CANCELLED_MANUAL, Status.CANCELLED_TIMEOUT},
    ),
    Status.CONFIRMED: frozenset(),
    Status.CANCELLED_MANUAL: frozenset(),
    Status.CANCELLED_TIMEOUT: frozenset(),
}

PARENT_CANCELLABLE = frozenset({Status.PENDING_PAYMENT})
ADMIN_CANCELLABLE = frozenset({Status.PENDING_PAYMENT, Status.PAYMENT_SUBMITTED})


def can_transition(current: str, target: str) -> bool:
    """Return True when an order may move from ``current`` to ``target``."""
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def allowed_transitions(current: str) -> list[str]:
    """Return the statuses reachable from ``current``, sorted for stable output."""
    return sorted(str(status) for status in ORDER_TRANSITIONS.get(current, frozenset()))


def _ensure_transition(order: Order, target: str) -> None:
    if not can_transition(order.status, target):
        raise IllegalStateTransitionError(
            order.order_number,
            order.status,
            target,
            allowed_transitions(order.status),
        )


def _lock_order(order_number: str, parent: object | None = None) -> Order:
    """Return the order row locked for update, scoped to ``parent`` when given."""
    try:
        order = Order.objects.select_for_update().get(order_number=order_number)
    except Order.DoesNotExist:
        raise OrderNotFoundError(order_number) from None
    if parent is not None and order.parent_id != parent.pk:
        raise OrderNotFoundError(order_number)
    return order


def _release_order_seats(order: Order) -> dict[int, int]:
    """Give back every seat held by ``order`` and return the seats freed per session."""
    freed = dict(sorted(Counter(order.items.values_list("session_id", flat=True)).items()))
    for session_id, seats in freed.items():
        release_seats(session_id, seats)
    return freed


def _notify_seats_freed(freed: dict[int, int]) -> None:
    """Hand freed seats to the waitlist once the cancellation has committed."""
    auto_promote = get_config().waitlist.auto_promote
    for session_id, seats in freed.items():
        if auto_promote:
            transaction.on_commit(
                lambda session_id=session_id, seats=seats: WaitlistService.promote_next(session_id, seats),
                robust=True,
            )
        else:
            send_on_commit(seats_released, Session, session_id=session_id, seats=seats)


def _cancel(order: Order, target: str, reason: str, now: datetime) -> Order:
    order.status = target
    order.cancel_reason = reason
    order.cancelled_at = now
    order.save(update_fields=["status", "cancel_reason", "cancelled_at", "updated_at"])
    freed = _release_order_seats(order)
    logger.info("Order %s cancelled (%s): %s", order.order_number, target, reason or "no reason given")
    send_on_commit(order_cancelled, Order, order=order, reason=reason)
    _notify_seats_freed(freed)
    return order


class OrderStatusService:
    """Stateless service applying order status transitions.

    All methods lock the order row with ``select_for_update()`` inside a
    transaction before reading its status.
    """

    @staticmethod
    @transaction.atomic
    def submit_payment_proof(
        order_number: str,
        *,
        proof_url: str = "",
        transfer_code: str = "",
        parent: object | None = None,
    ) -> Order:
        """Attach a payment proof and move the order to ``payment_submitted``.

        Submitting again while already ``payment_submitted`` replaces the
        proof without re-notifying.

        Args:
            order_number: The order to update.
            proof_url: URL of the uploaded transfer receipt.
            transfer_code: Last digits of the sending account.
            parent: When given, the order must belong to this parent.

        Returns:
            The updated :class:`Order`.

        Raises:
            BookingValidationError: If neither proof URL nor transfer code is
                given.
            OrderNotFoundError: If the order does not exist for the caller.
            IllegalStateTransitionError: If the order is confirmed or cancelled.
        """
        if not proof_url and not transfer_code:
            raise BookingValidationError(
                "A payment proof URL or transfer code is required.",
                {"field": "proof_url"},
            )
        order = _lock_order(order_number, parent)
        _ensure_transition(order, Status.PAYMENT_SUBMITTED)

        first_submission = order.status == Status.PENDING_PAYMENT
        order.status = Status.PAYMENT_SUBMITTED
        order.payment_proof_url = proof_url or order.payment_proof_url
        order.transfer_code = transfer_code or order.transfer_code
        order.payment_submitted_at = timezone.now()
        order.save(
            update_fields=["status", "payment_proof_url", "transfer_code", "payment_submitted_at", "updated_at"],
        )

        if first_submission:
            logger.info("Payment proof submitted for order %s", order.order_number)
            send_on_commit(payment_proof_submitted, Order, order=order)
        else:
            logger.info("Payment proof resubmitted for order %s", order.order_number)
        return order

    @staticmethod
    @transaction.atomic
    def confirm_payment(order_number: str) -> Order:
        """Mark a submitted payment as verified.

        Raises:
            OrderNotFoundError: If the order does not exist.
            IllegalStateTransitionError: If the order is not ``payment_submitted``.
        """
        order = _lock_order(order_number)
        _ensure_transition(order, Status.CONFIRMED)
        order.status = Status.CONFIRMED
        order.confirmed_at = timezone.now()
        order.save(update_fields=["status", "confirmed_at", "updated_at"])
        logger.info("Payment confirmed for order %s", order.order_number)
        send_on_commit(order_confirmed, Order, order=order)
        return order

    @staticmethod
    @transaction.atomic
    def cancel_order(
        order_number: str,
        reason: str = "",
        *,
        is_admin: bool = False,
        parent: object | None = None,
    ) -> Order:
        """Cancel an order and release its seats.

        Admins may cancel ``pending_payment`` and ``payment_submitted``
        orders. A parent may cancel only their own ``pending_payment`` order.
        Seats go back to the sessions in this same transaction, and the
        order's role slots free up with the status change.

        Args:
            order_number: The order to cancel.
            reason: Free-form cancellation reason.
            is_admin: Whether the caller acts as an administrator.
            parent: The requesting parent for non-admin calls.

        Returns:
            The cancelled :class:`Order`.

        Raises:
            OrderNotFoundError: If the order does not exist for the caller.
            IllegalStateTransitionError: If the caller may not cancel the
                order in its current status.
        """
        order = _lock_order(order_number, None if is_admin else parent)
        _ensure_transition(order, Status.CANCELLED_MANUAL)
        cancellable = ADMIN_CANCELLABLE if is_admin else PARENT_CANCELLABLE
        if order.status not in cancellable:
            raise IllegalStateTransitionError(
                order.order_number,
                order.status,
                Status.CANCELLED_MANUAL,
                allowed_transitions(order.status),
            )
        return _cancel(order, Status.CANCELLED_MANUAL, reason, timezone.now())

    @staticmethod
    def expire_overdue_orders(now: datetime | None = None) -> int:
        """Cancel every ``pending_payment`` order whose deadline has passed.

        Each order is cancelled in its own transaction after re-reading its
        status under lock, so a proof submitted in the meantime wins.

        Args:
            now: Reference time; defaults to the current time.

        Returns:
            The number of orders cancelled.
        """
        now = now or timezone.now()
        overdue = list(
            Order.objects.filter(
                status=Status.PENDING_PAYMENT,
                payment_deadline__lt=now,
            ).values_list("order_number", flat=True)
        )
        expired = 0
        for order_number in overdue:
            with transaction.atomic():
                order = _lock_order(order_number)
                if order.status != Status.PENDING_PAYMENT or order.payment_deadline >= now:
                    continue
                _cancel(order, Status.CANCELLED_TIMEOUT, "Payment deadline passed", now)
                expired += 1
        if expired:
            logger.info("Expired %d overdue order(s)", expired)
        return expired
