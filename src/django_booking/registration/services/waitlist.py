"""Waitlist management for full sessions.

Entries queue by ``position`` within a session. Positions are assigned as the
session's highest position plus one while the session row is locked, and are
never renumbered. Promotion books the seat through the regular checkout path,
so a promoted entry gets an ordinary ``pending_payment`` order.
"""

import logging
from datetime import datetime, timedelta

from django.db import transaction
from django.db.models import Max, QuerySet
from django.utils import timezone

from django_booking.catalog.models import Session
from django_booking.registration.errors import (
    AlreadyWaitlistedError,
    BookingError,
    CapacityExceededError,
    ChildNotFoundError,
    SessionClosedError,
    SessionNotFoundError,
    WaitlistEntryInactiveError,
    WaitlistEntryNotFoundError,
    WaitlistNotNeededError,
)
from django_booking.registration.models import Child, Order, WaitlistEntry
from django_booking.registration.services.checkout import CheckoutService, OrderItemRequest
from django_booking.registration.services.roles import get_role_availability
from django_booking.registration.signals import send_on_commit, waitlist_promoted
from django_booking.settings import get_config

logger = logging.getLogger(__name__)


def _lock_entry(entry_id: int, parent: object | None = None) -> WaitlistEntry:
    try:
        entry = WaitlistEntry.objects.select_for_update().get(pk=entry_id)
    except WaitlistEntry.DoesNotExist:
        raise WaitlistEntryNotFoundError(entry_id) from None
    if parent is not None and entry.parent_id != parent.pk:
        raise WaitlistEntryNotFoundError(entry_id)
    return entry


def _pick_role(session_id: int) -> str:
    """Return the first role with a free slot, or an empty string when the session has no roles."""
    roles = get_role_availability(session_id)
    if not roles:
        return ""
    for role in roles:
        if role.available > 0:
            return role.role_id
    # Every role is taken; let checkout report which one.
    return roles[0].role_id


class WaitlistService:
    """Stateless service for waitlist operations."""

    @staticmethod
    @transaction.atomic
    def join_waitlist(session_id: int, parent: object, child_id: int) -> WaitlistEntry:
        """Queue a child for a seat in a full session.

        Args:
            session_id: Primary key of the session.
            parent: The parent user.
            child_id: Primary key of one of the parent's children.

        Returns:
            The new ``waiting`` :class:`WaitlistEntry`.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionClosedError: If the session is not active.
            WaitlistNotNeededError: If the session still has free seats.
            ChildNotFoundError: If the child does not belong to the parent.
            AlreadyWaitlistedError: If the child is already waiting for the
                session.
        """
        session = Session.objects.select_for_update().filter(pk=session_id).first()
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != Session.Status.ACTIVE:
            raise SessionClosedError(session.pk, session.status)
        if session.remaining_seats > 0:
            raise WaitlistNotNeededError(session.pk, session.remaining_seats)

        try:
            child = Child.objects.get(pk=child_id, parent=parent)
        except Child.DoesNotExist:
            raise ChildNotFoundError(child_id) from None

        if WaitlistEntry.objects.filter(
            session=session,
            child=child,
            status=WaitlistEntry.Status.WAITING,
        ).exists():
            raise AlreadyWaitlistedError(session.pk, child.pk)

        last_position = WaitlistEntry.objects.filter(session=session).aggregate(last=Max("position"))["last"] or 0
        entry = WaitlistEntry.objects.create(
            session=session,
            parent=parent,
            child=child,
            position=last_position + 1,
            expires_at=timezone.now() + timedelta(days=get_config().waitlist.expiry_days),
        )
        logger.info("Child %s joined waitlist for session %s at position %d", child.pk, session.pk, entry.position)
        return entry

    @staticmethod
    def promote(entry_id: int, *, role_id: str = "", payment_method: str = "") -> Order:
        """Convert a waiting entry into a one-seat order.

        The order goes through the same composition and persistence as any
        other booking. The entry is marked ``promoted`` only when the order
        was placed; on failure it stays ``waiting``. An entry found past its
        expiry is marked ``expired`` and rejected.

        Args:
            entry_id: Primary key of the waitlist entry.
            role_id: Role for the promoted child. When empty and the session
                has roles, the first role with a free slot is used.
            payment_method: Payment method for the new order.

        Returns:
            The new :class:`Order`.

        Raises:
            WaitlistEntryNotFoundError: If the entry does not exist.
            WaitlistEntryInactiveError: If the entry is not waiting or has
                expired.
            BookingError: Any checkout error, such as
                :class:`CapacityExceededError`.
        """
        now = timezone.now()
        with transaction.atomic():
            entry = _lock_entry(entry_id)
            expired = entry.status == WaitlistEntry.Status.WAITING and entry.expires_at <= now
            if expired:
                entry.status = WaitlistEntry.Status.EXPIRED
                entry.save(update_fields=["status"])
                logger.info("Waitlist entry %s expired before promotion", entry.pk)
        if expired:
            raise WaitlistEntryInactiveError(entry_id, WaitlistEntry.Status.EXPIRED)

        with transaction.atomic():
            entry = _lock_entry(entry_id)
            if entry.status != WaitlistEntry.Status.WAITING:
                raise WaitlistEntryInactiveError(entry.pk, entry.status)

            order = CheckoutService.place_order(
                entry.parent,
                [
                    OrderItemRequest(
                        session_id=entry.session_id,
                        child_id=entry.child_id,
                        role_id=role_id or _pick_role(entry.session_id),
                    )
                ],
                payment_method,
                notes=f"Promoted from waitlist position {entry.position}",
            )
            entry.status = WaitlistEntry.Status.PROMOTED
            entry.promoted_order = order
            entry.save(update_fields=["status", "promoted_order"])

            logger.info("Waitlist entry %s promoted to order %s", entry.pk, order.order_number)
            send_on_commit(waitlist_promoted, WaitlistEntry, entry=entry, order=order)
        return order

    @staticmethod
    @transaction.atomic
    def remove(entry_id: int, parent: object | None = None) -> WaitlistEntry:
        """Take a waiting entry out of the queue without renumbering the others.

        Raises:
            WaitlistEntryNotFoundError: If the entry does not exist for the
                caller.
            WaitlistEntryInactiveError: If the entry is not waiting.
        """
        entry = _lock_entry(entry_id, parent)
        if entry.status != WaitlistEntry.Status.WAITING:
            raise WaitlistEntryInactiveError(entry.pk, entry.status)
        entry.status = WaitlistEntry.Status.CANCELLED
        entry.save(update_fields=["status"])
        logger.info("Waitlist entry %s removed", entry.pk)
        return entry

    @staticmethod
    def promote_next(session_id: int, seats: int) -> list[Order]:
        """Promote the oldest waiting entries of a session into up to ``seats`` orders.

        Entries that cannot be promoted (expired, child limit, role full) are
        skipped and stay in their current state; promotion stops when the
        session runs out of seats.

        Returns:
            The orders created.
        """
        orders: list[Order] = []
        candidates = list(
            WaitlistEntry.objects.filter(
                session_id=session_id,
                status=WaitlistEntry.Status.WAITING,
            )
            .order_by("position")
            .values_list("pk", flat=True)
        )
        for entry_id in candidates:
            if len(orders) >= seats:
                break
            try:
                orders.append(WaitlistService.promote(entry_id))
            except CapacityExceededError:
                logger.info("Session %s is full again, stopping waitlist promotion", session_id)
                break
            except BookingError as exc:
                logger.warning("Skipping waitlist entry %s: %s", entry_id, exc)
        return orders

    @staticmethod
    def expire_stale_entries(now: datetime | None = None) -> int:
        """Mark every waiting entry past its expiry as ``expired``.

        Returns:
            The number of entries expired.
        """
        now = now or timezone.now()
        expired = WaitlistEntry.objects.filter(
            status=WaitlistEntry.Status.WAITING,
            expires_at__lte=now,
        ).update(status=WaitlistEntry.Status.EXPIRED)
        if expired:
            logger.info("Expired %d stale waitlist entries", expired)
        return expired

    @staticmethod
    def get_waitlist_for_session(session_id: int) -> QuerySet[WaitlistEntry]:
        """Return the waiting entries of a session in queue order."""
        return (
            WaitlistEntry.objects.filter(session_id=session_id, status=WaitlistEntry.Status.WAITING)
            .select_related("child", "parent")
            .order_by("position")
        )

    @staticmethod
    def get_waitlist_for_parent(parent: object) -> QuerySet[WaitlistEntry]:
        """Return every waitlist entry of a parent, newest first."""
        return (
            WaitlistEntry.objects.filter(parent=parent)
            .select_related("session", "child", "promoted_order")
            .order_by("-created_at", "-pk")
        )

