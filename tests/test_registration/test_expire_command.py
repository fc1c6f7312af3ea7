"""Tests for the expire_overdue_bookings management command."""

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.utils import timezone

from django_booking.catalog.models import Session
from django_booking.registration.models import Child, Order, WaitlistEntry
from django_booking.registration.services.checkout import CheckoutService, OrderItemRequest

User = get_user_model()


@pytest.fixture
def overdue_setup(db):
    parent = User.objects.create_user(username="cronparent", password="password", email="cron@example.com")
    session = Session.objects.create(
        title="Space Camp",
        starts_at=timezone.now() + timedelta(days=2),
        capacity=1,
        price=Decimal("2500.00"),
    )
    child = Child.objects.create(parent=parent, name="Iris", age=10)
    sibling = Child.objects.create(parent=parent, name="Owen", age=5)
    order = CheckoutService.place_order(parent, [OrderItemRequest(session_id=session.pk, child_id=child.pk)])
    Order.objects.filter(pk=order.pk).update(payment_deadline=timezone.now() - timedelta(hours=1))
    entry = WaitlistEntry.objects.create(
        session=session,
        parent=parent,
        child=sibling,
        position=1,
        expires_at=timezone.now() - timedelta(days=1),
    )
    return session, order, entry


@pytest.mark.django_db
def test_dry_run_changes_nothing(overdue_setup):
    _, order, entry = overdue_setup
    out = StringIO()

    call_command("expire_overdue_bookings", dry_run=True, stdout=out)

    assert "Would cancel 1 overdue order(s) and expire 1 waitlist entries" in out.getvalue()
    order.refresh_from_db()
    entry.refresh_from_db()
    assert order.status == Order.Status.PENDING_PAYMENT
    assert entry.status == WaitlistEntry.Status.WAITING


@pytest.mark.django_db
def test_expires_orders_and_entries(overdue_setup):
    session, order, entry = overdue_setup
    out = StringIO()

    call_command("expire_overdue_bookings", stdout=out)

    assert "Cancelled 1 overdue order(s) and expired 1 waitlist entries" in out.getvalue()
    order.refresh_from_db()
    entry.refresh_from_db()
    session.refresh_from_db()
    assert order.status == Order.Status.CANCELLED_TIMEOUT
    assert entry.status == WaitlistEntry.Status.EXPIRED
    assert session.current_registrations == 0


@pytest.mark.django_db
def test_second_run_is_a_no_op(overdue_setup):
    call_command("expire_overdue_bookings", stdout=StringIO())
    out = StringIO()

    call_command("expire_overdue_bookings", stdout=out)

    assert "Cancelled 0 overdue order(s) and expired 0 waitlist entries" in out.getvalue()
