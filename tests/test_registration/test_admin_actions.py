"""Tests for the order and waitlist admin actions."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone

from django_booking.catalog.models import Session
from django_booking.registration.models import Child, Order, WaitlistEntry
from django_booking.registration.services.capacity import release_seats
from django_booking.registration.services.checkout import CheckoutService, OrderItemRequest
from django_booking.registration.services.order_status import OrderStatusService
from django_booking.registration.services.waitlist import WaitlistService

User = get_user_model()


@pytest.fixture
def parent(db):
    return User.objects.create_user(username="adminparent", password="password", email="adminparent@example.com")


@pytest.fixture
def session(db):
    return Session.objects.create(
        title="Robot Lab",
        starts_at=timezone.now() + timedelta(days=3),
        capacity=2,
        price=Decimal("1800.00"),
    )


@pytest.fixture
def children(parent):
    return [Child.objects.create(parent=parent, name=name, age=9) for name in ("Kai", "Remy", "Tess")]


@pytest.fixture
def orders(parent, session, children):
    return [
        CheckoutService.place_order(parent, [OrderItemRequest(session_id=session.pk, child_id=child.pk)])
        for child in children[:2]
    ]


def _run_action(admin_client, model_name, action, pks):
    return admin_client.post(
        reverse(f"admin:booking_registration_{model_name}_changelist"),
        {"action": action, "_selected_action": [str(pk) for pk in pks]},
        follow=True,
    )


def _messages(response):
    return [str(message) for message in response.context["messages"]]


# =============================================================================
# OrderAdmin
# =============================================================================


@pytest.mark.django_db
class TestOrderAdminActions:
    def test_confirm_payment(self, admin_client, orders):
        submitted, pending = orders
        OrderStatusService.submit_payment_proof(submitted.order_number, transfer_code="999")

        response = _run_action(admin_client, "order", "confirm_payment", [submitted.pk, pending.pk])

        assert Order.objects.get(pk=submitted.pk).status == Order.Status.CONFIRMED
        assert Order.objects.get(pk=pending.pk).status == Order.Status.PENDING_PAYMENT
        messages = _messages(response)
        assert "Confirmed 1 order(s)." in messages
        assert any(message.startswith(pending.order_number) for message in messages)

    def test_cancel_orders_releases_seats(self, admin_client, orders, session):
        response = _run_action(admin_client, "order", "cancel_orders", [order.pk for order in orders])

        assert set(Order.objects.values_list("status", flat=True)) == {Order.Status.CANCELLED_MANUAL}
        assert set(Order.objects.values_list("cancel_reason", flat=True)) == {"Cancelled by admin"}
        session.refresh_from_db()
        assert session.current_registrations == 0
        assert "Cancelled 2 order(s)." in _messages(response)

    def test_orders_cannot_be_deleted(self, admin_client, orders):
        response = admin_client.get(reverse("admin:booking_registration_order_delete", args=[orders[0].pk]))

        assert response.status_code == 403


# =============================================================================
# WaitlistEntryAdmin
# =============================================================================


@pytest.mark.django_db
class TestWaitlistAdminActions:
    def test_promote_entry(self, admin_client, parent, session, children, orders):
        entry = WaitlistService.join_waitlist(session.pk, parent, children[2].pk)
        release_seats(session.pk, 1)

        response = _run_action(admin_client, "waitlistentry", "promote_entries", [entry.pk])

        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.PROMOTED
        assert "Promoted 1 entry." in _messages(response)

    def test_promote_without_seat_reports_error(self, admin_client, parent, session, children, orders):
        entry = WaitlistService.join_waitlist(session.pk, parent, children[2].pk)

        response = _run_action(admin_client, "waitlistentry", "promote_entries", [entry.pk])

        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.WAITING
        assert any(message.startswith("Entry #1:") for message in _messages(response))

    def test_remove_entry(self, admin_client, parent, session, children, orders):
        entry = WaitlistService.join_waitlist(session.pk, parent, children[2].pk)

        response = _run_action(admin_client, "waitlistentry", "remove_entries", [entry.pk])

        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.CANCELLED
        assert "Removed 1 entry." in _messages(response)
