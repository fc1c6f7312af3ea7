"""Tests for the JSON booking API views in django_booking.registration.views."""

import json
from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.test import Client
from django.urls import reverse
from django.utils import timezone

from django_booking.catalog.models import CharacterRole, Session
from django_booking.registration.models import Child, Order, WaitlistEntry
from django_booking.registration.services.checkout import CheckoutService, OrderItemRequest

User = get_user_model()

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def parent(db):
    return User.objects.create_user(username="apiparent", password="password", email="api@example.com")


@pytest.fixture
def other_parent(db):
    return User.objects.create_user(username="apiother", password="password", email="apiother@example.com")


@pytest.fixture
def staff(db):
    return User.objects.create_user(username="apistaff", password="password", email="staff@example.com", is_staff=True)


@pytest.fixture
def session(db):
    return Session.objects.create(
        title="Frozen Adventure",
        starts_at=timezone.now() + timedelta(days=10),
        capacity=4,
        price=Decimal("2000.00"),
    )


@pytest.fixture
def plain_session(db):
    return Session.objects.create(
        title="Clay Workshop",
        starts_at=timezone.now() + timedelta(days=12),
        capacity=1,
        price=Decimal("1000.00"),
    )


@pytest.fixture
def elsa(session):
    return CharacterRole.objects.create(session=session, key="elsa", name="Elsa", capacity=1, order=1)


@pytest.fixture
def anna(session):
    return CharacterRole.objects.create(session=session, key="anna", name="Anna", capacity=2, order=2)


@pytest.fixture
def child(parent):
    return Child.objects.create(parent=parent, name="Lily", age=6)


@pytest.fixture
def client_for():
    def _client(user):
        client = Client()
        client.force_login(user)
        return client

    return _client


def _post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type="application/json")


def _place(parent, child, session, role_id=""):
    return CheckoutService.place_order(
        parent,
        [OrderItemRequest(session_id=session.pk, child_id=child.pk, role_id=role_id)],
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@pytest.mark.django_db
class TestAuthentication:
    def test_anonymous_rejected(self, session):
        response = Client().get(reverse("booking:session-availability", args=[session.pk]))

        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.mark.django_db
class TestOrderCreate:
    def test_create_order(self, parent, child, session, elsa, anna, client_for):
        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {
                "payment_method": "bank_transfer",
                "items": [
                    {"session_id": session.pk, "child_id": child.pk, "role_id": "elsa"},
                    {"session_id": session.pk, "child_name": "Max", "child_age": 8, "role_id": "anna"},
                ],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending_payment"
        assert Decimal(data["total_amount"]) == Decimal("4000")
        assert Decimal(data["discount_amount"]) == Decimal("400")
        assert Decimal(data["final_amount"]) == Decimal("3600")
        assert sorted(item["role_id"] for item in data["items"]) == ["anna", "elsa"]
        assert Child.objects.filter(parent=parent, name="Max").exists()

    def test_form_encoded_order_needs_item_list(self, parent, client_for):
        response = client_for(parent).post(reverse("booking:order-list"), {"payment_method": "bank_transfer"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_empty_items(self, parent, client_for):
        response = _post_json(client_for(parent), reverse("booking:order-list"), {"items": []})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMPTY_ORDER"

    def test_item_needs_exactly_one_child(self, parent, child, session, client_for):
        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {"items": [{"session_id": session.pk, "child_id": child.pk, "child_name": "Lily", "child_age": 6}]},
        )

        assert response.status_code == 400
        assert "fields" in response.json()["error"]["details"]

    def test_invalid_json(self, parent, client_for):
        response = client_for(parent).post(
            reverse("booking:order-list"),
            data="{not json",
            content_type="application/json",
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Request body is not valid JSON."

    def test_missing_role(self, parent, child, session, elsa, client_for):
        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {"items": [{"session_id": session.pk, "child_id": child.pk}]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_ROLE_SELECTION"

    def test_full_role(self, parent, other_parent, child, session, elsa, anna, client_for):
        other_child = Child.objects.create(parent=other_parent, name="Ella", age=7)
        _place(other_parent, other_child, session, "elsa")

        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {"items": [{"session_id": session.pk, "child_id": child.pk, "role_id": "elsa"}]},
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ROLE_FULL"
        assert error["details"]["role_id"] == "elsa"

    def test_capacity_exceeded(self, parent, child, plain_session, client_for):
        plain_session.current_registrations = 1
        plain_session.save()

        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {"items": [{"session_id": plain_session.pk, "child_id": child.pk}]},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CAPACITY_EXCEEDED"

    def test_unknown_session(self, parent, child, client_for):
        response = _post_json(
            client_for(parent),
            reverse("booking:order-list"),
            {"items": [{"session_id": 999_999, "child_id": child.pk}]},
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"


@pytest.mark.django_db
class TestOrderRead:
    def test_list_own_orders(self, parent, other_parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)

        own = client_for(parent).get(reverse("booking:order-list")).json()["orders"]
        other = client_for(other_parent).get(reverse("booking:order-list")).json()["orders"]

        assert [o["order_number"] for o in own] == [order.order_number]
        assert other == []

    def test_list_filtered_by_status(self, parent, child, plain_session, client_for):
        _place(parent, child, plain_session)

        response = client_for(parent).get(reverse("booking:order-list"), {"status": "confirmed"})

        assert response.json()["orders"] == []

    def test_detail_owner_and_staff(self, parent, staff, child, plain_session, client_for):
        order = _place(parent, child, plain_session)
        url = reverse("booking:order-detail", args=[order.order_number])

        assert client_for(parent).get(url).json()["order_number"] == order.order_number
        assert client_for(staff).get(url).status_code == 200

    def test_detail_hidden_from_other_parent(self, parent, other_parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)

        response = client_for(other_parent).get(reverse("booking:order-detail", args=[order.order_number]))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
class TestOrderStatusViews:
    def test_submit_payment_proof(self, parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)

        response = _post_json(
            client_for(parent),
            reverse("booking:order-payment-proof", args=[order.order_number]),
            {"transfer_code": "12345"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "payment_submitted"

    def test_payment_proof_requires_content(self, parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)

        response = _post_json(
            client_for(parent),
            reverse("booking:order-payment-proof", args=[order.order_number]),
            {},
        )

        assert response.status_code == 400

    def test_parent_cancels_pending_order(self, parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)

        response = _post_json(
            client_for(parent),
            reverse("booking:order-cancel", args=[order.order_number]),
            {"reason": "Sick"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled_manual"
        plain_session.refresh_from_db()
        assert plain_session.current_registrations == 0

    def test_parent_cannot_cancel_submitted_order(self, parent, child, plain_session, client_for):
        order = _place(parent, child, plain_session)
        client = client_for(parent)
        _post_json(client, reverse("booking:order-payment-proof", args=[order.order_number]), {"transfer_code": "1"})

        response = _post_json(client, reverse("booking:order-cancel", args=[order.order_number]), {})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ILLEGAL_STATE_TRANSITION"
        assert error["details"]["current_status"] == "payment_submitted"

    def test_staff_cancels_submitted_order(self, parent, staff, child, plain_session, client_for):
        order = _place(parent, child, plain_session)
        _post_json(
            client_for(parent),
            reverse("booking:order-payment-proof", args=[order.order_number]),
            {"transfer_code": "1"},
        )

        response = _post_json(client_for(staff), reverse("booking:order-cancel", args=[order.order_number]), {})

        assert response.status_code == 200
        assert Order.objects.get(pk=order.pk).status == Order.Status.CANCELLED_MANUAL


# ---------------------------------------------------------------------------
# Sessions and roles
# ---------------------------------------------------------------------------


@pytest.mark.django_db
class TestSessionViews:
    def test_availability(self, parent, session, client_for):
        session.current_registrations = 3
        session.save()

        data = client_for(parent).get(reverse("booking:session-availability", args=[session.pk])).json()

        assert data == {
            "session_id": session.pk,
            "capacity": 4,
            "registered": 3,
            "available": 1,
            "is_waitlist_only": False,
        }

    def test_availability_unknown_session(self, parent, client_for):
        response = client_for(parent).get(reverse("booking:session-availability", args=[999_999]))

        assert response.status_code == 404

    def test_roles(self, parent, child, session, elsa, anna, client_for):
        _place(parent, child, session, "elsa")

        data = client_for(parent).get(reverse("booking:session-roles", args=[session.pk])).json()

        assert data["requires_role_selection"] is True
        by_id = {role["role_id"]: role for role in data["roles"]}
        assert by_id["elsa"]["available"] == 0
        assert by_id["anna"]["available"] == 2

    def test_roles_for_plain_session(self, parent, plain_session, client_for):
        data = client_for(parent).get(reverse("booking:session-roles", args=[plain_session.pk])).json()

        assert data == {"session_id": plain_session.pk, "requires_role_selection": False, "roles": []}

    def test_validate_role(self, parent, child, session, elsa, client_for):
        client = client_for(parent)
        url = reverse("booking:session-role-validate", args=[session.pk, "elsa"])

        assert client.get(url).json()["valid"] is True

        _place(parent, child, session, "elsa")
        result = client.get(url).json()

        assert result["valid"] is False
        assert result["code"] == "ROLE_FULL"


# ---------------------------------------------------------------------------
# Waitlist
# ---------------------------------------------------------------------------


@pytest.mark.django_db
class TestWaitlistViews:
    def test_join_and_list(self, parent, child, plain_session, client_for):
        plain_session.current_registrations = 1
        plain_session.save()
        client = client_for(parent)

        response = _post_json(
            client,
            reverse("booking:waitlist"),
            {"session_id": plain_session.pk, "child_id": child.pk},
        )

        assert response.status_code == 201
        assert response.json()["position"] == 1
        entries = client.get(reverse("booking:waitlist")).json()["entries"]
        assert [entry["status"] for entry in entries] == ["waiting"]

    def test_join_open_session_rejected(self, parent, child, plain_session, client_for):
        response = _post_json(
            client_for(parent),
            reverse("booking:waitlist"),
            {"session_id": plain_session.pk, "child_id": child.pk},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "WAITLIST_NOT_NEEDED"

    def test_remove(self, parent, other_parent, child, plain_session, client_for):
        plain_session.current_registrations = 1
        plain_session.save()
        entry = WaitlistEntry.objects.create(
            session=plain_session,
            parent=parent,
            child=child,
            position=1,
            expires_at=timezone.now() + timedelta(days=30),
        )
        url = reverse("booking:waitlist-remove", args=[entry.pk])

        assert client_for(other_parent).post(url).status_code == 404

        response = client_for(parent).post(url)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
