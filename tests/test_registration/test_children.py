"""Tests for ChildService in django_booking.registration.services.children."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.utils import timezone

from django_booking.catalog.models import Session
from django_booking.registration.errors import (
    BookingValidationError,
    ChildLimitError,
    ChildNotFoundError,
    ErrorCode,
    PersistenceError,
)
from django_booking.registration.models import Child
from django_booking.registration.services.checkout import CheckoutService, OrderItemRequest
from django_booking.registration.services.children import ChildService

User = get_user_model()


@pytest.fixture
def parent():
    return User.objects.create_user(username="childparent", email="parent@example.com", password="testpass123")


@pytest.fixture
def other_parent():
    return User.objects.create_user(username="otherparent", email="other@example.com", password="testpass123")


@pytest.mark.django_db
class TestResolveChild:
    def test_creates_child_on_first_use(self, parent):
        child = ChildService.resolve_child(parent, name="Mia", age=6)

        assert child.pk is not None
        assert child.parent == parent
        assert child.age == 6

    def test_reuses_child_by_name_and_updates_age(self, parent):
        first = ChildService.resolve_child(parent, name="Mia", age=6)
        second = ChildService.resolve_child(parent, name=" Mia ", age=7)

        assert second.pk == first.pk
        first.refresh_from_db()
        assert first.age == 7
        assert Child.objects.filter(parent=parent).count() == 1

    def test_resolves_by_id(self, parent):
        child = Child.objects.create(parent=parent, name="Leo", age=9)

        assert ChildService.resolve_child(parent, child_id=child.pk) == child

    def test_other_parents_child_not_found(self, parent, other_parent):
        child = Child.objects.create(parent=other_parent, name="Leo", age=9)

        with pytest.raises(ChildNotFoundError):
            ChildService.resolve_child(parent, child_id=child.pk)

    def test_name_required(self, parent):
        with pytest.raises(BookingValidationError, match="name is required"):
            ChildService.resolve_child(parent, name="  ", age=5)

    @pytest.mark.parametrize("age", [None, -1, 19])
    def test_age_must_be_in_range(self, parent, age):
        with pytest.raises(BookingValidationError, match="between 0 and 18"):
            ChildService.resolve_child(parent, name="Mia", age=age)

    def test_boundary_ages_accepted(self, parent):
        assert ChildService.resolve_child(parent, name="Baby", age=0).age == 0
        assert ChildService.resolve_child(parent, name="Teen", age=18).age == 18

    def test_limit_enforced(self, parent):
        for i in range(4):
            ChildService.resolve_child(parent, name=f"Kid {i}", age=5)

        with pytest.raises(ChildLimitError) as exc_info:
            ChildService.resolve_child(parent, name="Kid 4", age=5)

        assert exc_info.value.code == ErrorCode.CHILD_LIMIT_EXCEEDED
        assert Child.objects.filter(parent=parent).count() == 4

    def test_limit_does_not_block_existing_child(self, parent):
        for i in range(4):
            ChildService.resolve_child(parent, name=f"Kid {i}", age=5)

        child = ChildService.resolve_child(parent, name="Kid 0", age=6)

        assert child.age == 6

    def test_limit_is_configurable(self, parent, settings):
        settings.DJANGO_BOOKING = {"max_children_per_parent": 1}
        ChildService.resolve_child(parent, name="Only", age=5)

        with pytest.raises(ChildLimitError, match="Maximum 1 children"):
            ChildService.resolve_child(parent, name="Second", age=5)


# =============================================================================
# Concurrent creation
# =============================================================================


@pytest.mark.django_db
class TestResolveChildRace:
    def test_same_name_created_concurrently_is_reused(self, parent):
        winner = Child.objects.create(parent=parent, name="Mia", age=6)

        with patch("django_booking.registration.services.children._find_by_name", return_value=None):
            child = ChildService.resolve_child(parent, name="Mia", age=7)

        assert child.pk == winner.pk
        assert child.age == 7
        assert Child.objects.filter(parent=parent).count() == 1

    def test_lost_race_during_checkout_places_order(self, parent):
        session = Session.objects.create(
            title="Puppet Show",
            starts_at=timezone.now() + timedelta(days=4),
            capacity=5,
            price=Decimal("1200.00"),
        )
        winner = Child.objects.create(parent=parent, name="Mia", age=6)

        with patch("django_booking.registration.services.children._find_by_name", return_value=None):
            order = CheckoutService.place_order(
                parent,
                [OrderItemRequest(session_id=session.pk, child_name="Mia", child_age=6)],
            )

        assert order.items.get().child_id == winner.pk

    def test_other_integrity_errors_become_persistence_errors(self, parent):
        with (
            patch.object(Child.objects, "create", side_effect=IntegrityError("CHECK constraint failed")),
            pytest.raises(PersistenceError) as exc_info,
        ):
            ChildService.resolve_child(parent, name="Mia", age=6)

        assert exc_info.value.details == {"operation": "child insert"}
        assert exc_info.value.retryable is True
        assert Child.objects.filter(parent=parent).count() == 0
