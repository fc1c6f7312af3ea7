"""Child lookup and on-demand creation for checkout."""

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from django_booking.registration.errors import (
    BookingValidationError,
    ChildLimitError,
    ChildNotFoundError,
    PersistenceError,
)
from django_booking.registration.models import Child
from django_booking.settings import get_config

logger = logging.getLogger(__name__)

MIN_AGE = 0
MAX_AGE = 18


def _find_by_name(parent: object, name: str) -> Child | None:
    return Child.objects.select_for_update().filter(parent=parent, name=name).first()


class ChildService:
    """Stateless service resolving the child a booking item refers to."""

    @staticmethod
    @transaction.atomic
    def resolve_child(
        parent: object,
        *,
        child_id: int | None = None,
        name: str | None = None,
        age: int | None = None,
    ) -> Child:
        """Return an existing child or create one for ``parent``.

        A ``child_id`` must belong to ``parent``. Otherwise the child is looked
        up by name; a known name has its age refreshed, an unknown name is
        created as long as the parent stays within the configured limit. The
        parent row is locked first so concurrent requests for the same parent
        run the lookup, the limit check and the insert one at a time.

        Args:
            parent: The parent user.
            child_id: Primary key of an existing child.
            name: Child name, used when ``child_id`` is not given.
            age: Child age (0 to 18), required with ``name``.

        Returns:
            The resolved :class:`Child`.

        Raises:
            ChildNotFoundError: If ``child_id`` does not belong to ``parent``.
            BookingValidationError: If the name is blank or the age is out of
                range.
            ChildLimitError: If creating the child would exceed the limit.
            PersistenceError: If the insert is rejected for a reason other
                than a concurrent insert of the same name.
        """
        if child_id is not None:
            try:
                return Child.objects.get(pk=child_id, parent=parent)
            except Child.DoesNotExist:
                raise ChildNotFoundError(child_id) from None

        name = (name or "").strip()
        if not name:
            raise BookingValidationError("Child name is required.", {"field": "name"})
        if age is None or not MIN_AGE <= age <= MAX_AGE:
            raise BookingValidationError(
                f"Child age must be between {MIN_AGE} and {MAX_AGE}.",
                {"field": "age", "value": age},
            )

        get_user_model().objects.select_for_update().only("pk").get(pk=parent.pk)

        existing = _find_by_name(parent, name)
        if existing is not None:
            if existing.age != age:
                existing.age = age
                existing.save(update_fields=["age", "updated_at"])
            return existing

        limit = get_config().max_children_per_parent
        if Child.objects.filter(parent=parent).count() >= limit:
            raise ChildLimitError(limit)

        try:
            with transaction.atomic():
                child = Child.objects.create(parent=parent, name=name, age=age)
        except IntegrityError as exc:
            existing = Child.objects.filter(parent=parent, name=name).first()
            if existing is None:
                logger.exception("Integrity error creating child %r for parent %s", name, parent.pk)
                raise PersistenceError(details={"operation": "child insert"}) from exc
            logger.info("Child %r for parent %s was created concurrently, reusing it", name, parent.pk)
            if existing.age != age:
                existing.age = age
                existing.save(update_fields=["age", "updated_at"])
            return existing
        logger.info("Created child %s for parent %s", child.pk, parent.pk)
        return child
