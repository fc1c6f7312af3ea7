"""Session and character role models for django-booking."""

from django.core.exceptions import ValidationError
from django.db import models


class Session(models.Model):
    """A scheduled activity instance with a fixed seat capacity.

    ``current_registrations`` is the single source of truth for occupied seats.
    It is only moved by the capacity guard in
    :mod:`django_booking.registration.services.capacity`, in the same
    transaction as the order items that consume or release the seats. The
    database rejects any write that would push it outside ``0..capacity``.
    """

    class Status(models.TextChoices):
        """Lifecycle states for a session."""

        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    title = models.CharField(max_length=200)
    title_en = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    venue = models.CharField(max_length=300, blank=True, default="")
    starts_at = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(default=60)
    capacity = models.PositiveIntegerField()
    current_registrations = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    age_min = models.PositiveSmallIntegerField(null=True, blank=True)
    age_max = models.PositiveSmallIntegerField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["starts_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(capacity__gt=0),
                name="catalog_session_capacity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(current_registrations__gte=0),
                name="catalog_session_registrations_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(current_registrations__lte=models.F("capacity")),
                name="catalog_session_registrations_within_capacity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.starts_at:%Y-%m-%d %H:%M})"

    def clean(self) -> None:
        """Reject capacity edits that would strand existing registrations."""
        super().clean()
        if self.capacity is not None and self.capacity < self.current_registrations:
            raise ValidationError(
                {"capacity": f"Capacity cannot be less than current registrations ({self.current_registrations})."}
            )
        if self.age_min is not None and self.age_max is not None and self.age_min > self.age_max:
            raise ValidationError({"age_max": "Maximum age must not be lower than minimum age."})

    @property
    def remaining_seats(self) -> int:
        """Return the number of seats still free according to the stored counter."""
        return max(self.capacity - self.current_registrations, 0)

    @property
    def has_roles(self) -> bool:
        """Return True when participants must pick a character role for this session."""
        return self.roles.exists()


class CharacterRole(models.Model):
    """A character a child can play within a session, with its own sub-capacity.

    ``key`` is the public role identifier clients send when booking (e.g.
    ``"aileen"``). Occupancy is not stored on the role; it is counted on demand
    from live order items referencing it.
    """

    session = models.ForeignKey(
        Session,
        on_delete=models.CASCADE,
        related_name="roles",
    )
    key = models.SlugField(max_length=50)
    name = models.CharField(max_length=100)
    name_en = models.CharField(max_length=100, blank=True, default="")
    image_url = models.URLField(max_length=500, blank=True, default="")
    capacity = models.PositiveIntegerField(default=4)
    order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["order", "key"]
        unique_together = [("session", "key")]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(capacity__gt=0),
                name="catalog_characterrole_capacity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.key})"

    @property
    def display_name(self) -> str:
        """Return the English name when set, falling back to the primary name."""
        return self.name_en or self.name
