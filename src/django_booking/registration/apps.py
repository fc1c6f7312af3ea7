"""Django app configuration for the registration app."""

from django.apps import AppConfig


class DjangoBookingRegistrationConfig(AppConfig):
    """Configuration for the registration app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_booking.registration"
    label = "booking_registration"
    verbose_name = "Registration"

    def ready(self) -> None:
        """Connect notification receivers."""
        import django_booking.registration.notifications  # noqa: F401, PLC0415
