"""Django app configuration for the catalog app."""

from django.apps import AppConfig


class DjangoBookingCatalogConfig(AppConfig):
    """Configuration for the catalog app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_booking.catalog"
    label = "booking_catalog"
    verbose_name = "Catalog"
