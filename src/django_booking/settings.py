"""Typed configuration for django-booking.

Reads a single ``DJANGO_BOOKING`` dict from Django settings and exposes it as
composed, frozen dataclasses with sensible defaults.

Usage::

    from django_booking.settings import get_config

    config = get_config()
    config.payment_deadline_hours
    config.waitlist.expiry_days
    config.notifications.admin_email
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field

from django.conf import settings
from django.test.signals import setting_changed


@dataclass(frozen=True, slots=True)
class WaitlistConfig:
    """Waitlist queue behaviour."""

    expiry_days: int = 30
    auto_promote: bool = False


@dataclass(frozen=True, slots=True)
class NotificationConfig:
    """Outbound booking notification settings.

    ``from_email`` falls back to ``DEFAULT_FROM_EMAIL`` when unset, and admin
    notices are skipped when ``admin_email`` is unset.
    """

    enabled: bool = True
    from_email: str | None = None
    admin_email: str | None = None


@dataclass(frozen=True, slots=True)
class BookingConfig:
    """Top-level django-booking configuration."""

    waitlist: WaitlistConfig = field(default_factory=WaitlistConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    payment_deadline_hours: int = 72
    order_number_prefix: str = "SW"
    max_children_per_parent: int = 4
    default_payment_method: str = "bank_transfer"
    currency: str = "TWD"
    currency_symbol: str = "$"


@functools.lru_cache(maxsize=1)
def get_config() -> BookingConfig:
    """Build and return the booking configuration.

    Reads ``settings.DJANGO_BOOKING`` (a plain dict) and returns a frozen
    :class:`BookingConfig`.  The result is cached; the cache is cleared
    automatically when Django's ``setting_changed`` signal fires (e.g. inside
    ``override_settings``).
    """
    raw = getattr(settings, "DJANGO_BOOKING", {})
    if not isinstance(raw, Mapping):
        msg = "DJANGO_BOOKING must be a mapping (dict-like object)"
        raise TypeError(msg)
    raw_data = dict(raw)

    waitlist_data = raw_data.pop("waitlist", {})
    notifications_data = raw_data.pop("notifications", {})
    if not isinstance(waitlist_data, Mapping):
        msg = "DJANGO_BOOKING['waitlist'] must be a mapping (dict-like object)"
        raise TypeError(msg)
    if not isinstance(notifications_data, Mapping):
        msg = "DJANGO_BOOKING['notifications'] must be a mapping (dict-like object)"
        raise TypeError(msg)

    config = BookingConfig(
        waitlist=WaitlistConfig(**dict(waitlist_data)),
        notifications=NotificationConfig(**dict(notifications_data)),
        **raw_data,
    )
    _validate_booking_config(config)
    return config


def _validate_booking_config(config: BookingConfig) -> None:
    """Validate high-impact configuration values with clear error messages."""
    if not isinstance(config.payment_deadline_hours, int) or config.payment_deadline_hours <= 0:
        msg = "DJANGO_BOOKING['payment_deadline_hours'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.max_children_per_parent, int) or config.max_children_per_parent <= 0:
        msg = "DJANGO_BOOKING['max_children_per_parent'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.order_number_prefix, str) or not config.order_number_prefix.isalnum():
        msg = "DJANGO_BOOKING['order_number_prefix'] must be a non-empty alphanumeric string"
        raise ValueError(msg)
    if not isinstance(config.default_payment_method, str) or not config.default_payment_method.strip():
        msg = "DJANGO_BOOKING['default_payment_method'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.currency, str) or not config.currency.strip():
        msg = "DJANGO_BOOKING['currency'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.currency_symbol, str) or not config.currency_symbol.strip():
        msg = "DJANGO_BOOKING['currency_symbol'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.waitlist.expiry_days, int) or config.waitlist.expiry_days <= 0:
        msg = "DJANGO_BOOKING['waitlist']['expiry_days'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.waitlist.auto_promote, bool):
        msg = "DJANGO_BOOKING['waitlist']['auto_promote'] must be a boolean"
        raise TypeError(msg)
    if not isinstance(config.notifications.enabled, bool):
        msg = "DJANGO_BOOKING['notifications']['enabled'] must be a boolean"
        raise TypeError(msg)


def _clear_config_cache(*, setting: str, **kwargs: object) -> None:  # noqa: ARG001
    """Clear the cached config when Django settings change during tests."""
    if setting == "DJANGO_BOOKING":
        get_config.cache_clear()


setting_changed.connect(_clear_config_cache, dispatch_uid="django_booking.settings.clear_config_cache")
