"""Management command to cancel unpaid orders and expire stale waitlist entries.

Usage::

    # Run from cron, e.g. every 15 minutes
    manage.py expire_overdue_bookings

    # Report what would be expired without changing anything
    manage.py expire_overdue_bookings --dry-run
"""

from typing import TYPE_CHECKING

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError
from django.utils import timezone

from django_booking.registration.errors import BookingError
from django_booking.registration.models import Order, WaitlistEntry
from django_booking.registration.services.order_status import OrderStatusService
from django_booking.registration.services.waitlist import WaitlistService

if TYPE_CHECKING:
    import argparse


class Command(BaseCommand):
    """Cancel orders past their payment deadline and expire old waitlist entries."""

    help = "Cancel pending orders past their payment deadline and expire stale waitlist entries"

    def add_arguments(self, parser: "argparse.ArgumentParser") -> None:
        """Register command-line arguments.

        Args:
            parser: The argument parser to add arguments to.
        """
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many orders and entries would be expired.",
        )

    def handle(self, **options: object) -> None:
        """Execute the expiry run."""
        now = timezone.now()

        if options["dry_run"]:
            orders = Order.objects.filter(status=Order.Status.PENDING_PAYMENT, payment_deadline__lt=now).count()
            entries = WaitlistEntry.objects.filter(
                status=WaitlistEntry.Status.WAITING,
                expires_at__lte=now,
            ).count()
            self.stdout.write(f"Would cancel {orders} overdue order(s) and expire {entries} waitlist entries")
            return

        try:
            orders = OrderStatusService.expire_overdue_orders(now)
            entries = WaitlistService.expire_stale_entries(now)
        except (BookingError, DatabaseError) as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(
            self.style.SUCCESS(f"Cancelled {orders} overdue order(s) and expired {entries} waitlist entries")
        )
