#!/usr/bin/env python
"""Run the booking example project.

Typical local loop::

    python manage.py migrate
    python manage.py createsuperuser
    python manage.py runserver

Add sessions and character roles in the admin, then book through
``/api/booking/``. Schedule ``expire_overdue_bookings`` to release seats held
by unpaid orders.
"""

import os
import sys


def main() -> None:
    """Dispatch to Django's command-line utility with the example settings."""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "settings")
    from django.core.management import execute_from_command_line

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
