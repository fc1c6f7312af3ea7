"""Settings for the example booking project.

Booking options come from the environment (or an ``.env`` file next to this
module): ``BOOKING_PAYMENT_DEADLINE_HOURS``, ``BOOKING_WAITLIST_AUTO_PROMOTE``,
``BOOKING_ADMIN_EMAIL`` and ``BOOKING_LOG_LEVEL``. Mail is printed to the
console.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = "example-dev-key-not-for-production"
DEBUG = True
ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.messages",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "django_booking.catalog",
    "django_booking.registration",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True

STATIC_URL = "static/"

LOGIN_URL = "/admin/login/"
LOGIN_REDIRECT_URL = "/"

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "bookings@example.com")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"console": {"class": "logging.StreamHandler"}},
    "loggers": {"django_booking": {"handlers": ["console"], "level": os.environ.get("BOOKING_LOG_LEVEL", "INFO")}},
}

DJANGO_BOOKING = {
    "payment_deadline_hours": int(os.environ.get("BOOKING_PAYMENT_DEADLINE_HOURS", "72")),
    "waitlist": {
        "auto_promote": os.environ.get("BOOKING_WAITLIST_AUTO_PROMOTE", "") == "1",
    },
    "notifications": {
        "admin_email": os.environ.get("BOOKING_ADMIN_EMAIL") or None,
    },
}
