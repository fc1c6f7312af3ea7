"""URL configuration for the example booking project.

Log in through the admin; the session cookie then authenticates calls to the
booking API under ``/api/booking/``.
"""

from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView

urlpatterns = [
    path("", RedirectView.as_view(pattern_name="admin:booking_registration_order_changelist"), name="root"),
    path("admin/", admin.site.urls),
    path("api/booking/", include("django_booking.registration.urls")),
]
