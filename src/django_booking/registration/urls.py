"""URL configuration for the booking API.

Mount these under a prefix in the host project::

    urlpatterns = [
        path("api/booking/", include("django_booking.registration.urls")),
    ]
"""

from django.urls import path

from django_booking.registration.views import (
    CancelOrderView,
    OrderDetailView,
    OrderListCreateView,
    PaymentProofView,
    SessionAvailabilityView,
    SessionRolesView,
    ValidateRoleView,
    WaitlistRemoveView,
    WaitlistView,
)

app_name = "booking"

urlpatterns = [
    path("orders/", OrderListCreateView.as_view(), name="order-list"),
    path("orders/<str:order_number>/", OrderDetailView.as_view(), name="order-detail"),
    path("orders/<str:order_number>/payment-proof/", PaymentProofView.as_view(), name="order-payment-proof"),
    path("orders/<str:order_number>/cancel/", CancelOrderView.as_view(), name="order-cancel"),
    path("sessions/<int:session_id>/availability/", SessionAvailabilityView.as_view(), name="session-availability"),
    path("sessions/<int:session_id>/roles/", SessionRolesView.as_view(), name="session-roles"),
    path(
        "sessions/<int:session_id>/roles/<slug:role_id>/validate/",
        ValidateRoleView.as_view(),
        name="session-role-validate",
    ),
    path("waitlist/", WaitlistView.as_view(), name="waitlist"),
    path("waitlist/<int:entry_id>/remove/", WaitlistRemoveView.as_view(), name="waitlist-remove"),
]
