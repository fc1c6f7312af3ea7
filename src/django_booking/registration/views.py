"""JSON views for the booking API.

All views require an authenticated user and answer with JSON. Typed booking
errors are rendered as ``{"error": {"code", "message", "details"}}`` with the
error's HTTP status, so clients can switch on ``code``.
"""

import json
import logging

from django.contrib.auth.mixins import LoginRequiredMixin
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views import View

from django_booking.registration.errors import (
    BookingError,
    BookingValidationError,
    OrderNotFoundError,
)
from django_booking.registration.forms import (
    CancelOrderForm,
    OrderForm,
    OrderItemForm,
    PaymentProofForm,
    WaitlistJoinForm,
)
from django_booking.registration.models import Order, WaitlistEntry
from django_booking.registration.services.capacity import get_session_availability
from django_booking.registration.services.checkout import CheckoutService
from django_booking.registration.services.order_status import OrderStatusService
from django_booking.registration.services.roles import get_role_availability, validate_role_assignment
from django_booking.registration.services.waitlist import WaitlistService

logger = logging.getLogger(__name__)


def serialize_order(order: Order) -> dict[str, object]:
    """Return the API representation of an order and its items."""
    return {
        "order_number": order.order_number,
        "status": order.status,
        "payment_method": order.payment_method,
        "total_amount": str(order.total_amount),
        "discount_amount": str(order.discount_amount),
        "final_amount": str(order.final_amount),
        "group_code": order.group_code,
        "notes": order.notes,
        "payment_deadline": order.payment_deadline.isoformat(),
        "payment_proof_url": order.payment_proof_url,
        "transfer_code": order.transfer_code,
        "cancel_reason": order.cancel_reason,
        "created_at": order.created_at.isoformat(),
        "items": [
            {
                "session_id": item.session_id,
                "child_id": item.child_id,
                "child_name": item.child.name,
                "role_id": item.role.key if item.role else None,
                "price": str(item.price),
                "discount_amount": str(item.discount_amount),
            }
            for item in order.items.select_related("child", "role")
        ],
    }


def serialize_waitlist_entry(entry: WaitlistEntry) -> dict[str, object]:
    """Return the API representation of a waitlist entry."""
    return {
        "id": entry.pk,
        "session_id": entry.session_id,
        "child_id": entry.child_id,
        "position": entry.position,
        "status": entry.status,
        "created_at": entry.created_at.isoformat(),
        "expires_at": entry.expires_at.isoformat(),
        "order_number": entry.promoted_order.order_number if entry.promoted_order_id else None,
    }


def _form_error(form: object) -> BookingValidationError:
    return BookingValidationError("Invalid request.", {"fields": form.errors.get_json_data()})


class BookingAPIView(LoginRequiredMixin, View):
    """Base view: JSON request bodies in, JSON responses out, typed errors mapped to statuses."""

    raise_exception = True

    def dispatch(self, request: HttpRequest, *args: object, **kwargs: object) -> HttpResponse:
        try:
            return super().dispatch(request, *args, **kwargs)
        except BookingError as exc:
            logger.info("Booking request rejected: %s", exc)
            return JsonResponse(exc.to_dict(), status=exc.http_status)

    def get_payload(self) -> dict:
        """Return the request body as a dict, from JSON or form encoding."""
        if self.request.content_type == "application/json":
            try:
                payload = json.loads(self.request.body or b"{}")
            except ValueError:
                raise BookingValidationError("Request body is not valid JSON.") from None
            if not isinstance(payload, dict):
                raise BookingValidationError("Request body must be a JSON object.")
            return payload
        return self.request.POST.dict()


class OrderListCreateView(BookingAPIView):
    """List the parent's orders or place a new one."""

    def get(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Return the current user's orders, optionally filtered by ``status``."""
        orders = Order.objects.filter(parent=request.user)
        status = request.GET.get("status")
        if status:
            orders = orders.filter(status=status)
        return JsonResponse({"orders": [serialize_order(order) for order in orders]})

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Validate the order request and place it.

        Returns:
            201 with the order JSON, or the typed error response.
        """
        payload = self.get_payload()
        form = OrderForm(payload)
        if not form.is_valid():
            raise _form_error(form)

        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raise BookingValidationError("items must be a list.", {"field": "items"})
        items = []
        for raw in raw_items:
            item_form = OrderItemForm(raw if isinstance(raw, dict) else {})
            if not item_form.is_valid():
                raise _form_error(item_form)
            items.append(item_form.to_request())

        order = CheckoutService.place_order(
            request.user,
            items,
            form.cleaned_data["payment_method"],
            notes=form.cleaned_data["notes"],
            group_code=form.cleaned_data["group_code"],
        )
        return JsonResponse(serialize_order(order), status=201)


class OrderDetailView(BookingAPIView):
    """Order detail for its owner or staff."""

    def get(self, request: HttpRequest, order_number: str, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Return the order, hiding other parents' orders as not found."""
        order = Order.objects.filter(order_number=order_number).first()
        if order is None or (order.parent_id != request.user.pk and not request.user.is_staff):
            raise OrderNotFoundError(order_number)
        return JsonResponse(serialize_order(order))


class PaymentProofView(BookingAPIView):
    """Attach a payment proof to the parent's order."""

    def post(self, request: HttpRequest, order_number: str, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        form = PaymentProofForm(self.get_payload())
        if not form.is_valid():
            raise _form_error(form)
        order = OrderStatusService.submit_payment_proof(
            order_number,
            proof_url=form.cleaned_data["proof_url"],
            transfer_code=form.cleaned_data["transfer_code"],
            parent=request.user,
        )
        return JsonResponse(serialize_order(order))


class CancelOrderView(BookingAPIView):
    """Cancel an order; staff users cancel as administrators."""

    def post(self, request: HttpRequest, order_number: str, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        form = CancelOrderForm(self.get_payload())
        if not form.is_valid():
            raise _form_error(form)
        order = OrderStatusService.cancel_order(
            order_number,
            form.cleaned_data["reason"],
            is_admin=request.user.is_staff,
            parent=request.user,
        )
        return JsonResponse(serialize_order(order))


class SessionAvailabilityView(BookingAPIView):
    """Seat availability for a session."""

    def get(self, request: HttpRequest, session_id: int, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        availability = get_session_availability(session_id)
        return JsonResponse(
            {
                "session_id": availability.session_id,
                "capacity": availability.capacity,
                "registered": availability.registered,
                "available": availability.available,
                "is_waitlist_only": availability.is_waitlist_only,
            }
        )


class SessionRolesView(BookingAPIView):
    """Character roles of a session with their live occupancy."""

    def get(self, request: HttpRequest, session_id: int, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        roles = get_role_availability(session_id)
        return JsonResponse(
            {
                "session_id": session_id,
                "requires_role_selection": bool(roles),
                "roles": [
                    {
                        "role_id": role.role_id,
                        "name": role.name,
                        "name_en": role.name_en,
                        "image_url": role.image_url,
                        "capacity": role.capacity,
                        "assigned": role.assigned,
                        "available": role.available,
                    }
                    for role in roles
                ],
            }
        )


class ValidateRoleView(BookingAPIView):
    """Pre-flight check of a role choice."""

    def get(self, request: HttpRequest, session_id: int, role_id: str, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        result = validate_role_assignment(session_id, role_id)
        return JsonResponse({"valid": result.valid, "reason": result.reason, "code": result.code})


class WaitlistView(BookingAPIView):
    """List the parent's waitlist entries or join a waitlist."""

    def get(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        entries = WaitlistService.get_waitlist_for_parent(request.user)
        return JsonResponse({"entries": [serialize_waitlist_entry(entry) for entry in entries]})

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        form = WaitlistJoinForm(self.get_payload())
        if not form.is_valid():
            raise _form_error(form)
        entry = WaitlistService.join_waitlist(
            form.cleaned_data["session_id"],
            request.user,
            form.cleaned_data["child_id"],
        )
        return JsonResponse(serialize_waitlist_entry(entry), status=201)


class WaitlistRemoveView(BookingAPIView):
    """Leave a waitlist."""

    def post(self, request: HttpRequest, entry_id: int, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        entry = WaitlistService.remove(entry_id, parent=None if request.user.is_staff else request.user)
        return JsonResponse(serialize_waitlist_entry(entry))
