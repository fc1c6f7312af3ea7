"""Django admin configuration for the registration app.

Status changes go through the booking services from admin actions, so seat
counters, role occupancy and notifications stay consistent with the API.
"""

from django.contrib import admin, messages
from django.db.models import QuerySet
from django.http import HttpRequest

from django_booking.registration.errors import BookingError
from django_booking.registration.models import Child, Order, OrderItem, WaitlistEntry
from django_booking.registration.services.order_status import OrderStatusService
from django_booking.registration.services.waitlist import WaitlistService


@admin.register(Child)
class ChildAdmin(admin.ModelAdmin):
    """Admin interface for children registered by parents."""

    list_display = ("name", "age", "parent", "created_at")
    search_fields = ("name", "parent__email", "parent__username")


class OrderItemInline(admin.TabularInline):
    """Inline display of order items within the order admin.

    Items are snapshots from checkout and are shown read-only.
    """

    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("session", "child", "role", "price", "discount_amount")

    def has_add_permission(self, request: HttpRequest, obj: Order | None = None) -> bool:  # noqa: ARG002, D102
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin interface for reviewing and settling orders.

    Money fields and status are read-only; payment confirmation and
    cancellation are admin actions that run through the status service.
    Orders are never deleted.
    """

    list_display = ("order_number", "parent", "status", "payment_method", "final_amount", "payment_deadline")
    list_filter = ("status", "payment_method")
    search_fields = ("order_number", "parent__email", "parent__username", "transfer_code")
    readonly_fields = (
        "order_number",
        "status",
        "total_amount",
        "discount_amount",
        "final_amount",
        "payment_deadline",
        "payment_submitted_at",
        "confirmed_at",
        "cancelled_at",
    )
    inlines = (OrderItemInline,)
    actions = ("confirm_payment", "cancel_orders")

    def has_delete_permission(self, request: HttpRequest, obj: Order | None = None) -> bool:  # noqa: ARG002, D102
        return False

    @admin.action(description="Confirm payment")
    def confirm_payment(self, request: HttpRequest, queryset: QuerySet[Order]) -> None:
        """Confirm every selected order with a submitted payment proof."""
        confirmed = 0
        for order_number in queryset.values_list("order_number", flat=True):
            try:
                OrderStatusService.confirm_payment(order_number)
            except BookingError as exc:
                self.message_user(request, f"{order_number}: {exc.message}", level=messages.ERROR)
            else:
                confirmed += 1
        if confirmed:
            self.message_user(request, f"Confirmed {confirmed} order(s).", level=messages.SUCCESS)

    @admin.action(description="Cancel orders")
    def cancel_orders(self, request: HttpRequest, queryset: QuerySet[Order]) -> None:
        """Cancel every selected order and release its seats."""
        cancelled = 0
        for order_number in queryset.values_list("order_number", flat=True):
            try:
                OrderStatusService.cancel_order(order_number, "Cancelled by admin", is_admin=True)
            except BookingError as exc:
                self.message_user(request, f"{order_number}: {exc.message}", level=messages.ERROR)
            else:
                cancelled += 1
        if cancelled:
            self.message_user(request, f"Cancelled {cancelled} order(s).", level=messages.SUCCESS)


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    """Admin interface for session waitlists."""

    list_display = ("session", "position", "child", "parent", "status", "expires_at")
    list_filter = ("status",)
    search_fields = ("child__name", "parent__email", "parent__username")
    readonly_fields = ("position", "status", "promoted_order", "created_at")
    actions = ("promote_entries", "remove_entries")

    @admin.action(description="Promote")
    def promote_entries(self, request: HttpRequest, queryset: QuerySet[WaitlistEntry]) -> None:
        """Book a seat for each selected entry, in queue order."""
        promoted = 0
        for entry in queryset.order_by("session_id", "position"):
            try:
                order = WaitlistService.promote(entry.pk)
            except BookingError as exc:
                self.message_user(request, f"Entry #{entry.position}: {exc.message}", level=messages.ERROR)
            else:
                promoted += 1
                self.message_user(request, f"Entry #{entry.position} promoted to order {order.order_number}.")
        if promoted:
            self.message_user(request, f"Promoted {promoted} entr{'y' if promoted == 1 else 'ies'}.", level=messages.SUCCESS)

    @admin.action(description="Remove")
    def remove_entries(self, request: HttpRequest, queryset: QuerySet[WaitlistEntry]) -> None:
        """Take each selected entry out of its queue."""
        removed = 0
        for entry_id in queryset.values_list("pk", flat=True):
            try:
                WaitlistService.remove(entry_id)
            except BookingError as exc:
                self.message_user(request, f"Entry {entry_id}: {exc.message}", level=messages.ERROR)
            else:
                removed += 1
        if removed:
            self.message_user(request, f"Removed {removed} entr{'y' if removed == 1 else 'ies'}.", level=messages.SUCCESS)
