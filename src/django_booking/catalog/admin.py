"""Django admin configuration for the catalog app."""

from django.contrib import admin

from django_booking.catalog.models import CharacterRole, Session


class CharacterRoleInline(admin.TabularInline):
    """Inline editor for the character roles offered in a session."""

    model = CharacterRole
    extra = 0
    fields = ("key", "name", "name_en", "capacity", "image_url", "order")


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    """Admin interface for managing bookable sessions.

    ``current_registrations`` is read-only: it moves only through order
    placement and cancellation so it always matches the live order items.
    """

    list_display = ("title", "starts_at", "status", "current_registrations", "capacity", "price")
    list_filter = ("status",)
    search_fields = ("title", "title_en", "venue")
    readonly_fields = ("current_registrations", "created_at", "updated_at")
    inlines = (CharacterRoleInline,)
