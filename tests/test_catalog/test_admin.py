"""Tests for the catalog admin configuration."""

from django.contrib import admin

from django_booking.catalog.admin import CharacterRoleInline, SessionAdmin
from django_booking.catalog.models import Session


def test_session_admin_registered():
    assert isinstance(admin.site._registry[Session], SessionAdmin)


def test_registration_counter_is_read_only():
    assert "current_registrations" in SessionAdmin.readonly_fields


def test_roles_are_edited_inline():
    assert CharacterRoleInline in SessionAdmin.inlines
