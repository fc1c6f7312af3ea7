"""Forms validating booking API input."""

from django import forms

from django_booking.registration.models import Order
from django_booking.registration.services.checkout import OrderItemRequest
from django_booking.registration.services.children import MAX_AGE, MIN_AGE


class OrderForm(forms.Form):
    """Top-level fields of a new order. Items are validated by :class:`OrderItemForm`."""

    payment_method = forms.ChoiceField(choices=Order.PaymentMethod.choices, required=False)
    notes = forms.CharField(widget=forms.Textarea, required=False)
    group_code = forms.CharField(max_length=50, required=False, strip=True)


class OrderItemForm(forms.Form):
    """One requested seat.

    Validates that exactly one of ``child_id`` or ``child_name`` is provided;
    a new child also needs ``child_age``.
    """

    session_id = forms.IntegerField(min_value=1)
    child_id = forms.IntegerField(min_value=1, required=False)
    child_name = forms.CharField(max_length=100, required=False, strip=True)
    child_age = forms.IntegerField(min_value=MIN_AGE, max_value=MAX_AGE, required=False)
    role_id = forms.SlugField(max_length=50, required=False)

    def clean(self) -> dict:
        """Ensure the item names exactly one child, existing or new."""
        cleaned = super().clean()
        has_id = cleaned.get("child_id") is not None
        has_name = bool(cleaned.get("child_name"))

        if has_id == has_name:
            raise forms.ValidationError("Provide exactly one of child_id or child_name, not both or neither.")
        if has_name and cleaned.get("child_age") is None:
            self.add_error("child_age", "Age is required for a new child.")

        return cleaned

    def to_request(self) -> OrderItemRequest:
        """Return the validated item as an :class:`OrderItemRequest`."""
        data = self.cleaned_data
        return OrderItemRequest(
            session_id=data["session_id"],
            child_id=data.get("child_id"),
            child_name=data.get("child_name") or "",
            child_age=data.get("child_age"),
            role_id=data.get("role_id") or "",
        )


class PaymentProofForm(forms.Form):
    """Payment proof submitted by the parent after a manual transfer."""

    proof_url = forms.URLField(max_length=500, required=False, assume_scheme="https")
    transfer_code = forms.CharField(max_length=20, required=False, strip=True)

    def clean(self) -> dict:
        """Require at least one of proof URL or transfer code."""
        cleaned = super().clean()
        if not cleaned.get("proof_url") and not cleaned.get("transfer_code"):
            raise forms.ValidationError("Provide a proof URL or a transfer code.")
        return cleaned


class CancelOrderForm(forms.Form):
    """Reason given when cancelling an order."""

    reason = forms.CharField(widget=forms.Textarea, required=False, max_length=500)


class WaitlistJoinForm(forms.Form):
    """Request to queue one of the parent's children for a full session."""

    session_id = forms.IntegerField(min_value=1)
    child_id = forms.IntegerField(min_value=1)
