"""Plain-text booking notifications.

Receivers for the registration signals that email the parent and, when
configured, the admin address. They run after commit via ``send_robust``, so
a mail failure is logged by the sender and never affects the booking.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.dispatch import receiver

from django_booking.registration.models import Order, WaitlistEntry
from django_booking.registration.signals import (
    order_cancelled,
    order_confirmed,
    order_placed,
    payment_proof_submitted,
    waitlist_promoted,
)
from django_booking.settings import get_config

logger = logging.getLogger(__name__)


def build_order_details(order: Order) -> dict[str, object]:
    """Return the order summary handed to notification channels."""
    config = get_config()
    items = order.items.select_related("session", "child", "role")
    return {
        "order_number": order.order_number,
        "status": order.status,
        "payment_method": order.payment_method,
        "currency": config.currency,
        "total_amount": str(order.total_amount),
        "discount_amount": str(order.discount_amount),
        "final_amount": str(order.final_amount),
        "payment_deadline": order.payment_deadline.isoformat(),
        "items": [
            {
                "session": item.session.title,
                "starts_at": item.session.starts_at.isoformat(),
                "child": item.child.name,
                "role": item.role.display_name if item.role else "",
                "price": str(item.price),
            }
            for item in items
        ],
    }


def format_order_details(details: dict[str, object]) -> str:
    """Render an order summary as plain text."""
    symbol = get_config().currency_symbol
    lines = [f"Order: {details['order_number']}"]
    for item in details["items"]:
        role = f" as {item['role']}" if item["role"] else ""
        lines.append(f"- {item['child']}{role}: {item['session']} ({item['starts_at']}) {symbol}{item['price']}")
    lines.append(f"Subtotal: {symbol}{details['total_amount']}")
    lines.append(f"Discount: {symbol}{details['discount_amount']}")
    lines.append(f"Total: {symbol}{details['final_amount']} {details['currency']}")
    lines.append(f"Payment deadline: {details['payment_deadline']}")
    return "\n".join(lines)


def _send(subject: str, body: str, recipients: list[str]) -> None:
    config = get_config().notifications
    recipients = [address for address in recipients if address]
    if not config.enabled or not recipients:
        return
    send_mail(
        subject,
        body,
        config.from_email or settings.DEFAULT_FROM_EMAIL,
        recipients,
        fail_silently=False,
    )
    logger.debug("Sent %r to %d recipient(s)", subject, len(recipients))


def _admin_recipients() -> list[str]:
    admin_email = get_config().notifications.admin_email
    return [admin_email] if admin_email else []


@receiver(order_placed, dispatch_uid="django_booking.notify_order_placed")
def notify_order_placed(sender: type[Order], order: Order, **kwargs: object) -> None:  # noqa: ARG001
    """Send the booking summary and payment instructions to the parent."""
    body = format_order_details(build_order_details(order))
    _send(f"Booking received: {order.order_number}", body, [order.parent.email])
    _send(f"New booking {order.order_number}", body, _admin_recipients())


@receiver(payment_proof_submitted, dispatch_uid="django_booking.notify_payment_proof_submitted")
def notify_payment_proof_submitted(sender: type[Order], order: Order, **kwargs: object) -> None:  # noqa: ARG001
    """Tell the admin a payment proof is waiting for verification."""
    body = format_order_details(build_order_details(order))
    proof = order.payment_proof_url or order.transfer_code
    _send(f"Payment proof for {order.order_number}", f"{body}\nProof: {proof}", _admin_recipients())


@receiver(order_confirmed, dispatch_uid="django_booking.notify_order_confirmed")
def notify_order_confirmed(sender: type[Order], order: Order, **kwargs: object) -> None:  # noqa: ARG001
    """Tell the parent the booking is confirmed."""
    body = format_order_details(build_order_details(order))
    _send(f"Booking confirmed: {order.order_number}", body, [order.parent.email])


@receiver(order_cancelled, dispatch_uid="django_booking.notify_order_cancelled")
def notify_order_cancelled(sender: type[Order], order: Order, reason: str = "", **kwargs: object) -> None:  # noqa: ARG001
    """Tell the parent the booking was cancelled, with the reason."""
    body = format_order_details(build_order_details(order))
    if reason:
        body = f"{body}\nReason: {reason}"
    _send(f"Booking cancelled: {order.order_number}", body, [order.parent.email])


@receiver(waitlist_promoted, dispatch_uid="django_booking.notify_waitlist_promoted")
def notify_waitlist_promoted(
    sender: type[WaitlistEntry],  # noqa: ARG001
    entry: WaitlistEntry,
    order: Order,
    **kwargs: object,  # noqa: ARG001
) -> None:
    """Tell the parent a waitlisted seat was booked for their child."""
    body = format_order_details(build_order_details(order))
    _send(
        f"A seat opened up: {entry.session.title}",
        f"{entry.child.name} has been moved off the waitlist.\n{body}",
        [order.parent.email],
    )
