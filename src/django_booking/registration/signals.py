"""Custom signals for the registration app.

All signals are sent with ``send_robust`` from a ``transaction.on_commit``
callback, so receivers only see committed state and a failing receiver never
rolls back a booking.

Signals:
    order_placed: Sent when a new order has been persisted.
        Sender: The ``Order`` class.
        Kwargs:
            order: The new ``Order`` instance.
    payment_proof_submitted: Sent when an order first moves to
        ``payment_submitted``. Resubmitting a proof does not resend it.
        Sender: The ``Order`` class.
        Kwargs:
            order: The ``Order`` instance.
    order_confirmed: Sent when an admin confirms an order's payment.
        Sender: The ``Order`` class.
        Kwargs:
            order: The ``Order`` instance.
    order_cancelled: Sent when an order is cancelled manually or by timeout.
        Sender: The ``Order`` class.
        Kwargs:
            order: The ``Order`` instance.
            reason: The cancellation reason.
    seats_released: Sent per session when a cancellation frees seats and
        the waitlist is not auto-promoted.
        Sender: The ``Session`` class.
        Kwargs:
            session_id: Primary key of the session.
            seats: Number of seats released.
    waitlist_promoted: Sent when a waitlist entry is converted into an order.
        Sender: The ``WaitlistEntry`` class.
        Kwargs:
            entry: The promoted ``WaitlistEntry``.
            order: The new ``Order``.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

order_placed = Signal()
payment_proof_submitted = Signal()
order_confirmed = Signal()
order_cancelled = Signal()
seats_released = Signal()
waitlist_promoted = Signal()


def send_on_commit(signal: Signal, sender: type, **kwargs: object) -> None:
    """Send ``signal`` robustly once the current transaction commits.

    Receiver exceptions are logged and otherwise ignored. Outside a
    transaction the signal is sent immediately.

    Args:
        signal: The signal to send.
        sender: The sender class.
        **kwargs: Keyword arguments passed to the receivers.
    """

    def _send() -> None:
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    "Signal receiver %r failed for %s",
                    receiver,
                    sender.__name__,
                    exc_info=(type(response), response, response.__traceback__),
                )

    transaction.on_commit(_send)
