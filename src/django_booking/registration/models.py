"""Child, order, order item and waitlist models for django-booking."""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Child(models.Model):
    """A participant registered by a parent account.

    Children are created on first use during checkout and reused afterwards.
    The ``(parent, name)`` pair is unique so a name submitted again resolves
    to the existing record instead of creating a duplicate.
    """

    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="booking_children",
    )
    name = models.CharField(max_length=100)
    age = models.PositiveSmallIntegerField(validators=[MinValueValidator(0), MaxValueValidator(18)])
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name_plural = "children"
        unique_together = [("parent", "name")]

    def __str__(self) -> str:
        return f"{self.name} ({self.age})"


class Order(models.Model):
    """A booking of one or more seats placed by a parent.

    Orders are never deleted. Cancellation is a terminal status and keeps the
    row (and its items) for the audit trail; the seats are released back to
    the session counters in the same transaction as the status change.
    """

    class Status(models.TextChoices):
        """Lifecycle states for an order."""

        PENDING_PAYMENT = "pending_payment", "Pending Payment"
        PAYMENT_SUBMITTED = "payment_submitted", "Payment Submitted"
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED_MANUAL = "cancelled_manual", "Cancelled"
        CANCELLED_TIMEOUT = "cancelled_timeout", "Cancelled (Timeout)"

    class PaymentMethod(models.TextChoices):
        """Accepted manual payment channels."""

        BANK_TRANSFER = "bank_transfer", "Bank Transfer"
        LINE_PAY = "line_pay", "LINE Pay"

    LIVE_STATUSES = (Status.PENDING_PAYMENT, Status.PAYMENT_SUBMITTED, Status.CONFIRMED)

    order_number = models.CharField(
        max_length=40,
        unique=True,
        editable=False,
        help_text='Unique order number, e.g. "SW20261019093015K7QF".',
    )
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="booking_orders",
    )
    status = models.CharField(
        max_length=25,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.BANK_TRANSFER,
    )
    total_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=0,
        help_text="Sum of item prices before the multi-booking discount.",
    )
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    group_code = models.CharField(max_length=50, blank=True, default="")
    payment_deadline = models.DateTimeField()
    payment_proof_url = models.URLField(max_length=500, blank=True, default="")
    transfer_code = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Last digits of the sending bank account, for reconciliation.",
    )
    notes = models.TextField(blank=True, default="")
    cancel_reason = models.TextField(blank=True, default="")
    payment_submitted_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "payment_deadline"], name="booking_order_status_deadline"),
        ]

    def __str__(self) -> str:
        return f"Order {self.order_number} ({self.status})"

    @property
    def is_live(self) -> bool:
        """Return True while the order's items occupy seats."""
        return self.status in self.LIVE_STATUSES


class OrderItem(models.Model):
    """One seat in a session for one child, with an optional character role.

    ``price`` and ``discount_amount`` are snapshots taken at checkout time.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
    )
    session = models.ForeignKey(
        "booking_catalog.Session",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    child = models.ForeignKey(
        Child,
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    role = models.ForeignKey(
        "booking_catalog.CharacterRole",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="order_items",
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["session", "role"], name="booking_item_session_role"),
        ]

    def __str__(self) -> str:
        return f"{self.child} @ {self.session}"

    @property
    def final_price(self) -> object:
        """Return the item price after its share of the order discount."""
        return self.price - self.discount_amount


class WaitlistEntry(models.Model):
    """A parent's queued request for a seat in a full session.

    ``position`` is assigned once on join (max existing position + 1) and is
    never renumbered, so gaps appear when entries leave the queue.
    """

    class Status(models.TextChoices):
        """Lifecycle states for a waitlist entry."""

        WAITING = "waiting", "Waiting"
        PROMOTED = "promoted", "Promoted"
        CANCELLED = "cancelled", "Cancelled"
        EXPIRED = "expired", "Expired"

    session = models.ForeignKey(
        "booking_catalog.Session",
        on_delete=models.CASCADE,
        related_name="waitlist_entries",
    )
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="booking_waitlist_entries",
    )
    child = models.ForeignKey(
        Child,
        on_delete=models.CASCADE,
        related_name="waitlist_entries",
    )
    position = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.WAITING,
    )
    promoted_order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="waitlist_entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()

    class Meta:
        ordering = ["session", "position"]
        verbose_name_plural = "waitlist entries"
        unique_together = [("session", "position")]

    def __str__(self) -> str:
        return f"#{self.position} {self.child} for {self.session}"
