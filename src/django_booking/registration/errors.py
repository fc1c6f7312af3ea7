"""Typed booking errors.

Every failure a booking operation can report is a :class:`BookingError`
subclass carrying a stable machine-readable :class:`ErrorCode`, a human-readable
message, structured details, the HTTP status the JSON API answers with, and a
``retryable`` flag. Clients switch on ``code``; the message is for display.
"""

import contextlib
import logging
from collections.abc import Iterator
from enum import Enum
from typing import Any

from django.db import DatabaseError, IntegrityError

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Stable booking error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    EMPTY_ORDER = "EMPTY_ORDER"
    CHILD_LIMIT_EXCEEDED = "CHILD_LIMIT_EXCEEDED"
    SESSION_CLOSED = "SESSION_CLOSED"
    WAITLIST_NOT_NEEDED = "WAITLIST_NOT_NEEDED"
    ALREADY_WAITLISTED = "ALREADY_WAITLISTED"
    WAITLIST_ENTRY_INACTIVE = "WAITLIST_ENTRY_INACTIVE"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    CHILD_NOT_FOUND = "CHILD_NOT_FOUND"
    WAITLIST_ENTRY_NOT_FOUND = "WAITLIST_ENTRY_NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    INVALID_ROLE = "INVALID_ROLE"
    ROLE_NOT_APPLICABLE = "ROLE_NOT_APPLICABLE"
    MISSING_ROLE_SELECTION = "MISSING_ROLE_SELECTION"
    ROLE_FULL = "ROLE_FULL"
    ILLEGAL_STATE_TRANSITION = "ILLEGAL_STATE_TRANSITION"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"


class BookingError(Exception):
    """Base class for all booking errors.

    Args:
        code: The stable error code.
        message: Human-readable error message.
        details: Optional dictionary with additional error context.
    """

    http_status = 400
    retryable = False

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON error body for this error."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


# ============================================================================
# Validation
# ============================================================================


class BookingValidationError(BookingError):
    """Raised when a request is well-formed but violates a booking rule."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        super().__init__(code, message, details)


class EmptyOrderError(BookingValidationError):
    """Raised when an order or pricing request contains no items."""

    def __init__(self) -> None:
        super().__init__("Order must contain at least one item.", code=ErrorCode.EMPTY_ORDER)


class ChildLimitError(BookingValidationError):
    """Raised when creating a child would exceed the per-parent limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Maximum {limit} children per parent.",
            details={"limit": limit},
            code=ErrorCode.CHILD_LIMIT_EXCEEDED,
        )


class SessionClosedError(BookingValidationError):
    """Raised when booking a session that is no longer open."""

    def __init__(self, session_id: int, status: str) -> None:
        super().__init__(
            f"Session {session_id} is {status} and not open for booking.",
            details={"session_id": session_id, "status": status},
            code=ErrorCode.SESSION_CLOSED,
        )


class WaitlistNotNeededError(BookingValidationError):
    """Raised when joining the waitlist of a session that still has seats."""

    def __init__(self, session_id: int, remaining: int) -> None:
        super().__init__(
            "Session still has available spots.",
            details={"session_id": session_id, "remaining": remaining},
            code=ErrorCode.WAITLIST_NOT_NEEDED,
        )


class AlreadyWaitlistedError(BookingValidationError):
    """Raised when a child already has a waiting entry for the session."""

    http_status = 409

    def __init__(self, session_id: int, child_id: int) -> None:
        super().__init__(
            "This child is already on the waitlist for this session.",
            details={"session_id": session_id, "child_id": child_id},
            code=ErrorCode.ALREADY_WAITLISTED,
        )


class WaitlistEntryInactiveError(BookingValidationError):
    """Raised when promoting or removing an entry that is no longer waiting."""

    http_status = 409

    def __init__(self, entry_id: int, status: str) -> None:
        super().__init__(
            f"Waitlist entry {entry_id} is {status}.",
            details={"entry_id": entry_id, "status": status},
            code=ErrorCode.WAITLIST_ENTRY_INACTIVE,
        )


# ============================================================================
# Not found
# ============================================================================


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""

    http_status = 404


class SessionNotFoundError(NotFoundError):
    """Raised when a session id does not resolve."""

    def __init__(self, session_id: object) -> None:
        super().__init__(
            ErrorCode.SESSION_NOT_FOUND,
            f"Session with ID {session_id} not found",
            {"session_id": session_id},
        )


class OrderNotFoundError(NotFoundError):
    """Raised when an order number does not resolve (or is not visible to the caller)."""

    def __init__(self, order_number: str) -> None:
        super().__init__(
            ErrorCode.ORDER_NOT_FOUND,
            f"Order {order_number} not found",
            {"order_number": order_number},
        )


class ChildNotFoundError(NotFoundError):
    """Raised when a child id does not resolve for the requesting parent."""

    def __init__(self, child_id: object) -> None:
        super().__init__(
            ErrorCode.CHILD_NOT_FOUND,
            f"Child with ID {child_id} not found",
            {"child_id": child_id},
        )


class WaitlistEntryNotFoundError(NotFoundError):
    """Raised when a waitlist entry id does not resolve."""

    def __init__(self, entry_id: object) -> None:
        super().__init__(
            ErrorCode.WAITLIST_ENTRY_NOT_FOUND,
            f"Waitlist entry with ID {entry_id} not found",
            {"entry_id": entry_id},
        )


# ============================================================================
# Capacity and roles
# ============================================================================


class CapacityExceededError(BookingError):
    """Raised when a session cannot take the requested number of seats.

    ``remaining`` is the exact number of seats still free at the time of the
    check, so the caller can offer a smaller booking or the waitlist.
    """

    http_status = 409

    def __init__(self, session_id: int, requested: int, remaining: int) -> None:
        super().__init__(
            ErrorCode.CAPACITY_EXCEEDED,
            f"Session {session_id} has only {remaining} seat(s) left, {requested} requested.",
            {"session_id": session_id, "requested": requested, "remaining": remaining},
        )
        self.session_id = session_id
        self.requested = requested
        self.remaining = remaining


class InvalidRoleError(BookingError):
    """Raised when a role id is not valid for the session it was submitted with."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.INVALID_ROLE,
    ) -> None:
        super().__init__(code, message, details)

    @classmethod
    def unknown(cls, session_id: int, role_id: str) -> "InvalidRoleError":
        """Build the error for a role id the session does not offer."""
        return cls(
            f"Invalid role: {role_id} is not available for this session",
            {"session_id": session_id, "role_id": role_id},
        )

    @classmethod
    def not_applicable(cls, session_id: int, title: str) -> "InvalidRoleError":
        """Build the error for a role submitted to a session without roles."""
        return cls(
            f"Session {title} does not require role selection",
            {"session_id": session_id},
            code=ErrorCode.ROLE_NOT_APPLICABLE,
        )

    @classmethod
    def missing(cls, session_id: int, title: str) -> "InvalidRoleError":
        """Build the error for an item without a role in a session that requires one."""
        return cls(
            f"Session {title} requires a character role for every participant",
            {"session_id": session_id},
            code=ErrorCode.MISSING_ROLE_SELECTION,
        )


class RoleFullError(BookingError):
    """Raised when a character role has no free slot left."""

    http_status = 409

    def __init__(self, session_id: int, role_id: str, role_name: str) -> None:
        super().__init__(
            ErrorCode.ROLE_FULL,
            f"Role {role_name} is fully booked. Please select a different character.",
            {"session_id": session_id, "role_id": role_id},
        )
        self.session_id = session_id
        self.role_id = role_id


# ============================================================================
# State machine
# ============================================================================


class IllegalStateTransitionError(BookingError):
    """Raised when an order status change is not allowed from its current status."""

    http_status = 409

    def __init__(self, order_number: str, current: str, target: str, allowed: list[str] | None = None) -> None:
        allowed = allowed or []
        super().__init__(
            ErrorCode.ILLEGAL_STATE_TRANSITION,
            f"Cannot move order {order_number} from '{current}' to '{target}'.",
            {
                "order_number": order_number,
                "current_status": current,
                "target_status": target,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Persistence
# ============================================================================


class PersistenceError(BookingError):
    """Raised when the store rejects a write for reasons other than a booking rule."""

    http_status = 500
    retryable = True

    def __init__(
        self,
        message: str = "The booking could not be saved. Please try again.",
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.PERSISTENCE_ERROR,
    ) -> None:
        super().__init__(code, message, details)


class DuplicateOrderNumberError(PersistenceError):
    """Raised when a generated order number collides with an existing one."""

    http_status = 409

    def __init__(self, order_number: str) -> None:
        super().__init__(
            f"Order number {order_number} already exists.",
            {"order_number": order_number},
            code=ErrorCode.DUPLICATE_ENTRY,
        )


@contextlib.contextmanager
def translate_database_errors(operation: str) -> Iterator[None]:
    """Re-raise Django database errors as :class:`PersistenceError`.

    Booking errors raised inside the block pass through untouched.

    Args:
        operation: Short label for the operation, used in the log record
            and the error details.

    Raises:
        PersistenceError: If the block raised ``IntegrityError`` or
            ``DatabaseError``.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.exception("Integrity error during %s", operation)
        raise PersistenceError(details={"operation": operation, "reason": "integrity"}) from exc
    except DatabaseError as exc:
        logger.exception("Database error during %s", operation)
        raise PersistenceError(details={"operation": operation}) from exc
