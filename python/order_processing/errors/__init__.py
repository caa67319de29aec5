"""Error classes for the order processing engine.

Only the outer-boundary operations of ``OrderService`` raise these; helper
failures inside validation are captured as data instead.

The error hierarchy supports retry classification:
- RetryableError: Transient failures that may succeed if the caller retries
- PermanentError: Failures that will not succeed on retry

Example:
    >>> from order_processing.errors import OrderNotFoundError, PaymentError
    >>>
    >>> raise OrderNotFoundError("Order ord-123 does not exist")
    >>>
    >>> raise PaymentError("Payment declined", metadata={"order_id": "ord-123"})
"""

from __future__ import annotations

from typing import Any


class OrderError(Exception):
    """Base class for all order processing errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether the caller may retry the operation
        metadata: Additional error context
    """

    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Error message
            retryable: Override default retryability
            metadata: Additional context
        """
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.metadata = metadata or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API error payloads.

        Returns:
            Dictionary with error details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }


class RetryableError(OrderError):
    """Base class for errors that may succeed on retry."""

    retryable: bool = True


class PermanentError(OrderError):
    """Base class for errors that should NOT be retried."""

    retryable: bool = False


class OrderNotFoundError(PermanentError):
    """A referenced order does not exist.

    Example:
        >>> raise OrderNotFoundError("Order ord-12345 does not exist")
    """

    pass


class OrderValidationError(PermanentError):
    """Structural or business-rule violation.

    Raised before any external side effect happened, so no compensation
    is needed.

    Attributes:
        reasons: Ordered list of violation reasons.

    Example:
        >>> raise OrderValidationError(
        ...     "Order failed validation",
        ...     reasons=["Order exceeds allowable limits"],
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        reasons: list[str] | None = None,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, retryable=retryable, metadata=metadata)
        self.reasons = list(reasons or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reasons"] = list(self.reasons)
        return data


class InsufficientInventoryError(OrderValidationError):
    """Requested items are not available in the requested quantities."""

    pass


class InvalidTransitionError(PermanentError):
    """The requested operation is illegal in the order's current state.

    No mutation happens when this is raised.

    Attributes:
        current_state: State the order was in.
        requested: Event or target state that was refused.
    """

    def __init__(
        self,
        message: str,
        *,
        current_state: str | None = None,
        requested: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(metadata or {})
        if current_state is not None:
            merged.setdefault("current_state", current_state)
        if requested is not None:
            merged.setdefault("requested", requested)
        super().__init__(message, metadata=merged)
        self.current_state = current_state
        self.requested = requested


class PaymentError(RetryableError):
    """Payment capture or refund failed (decline, timeout or gateway fault).

    Declines are not retryable; timeouts and gateway faults are.

    Attributes:
        timed_out: True when the payment call exceeded its time budget.
    """

    def __init__(
        self,
        message: str,
        *,
        timed_out: bool = False,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, retryable=retryable, metadata=metadata)
        self.timed_out = timed_out


class OrderProcessingError(RetryableError):
    """Generic orchestration failure.

    Always raised after best-effort compensation of the saga steps that had
    already succeeded and a transition into a failure state.
    """

    pass


class ConcurrentModificationError(RetryableError):
    """An order was written by someone else since it was loaded.

    Example:
        >>> raise ConcurrentModificationError("Order ord-1 version 3 is stale")
    """

    pass


class ConfigurationError(PermanentError):
    """The engine is misconfigured.

    Example:
        >>> raise ConfigurationError("payment_timeout_seconds must be positive")
    """

    pass


__all__ = [
    # Base classes
    "OrderError",
    "RetryableError",
    "PermanentError",
    # Kinds
    "OrderNotFoundError",
    "OrderValidationError",
    "InsufficientInventoryError",
    "InvalidTransitionError",
    "PaymentError",
    "OrderProcessingError",
    "ConcurrentModificationError",
    "ConfigurationError",
]
