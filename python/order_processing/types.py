"""Pydantic models for cross-cutting order processing types.

This module holds the small value types shared between the state machine,
the side-effect executor and the logging layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class LogContext(BaseModel):
    """Context fields for structured logging.

    Example:
        >>> context = LogContext(
        ...     correlation_id="abc-123",
        ...     order_id="ord-456",
        ...     operation="process_order"
        ... )
        >>> log_info("Payment captured", context)
    """

    correlation_id: str | None = Field(
        default=None,
        description="Correlation ID for request tracing.",
    )
    order_id: str | None = Field(
        default=None,
        description="Order ID for order-level tracing.",
    )
    customer_id: str | None = Field(
        default=None,
        description="Customer that owns the order.",
    )
    operation: str | None = Field(
        default=None,
        description="Service operation being performed.",
    )
    state: str | None = Field(
        default=None,
        description="Order state at the time of logging.",
    )
    event: str | None = Field(
        default=None,
        description="Lifecycle event being applied.",
    )


class SideEffectKind(str, Enum):
    """Side effects attached to entering an order state."""

    NOTIFY_PAYMENT_CONFIRMED = "notify_payment_confirmed"
    """Tell the customer their payment went through."""

    CHECK_BACKORDER = "check_backorder"
    """Look for products that dropped to zero stock after reservation."""

    ASSIGN_TRACKING_ID = "assign_tracking_id"
    """Record the generated carrier tracking identifier on the order."""

    NOTIFY_SHIPMENT_STATUS = "notify_shipment_status"
    """Push the tracking identifier to the shipment-status system."""

    START_RETURN_WINDOW = "start_return_window"
    """Compute the end of the return-eligibility window."""

    RELEASE_INVENTORY = "release_inventory"
    """Release an inventory reservation that is still held."""

    INITIATE_REFUND = "initiate_refund"
    """Refund a captured payment that has not been refunded yet."""


class SideEffect(BaseModel):
    """A side effect requested by the state machine on state entry.

    The state machine only describes effects; ``SideEffectExecutor`` runs
    them against the collaborators.
    """

    kind: SideEffectKind = Field(description="What to do.")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Effect-specific data, e.g. the generated tracking ID.",
    )

    model_config = {"frozen": True}


__all__ = [
    "LogContext",
    "SideEffect",
    "SideEffectKind",
]
