"""Order entities and request models.

``Order`` is owned by the order store; ``OrderService`` holds a loaded copy
for one workflow step and writes it back after every mutation. State changes
go through ``OrderStateMachine``, which calls ``Order.apply_transition``.

Example:
    >>> from decimal import Decimal
    >>> from order_processing.models import OrderItem
    >>>
    >>> item = OrderItem(product_id="sku-1", quantity=3, unit_price=Decimal("10"))
    >>> item.subtotal
    Decimal('30')
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .states import CRITICAL_STATES, OrderEvent, OrderState


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return f"ord-{uuid4().hex[:16]}"


class OrderItem(BaseModel):
    """One order line: a product, a quantity and the price it was sold at."""

    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)

    model_config = {"frozen": True}

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Address(BaseModel):
    """Postal address used for shipping and billing."""

    line1: str = Field(min_length=1)
    line2: str | None = None
    city: str = Field(min_length=1)
    region: str | None = None
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)

    model_config = {"frozen": True}

    @field_validator("country")
    @classmethod
    def _upper_country(cls, value: str) -> str:
        return value.upper()


class OrderHistoryEntry(BaseModel):
    """Audit record of a single state change."""

    previous_state: OrderState | None = None
    new_state: OrderState
    event: OrderEvent | None = None
    reason: str | None = None
    changed_by: str = "system"
    changed_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @property
    def is_critical(self) -> bool:
        """True for entries into cancelled, refunded or failure states."""
        return self.new_state in CRITICAL_STATES


class Order(BaseModel):
    """The central order entity.

    Besides the business attributes, an order tracks which saga steps have
    actually taken effect (``payment_captured``, ``inventory_reserved``,
    ``shipping_arranged``) so compensations are never applied twice.
    ``payment_outcome_unknown`` marks a payment call that timed out: the
    gateway may still have captured it, so a later cancel tries a refund.
    """

    order_id: str = Field(default_factory=new_order_id)
    customer_id: str = Field(min_length=1)
    items: list[OrderItem] = Field(default_factory=list)
    shipping_address: Address | None = None
    billing_address: Address | None = None
    payment_reference: str | None = None
    total_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    refund_amount: Decimal = Decimal("0")
    state: OrderState = OrderState.PENDING
    cancellation_reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    payment_captured: bool = False
    payment_outcome_unknown: bool = False
    inventory_reserved: bool = False
    shipping_arranged: bool = False
    tracking_id: str | None = None
    return_window_ends_at: datetime | None = None

    version: int = 0
    history: list[OrderHistoryEntry] = Field(default_factory=list)

    @property
    def subtotal_amount(self) -> Decimal:
        """Sum of line subtotals before discount."""
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @property
    def payment_may_be_captured(self) -> bool:
        return self.payment_captured or self.payment_outcome_unknown

    @property
    def item_count(self) -> int:
        return len(self.items)

    def quantities_by_product(self) -> dict[str, int]:
        """Requested quantity per distinct product, duplicate lines combined."""
        totals: dict[str, int] = defaultdict(int)
        for item in self.items:
            totals[item.product_id] += item.quantity
        return dict(totals)

    def totals_consistent(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        """Whether total equals subtotal minus discount within ``tolerance``."""
        expected = self.subtotal_amount - self.discount_amount
        return abs(expected - self.total_amount) <= abs(expected) * tolerance

    def touch(self) -> None:
        self.updated_at = utcnow()

    def apply_transition(
        self,
        new_state: OrderState,
        *,
        event: OrderEvent | None = None,
        reason: str | None = None,
        changed_by: str = "system",
    ) -> OrderHistoryEntry:
        """Set the new state and append the audit entry.

        Legality is checked by ``OrderStateMachine``; call it instead of
        using this directly.
        """
        entry = OrderHistoryEntry(
            previous_state=self.state,
            new_state=new_state,
            event=event,
            reason=reason,
            changed_by=changed_by,
        )
        self.state = new_state
        self.history.append(entry)
        self.touch()
        return entry


class CreateOrderRequest(BaseModel):
    """Request to create an order.

    Pydantic performs the structural validation; business validation runs
    later in ``OrderValidationService``.
    """

    customer_id: str = Field(min_length=1)
    items: list[OrderItem] = Field(min_length=1)
    shipping_address: Address | None = None
    billing_address: Address | None = None
    payment_reference: str | None = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _discount_within_subtotal(self) -> CreateOrderRequest:
        subtotal = sum((item.subtotal for item in self.items), Decimal("0"))
        if self.discount_amount > subtotal:
            raise ValueError("discount_amount exceeds order subtotal")
        return self


__all__ = [
    "Address",
    "CreateOrderRequest",
    "Order",
    "OrderHistoryEntry",
    "OrderItem",
    "new_order_id",
    "utcnow",
]
