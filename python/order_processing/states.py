"""Order lifecycle state machine.

The legal transitions live in an immutable ``TransitionTable`` built once by
``build_transition_table()`` and handed to ``OrderStateMachine``. Entering a
state may request side effects; ``OrderStateMachine.on_enter`` describes
them and ``SideEffectExecutor`` runs them.

Example:
    >>> from order_processing.states import OrderState, OrderStateMachine
    >>>
    >>> machine = OrderStateMachine()
    >>> machine.can_transition_to(OrderState.PENDING, OrderState.VALIDATED)
    True
    >>> machine.is_terminal_state(OrderState.CANCELLED)
    True
"""

from __future__ import annotations

import random
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from .errors import ConfigurationError, InvalidTransitionError
from .logging import log_debug, log_info
from .types import SideEffect, SideEffectKind

if TYPE_CHECKING:
    from .models import Order, OrderHistoryEntry


class OrderState(str, Enum):
    """Lifecycle states of an order.

    Each member carries a display name and a sequence index giving the
    nominal forward flow. The sequence is informational only.
    """

    display_name: str
    sequence: int

    def __new__(cls, value: str, display_name: str, sequence: int) -> OrderState:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.display_name = display_name
        obj.sequence = sequence
        return obj

    PENDING = ("pending", "Pending", 1)
    VALIDATED = ("validated", "Validated", 2)
    PAYMENT_PROCESSING = ("payment_processing", "Payment Processing", 3)
    PAID = ("paid", "Paid", 4)
    INVENTORY_RESERVED = ("inventory_reserved", "Inventory Reserved", 5)
    SHIPPED = ("shipped", "Shipped", 6)
    DELIVERED = ("delivered", "Delivered", 7)
    CANCELLED = ("cancelled", "Cancelled", 8)
    REFUNDED = ("refunded", "Refunded", 9)

    VALIDATION_FAILED = ("validation_failed", "Validation Failed", 101)
    PAYMENT_FAILED = ("payment_failed", "Payment Failed", 103)
    INVENTORY_FAILED = ("inventory_failed", "Inventory Failed", 105)
    SHIPPING_FAILED = ("shipping_failed", "Shipping Failed", 106)
    PROCESSING_FAILED = ("processing_failed", "Processing Failed", 110)

    def __str__(self) -> str:
        return self.value


class OrderEvent(str, Enum):
    """Triggers that move an order between states."""

    CREATE = "create"
    PROCESS = "process"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    VALIDATION_FAILED = "validation_failed"
    INVENTORY_RESERVED = "inventory_reserved"
    INVENTORY_FAILED = "inventory_failed"
    SHIPPING_FAILED = "shipping_failed"
    PROCESSING_COMPLETED = "processing_completed"
    PROCESSING_FAILED = "processing_failed"
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"
    REFUND = "refund"

    def __str__(self) -> str:
        return self.value


CANONICAL_STATES: frozenset[OrderState] = frozenset(
    {
        OrderState.PENDING,
        OrderState.VALIDATED,
        OrderState.PAYMENT_PROCESSING,
        OrderState.PAID,
        OrderState.INVENTORY_RESERVED,
        OrderState.SHIPPED,
        OrderState.DELIVERED,
        OrderState.CANCELLED,
        OrderState.REFUNDED,
    }
)

FAILURE_STATES: frozenset[OrderState] = frozenset(
    {
        OrderState.VALIDATION_FAILED,
        OrderState.PAYMENT_FAILED,
        OrderState.INVENTORY_FAILED,
        OrderState.SHIPPING_FAILED,
        OrderState.PROCESSING_FAILED,
    }
)

CRITICAL_STATES: frozenset[OrderState] = FAILURE_STATES | {
    OrderState.CANCELLED,
    OrderState.REFUNDED,
}


@dataclass(frozen=True)
class TransitionTable:
    """Immutable transition relation plus event resolution.

    Attributes:
        transitions: State -> set of states it may move to.
        event_targets: (event, state) -> target for events whose target
            depends on the source state.
        generic_events: Events that target a fixed state from any source
            that may legally reach it (CANCEL, REFUND, PROCESSING_FAILED).
    """

    transitions: Mapping[OrderState, frozenset[OrderState]]
    event_targets: Mapping[tuple[OrderEvent, OrderState], OrderState]
    generic_events: Mapping[OrderEvent, OrderState]

    def next_states(self, current: OrderState) -> frozenset[OrderState]:
        return self.transitions.get(current, frozenset())

    def allows(self, current: OrderState, target: OrderState) -> bool:
        return target in self.next_states(current)

    def resolve(self, current: OrderState, event: OrderEvent) -> OrderState | None:
        target = self.event_targets.get((event, current))
        if target is None:
            target = self.generic_events.get(event)
        if target is None or not self.allows(current, target):
            return None
        return target


def build_transition_table() -> TransitionTable:
    """Build the order lifecycle transition table.

    Raises:
        ConfigurationError: If an event target is not a legal transition.
    """
    s = OrderState
    e = OrderEvent
    transitions: dict[OrderState, frozenset[OrderState]] = {
        s.PENDING: frozenset(
            {s.VALIDATED, s.CANCELLED, s.VALIDATION_FAILED, s.PROCESSING_FAILED}
        ),
        s.VALIDATED: frozenset({s.PAYMENT_PROCESSING, s.CANCELLED, s.PROCESSING_FAILED}),
        s.PAYMENT_PROCESSING: frozenset(
            {s.PAID, s.CANCELLED, s.PAYMENT_FAILED, s.PROCESSING_FAILED}
        ),
        s.PAID: frozenset(
            {s.INVENTORY_RESERVED, s.CANCELLED, s.REFUNDED, s.INVENTORY_FAILED, s.PROCESSING_FAILED}
        ),
        s.INVENTORY_RESERVED: frozenset(
            {s.SHIPPED, s.CANCELLED, s.REFUNDED, s.SHIPPING_FAILED, s.PROCESSING_FAILED}
        ),
        s.SHIPPED: frozenset({s.DELIVERED, s.CANCELLED, s.REFUNDED}),
        s.DELIVERED: frozenset({s.REFUNDED}),
        s.CANCELLED: frozenset(),
        s.REFUNDED: frozenset(),
    }
    for failed in FAILURE_STATES:
        transitions[failed] = frozenset({s.CANCELLED})

    event_targets: dict[tuple[OrderEvent, OrderState], OrderState] = {
        (e.PROCESS, s.PENDING): s.VALIDATED,
        (e.VALIDATION_FAILED, s.PENDING): s.VALIDATION_FAILED,
        (e.PAYMENT_REQUESTED, s.VALIDATED): s.PAYMENT_PROCESSING,
        (e.PAYMENT_COMPLETED, s.PAYMENT_PROCESSING): s.PAID,
        (e.PAYMENT_FAILED, s.PAYMENT_PROCESSING): s.PAYMENT_FAILED,
        (e.INVENTORY_RESERVED, s.PAID): s.INVENTORY_RESERVED,
        (e.INVENTORY_FAILED, s.PAID): s.INVENTORY_FAILED,
        (e.SHIPPING_FAILED, s.INVENTORY_RESERVED): s.SHIPPING_FAILED,
        (e.PROCESSING_COMPLETED, s.INVENTORY_RESERVED): s.SHIPPED,
        (e.SHIP, s.INVENTORY_RESERVED): s.SHIPPED,
        (e.DELIVER, s.SHIPPED): s.DELIVERED,
    }
    generic_events = {
        e.CANCEL: s.CANCELLED,
        e.REFUND: s.REFUNDED,
        e.PROCESSING_FAILED: s.PROCESSING_FAILED,
    }

    for (event, source), target in event_targets.items():
        if target not in transitions[source]:
            raise ConfigurationError(
                f"Event {event} maps {source} -> {target}, which is not a legal transition"
            )

    return TransitionTable(
        transitions=MappingProxyType(transitions),
        event_targets=MappingProxyType(event_targets),
        generic_events=MappingProxyType(generic_events),
    )


# Tracking identifiers

TRACKING_DIGITS = 10
_TRACKING_ID_PATTERN = re.compile(r"^([A-Z0-9]+)-(\d{10})(\d)$")


def tracking_checksum(digits: str) -> int:
    """Checksum digit for a 10-digit tracking body.

    Even 0-based positions have weight 1, odd positions weight 3.

    Example:
        >>> tracking_checksum("1234567890")
        5
    """
    if len(digits) != TRACKING_DIGITS or not digits.isdigit():
        raise ValueError(f"Tracking body must be {TRACKING_DIGITS} digits: {digits!r}")
    weighted_sum = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits))
    return (10 - (weighted_sum % 10)) % 10


def is_valid_tracking_id(tracking_id: str) -> bool:
    """Check format and checksum of a ``{CARRIER}-{10 digits}{checksum}`` ID."""
    match = _TRACKING_ID_PATTERN.match(tracking_id)
    if match is None:
        return False
    return tracking_checksum(match.group(2)) == int(match.group(3))


class TrackingNumberGenerator:
    """Generates checksum-validated carrier tracking identifiers.

    Example:
        >>> generator = TrackingNumberGenerator("UPS", rng=random.Random(7))
        >>> is_valid_tracking_id(generator.generate())
        True
    """

    def __init__(self, carrier: str = "UPS", rng: random.Random | None = None) -> None:
        self.carrier = carrier.upper()
        self._rng = rng or random.SystemRandom()

    def generate(self) -> str:
        body = "".join(str(self._rng.randrange(10)) for _ in range(TRACKING_DIGITS))
        return f"{self.carrier}-{body}{tracking_checksum(body)}"


class OrderStateMachine:
    """Guards and applies order state transitions.

    Example:
        >>> machine = OrderStateMachine()
        >>> machine.target_for(OrderState.PENDING, OrderEvent.PROCESS)
        <OrderState.VALIDATED: 'validated'>
        >>> machine.can_fire(OrderState.DELIVERED, OrderEvent.CANCEL)
        False
    """

    def __init__(
        self,
        table: TransitionTable | None = None,
        *,
        tracking: TrackingNumberGenerator | None = None,
        return_window_days: int = 30,
    ) -> None:
        self._table = table or build_transition_table()
        self._tracking = tracking or TrackingNumberGenerator()
        self._return_window = timedelta(days=return_window_days)

    @property
    def table(self) -> TransitionTable:
        return self._table

    @staticmethod
    def initial_state() -> OrderState:
        return OrderState.PENDING

    def can_transition_to(self, current: OrderState, target: OrderState) -> bool:
        return self._table.allows(current, target)

    def possible_next_states(self, current: OrderState) -> frozenset[OrderState]:
        return self._table.next_states(current)

    def is_terminal_state(self, state: OrderState) -> bool:
        return not self._table.next_states(state)

    def target_for(self, current: OrderState, event: OrderEvent) -> OrderState | None:
        """Resolve the state an event leads to, or None if not accepted."""
        return self._table.resolve(current, event)

    def can_fire(self, current: OrderState, event: OrderEvent) -> bool:
        return self.target_for(current, event) is not None

    def initialize(self, order: Order, *, changed_by: str = "system") -> OrderHistoryEntry:
        """Put a freshly created order into the initial state."""
        entry = order.apply_transition(
            self.initial_state(),
            event=OrderEvent.CREATE,
            reason="Order created",
            changed_by=changed_by,
        )
        # A new order has no previous state
        order.history[-1] = entry.model_copy(update={"previous_state": None})
        return order.history[-1]

    def require(self, order: Order, event: OrderEvent) -> OrderState:
        """Return the event's target state or raise without mutating.

        Raises:
            InvalidTransitionError: If the event is not accepted in the
                order's current state.
        """
        target = self.target_for(order.state, event)
        if target is None:
            raise InvalidTransitionError(
                f"Order {order.order_id} cannot handle '{event}' in state '{order.state}'",
                current_state=order.state.value,
                requested=event.value,
                metadata={"order_id": order.order_id},
            )
        return target

    def fire(
        self,
        order: Order,
        event: OrderEvent,
        *,
        reason: str | None = None,
        changed_by: str = "system",
    ) -> list[SideEffect]:
        """Apply an event to the order and return the entry side effects.

        Raises:
            InvalidTransitionError: If the event is not accepted.
        """
        target = self.require(order, event)
        previous = order.state
        order.apply_transition(target, event=event, reason=reason, changed_by=changed_by)
        log_info(
            f"Order state changed {previous} -> {target}",
            {"order_id": order.order_id, "event": event.value, "state": target.value},
        )
        return self.on_enter(target, order)

    def on_enter(self, state: OrderState, order: Order) -> list[SideEffect]:
        """Describe the side effects of entering ``state``."""
        effects: list[SideEffect] = []
        match state:
            case OrderState.PAID:
                effects.append(
                    SideEffect(
                        kind=SideEffectKind.NOTIFY_PAYMENT_CONFIRMED,
                        payload={"amount": str(order.total_amount)},
                    )
                )
            case OrderState.INVENTORY_RESERVED:
                effects.append(
                    SideEffect(
                        kind=SideEffectKind.CHECK_BACKORDER,
                        payload={"product_ids": sorted(order.quantities_by_product())},
                    )
                )
            case OrderState.SHIPPED:
                tracking_id = order.tracking_id or self._tracking.generate()
                effects.append(
                    SideEffect(
                        kind=SideEffectKind.ASSIGN_TRACKING_ID,
                        payload={"tracking_id": tracking_id},
                    )
                )
                effects.append(
                    SideEffect(
                        kind=SideEffectKind.NOTIFY_SHIPMENT_STATUS,
                        payload={"tracking_id": tracking_id, "carrier": self._tracking.carrier},
                    )
                )
            case OrderState.DELIVERED:
                effects.append(
                    SideEffect(
                        kind=SideEffectKind.START_RETURN_WINDOW,
                        payload={"ends_at": order.updated_at + self._return_window},
                    )
                )
            case OrderState.CANCELLED:
                effects.extend(self._release_and_refund(order, release=order.inventory_reserved))
            case OrderState.REFUNDED:
                effects.extend(
                    self._release_and_refund(
                        order,
                        release=order.inventory_reserved and not order.shipping_arranged,
                    )
                )
            case _:
                pass

        if effects:
            log_debug(
                f"Entering {state} requests {len(effects)} side effect(s)",
                {"order_id": order.order_id, "state": state.value},
            )
        return effects

    @staticmethod
    def _release_and_refund(order: Order, *, release: bool) -> Iterable[SideEffect]:
        if release:
            yield SideEffect(kind=SideEffectKind.RELEASE_INVENTORY)
        if order.payment_captured and not order.refund_amount:
            yield SideEffect(
                kind=SideEffectKind.INITIATE_REFUND,
                payload={"amount": str(order.total_amount)},
            )


__all__ = [
    "CANONICAL_STATES",
    "CRITICAL_STATES",
    "FAILURE_STATES",
    "OrderEvent",
    "OrderState",
    "OrderStateMachine",
    "TrackingNumberGenerator",
    "TransitionTable",
    "build_transition_table",
    "is_valid_tracking_id",
    "tracking_checksum",
]
